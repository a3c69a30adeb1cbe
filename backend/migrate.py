#!/usr/bin/env python3
"""
Migration script for the candidate/job score table.

Creates any missing tables, collapses duplicate (candidate_id, job_id) score
rows left behind by older versions, and adds the unique index the score
upsert relies on.
"""

import sys
from pathlib import Path

from sqlalchemy import inspect, text

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from app.database import engine, init_db

UNIQUE_NAME = "uq_candidate_job_maps_candidate_job"


def dedupe_score_rows(conn) -> int:
    """Keep the most recently scored row per pair (highest id on ties). Returns rows deleted."""
    rows = conn.execute(text(
        "SELECT id, candidate_id, job_id, last_scored_at FROM candidate_job_maps "
        "ORDER BY candidate_id, job_id"
    )).fetchall()

    by_pair: dict[tuple[int, int], list] = {}
    for r in rows:
        by_pair.setdefault((r.candidate_id, r.job_id), []).append(r)

    doomed: list[int] = []
    for pair_rows in by_pair.values():
        if len(pair_rows) < 2:
            continue
        keep = max(pair_rows, key=lambda r: (r.last_scored_at is not None, str(r.last_scored_at or ""), r.id))
        doomed.extend(r.id for r in pair_rows if r.id != keep.id)

    for row_id in doomed:
        conn.execute(text("DELETE FROM candidate_job_maps WHERE id = :id"), {"id": row_id})
    return len(doomed)


def migrate():
    print("Initializing database with all models...")
    init_db()
    print("✓ Database initialized successfully")

    inspector = inspect(engine)
    existing = {c["name"] for c in inspector.get_columns("candidate_job_maps")}

    columns_to_add = {
        "score_failed": "BOOLEAN NOT NULL DEFAULT FALSE",
        "last_scored_at": "TIMESTAMP NULL",
        "assigned_by": "VARCHAR(255) NULL",
    }
    added = []
    for col, col_type in columns_to_add.items():
        if col in existing:
            continue
        try:
            with engine.begin() as conn:
                conn.execute(text(f"ALTER TABLE candidate_job_maps ADD COLUMN {col} {col_type}"))
            added.append(col)
        except Exception as e:
            print(f"✗ Failed to add column {col}: {e}")

    if added:
        print(f"✓ Added score columns: {', '.join(added)}")
    else:
        print("✓ Score columns already up to date")

    existing_index_names = {i.get("name") for i in inspector.get_indexes("candidate_job_maps") if i.get("name")}
    existing_unique_names = {
        u.get("name") for u in inspector.get_unique_constraints("candidate_job_maps") if u.get("name")
    }
    if UNIQUE_NAME in existing_index_names or UNIQUE_NAME in existing_unique_names:
        print(f"✓ Unique index present: {UNIQUE_NAME}")
        return

    try:
        with engine.begin() as conn:
            removed = dedupe_score_rows(conn)
            if removed:
                print(f"✓ Removed {removed} duplicate score rows")
            conn.execute(text(
                f"CREATE UNIQUE INDEX {UNIQUE_NAME} ON candidate_job_maps (candidate_id, job_id)"
            ))
        print(f"✓ Added unique index: {UNIQUE_NAME}")
    except Exception as e:
        print(f"✗ Failed to add unique index {UNIQUE_NAME}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    migrate()
