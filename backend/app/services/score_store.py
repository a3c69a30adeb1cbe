"""
Score store: cached ATS scores on candidate_job_maps.

Rows are keyed by the unique (candidate_id, job_id) pair. Writes go through
an insert-on-conflict-update statement so concurrent scorers of the same pair
cannot create duplicates; the last write wins.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import Session

from ..models.candidate_job_map import CandidateJobMap
from ..schemas.ats import ATSScore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns.
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def is_fresh(row: CandidateJobMap | None, *, staleness: timedelta, now: datetime | None = None) -> bool:
    if row is None or row.ats_score is None or row.last_scored_at is None:
        return False
    if row.score_failed or not (row.ats_analysis or "").strip():
        return False
    now = now or utcnow()
    return now - _as_utc(row.last_scored_at) < staleness


def row_to_score(row: CandidateJobMap) -> ATSScore:
    return ATSScore(
        ats_score=int(row.ats_score or 0),
        skills_match=float(row.skills_match or 0.0),
        experience_match=float(row.experience_match or 0.0),
        education_match=float(row.education_match or 0.0),
        analysis=row.ats_analysis or "",
        failed=bool(row.score_failed),
    )


def get_score_row(db: Session, *, candidate_id: int, job_id: int) -> CandidateJobMap | None:
    return (
        db.query(CandidateJobMap)
        .filter(CandidateJobMap.candidate_id == candidate_id, CandidateJobMap.job_id == job_id)
        .first()
    )


def get_score_rows_for_job(db: Session, *, candidate_ids: list[int], job_id: int) -> dict[int, CandidateJobMap]:
    if not candidate_ids:
        return {}
    rows = (
        db.query(CandidateJobMap)
        .filter(CandidateJobMap.job_id == job_id, CandidateJobMap.candidate_id.in_(candidate_ids))
        .all()
    )
    return {int(r.candidate_id): r for r in rows}


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert, "on_conflict"
    if dialect == "postgresql":
        return postgresql.insert, "on_conflict"
    if dialect in {"mysql", "mariadb"}:
        return mysql.insert, "on_duplicate_key"
    return None, None


def upsert_score(
    db: Session,
    *,
    candidate_id: int,
    job_id: int,
    score: ATSScore,
    scored_at: datetime | None = None,
    commit: bool = True,
) -> None:
    """
    Insert or update the score fields for one pair. `status` is only set on insert.
    """
    scored_at = scored_at or utcnow()
    values = {
        "ats_score": float(score.ats_score),
        "skills_match": float(score.skills_match),
        "experience_match": float(score.experience_match),
        "education_match": float(score.education_match),
        "ats_analysis": score.analysis,
        "score_failed": bool(score.failed),
        "last_scored_at": scored_at,
    }

    insert, flavour = _insert_for(db)
    if insert is None:
        _upsert_find_or_create(db, candidate_id=candidate_id, job_id=job_id, values=values)
    else:
        stmt = insert(CandidateJobMap.__table__).values(
            candidate_id=candidate_id,
            job_id=job_id,
            status="candidate",
            assigned_date=scored_at,
            **values,
        )
        if flavour == "on_conflict":
            stmt = stmt.on_conflict_do_update(index_elements=["candidate_id", "job_id"], set_=values)
        else:
            stmt = stmt.on_duplicate_key_update(**values)
        db.execute(stmt)

    if commit:
        db.commit()
    logger.debug("Score stored candidate=%s job=%s score=%s", candidate_id, job_id, score.ats_score)


def _upsert_find_or_create(db: Session, *, candidate_id: int, job_id: int, values: dict) -> None:
    row = get_score_row(db, candidate_id=candidate_id, job_id=job_id)
    if row is None:
        row = CandidateJobMap(candidate_id=candidate_id, job_id=job_id, status="candidate")
        db.add(row)
    for k, v in values.items():
        setattr(row, k, v)
    db.flush()
