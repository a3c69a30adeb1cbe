import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import inspect, text

from .api import application as application_api
from .api import ats as ats_api
from .api import candidate as candidate_api
from .api import company as company_api
from .api import job as job_api
from .database import engine, init_db
from .services.matcher import GeminiMatcher
from .utils.error_handlers import register_exception_handlers

logger = logging.getLogger(__name__)

app = FastAPI(title="ATS Match Scoring")

app.include_router(company_api.router)
app.include_router(job_api.router)
app.include_router(candidate_api.router)
app.include_router(ats_api.router)
app.include_router(application_api.router)

register_exception_handlers(app)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "Backend running",
        "service": "ATS Match Scoring",
    }


_default_origins = ["http://localhost:5173", "http://127.0.0.1:5173"]
_extra_origins = [
    origin.strip()
    for origin in os.getenv("FRONTEND_ORIGINS", "").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=[*_default_origins, *_extra_origins],
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Score columns added after the first release; create_all() never alters existing tables.
_SCORE_COLUMNS = {
    "score_failed": "BOOLEAN NOT NULL DEFAULT FALSE",
    "last_scored_at": "TIMESTAMP NULL",
}


def add_missing_score_columns(target_engine=engine) -> None:  # noqa: ANN001
    inspector = inspect(target_engine)
    if not inspector.has_table("candidate_job_maps"):
        return
    existing = {c["name"] for c in inspector.get_columns("candidate_job_maps")}
    with target_engine.begin() as conn:
        for column, ddl in _SCORE_COLUMNS.items():
            if column not in existing:
                conn.execute(text(f"ALTER TABLE candidate_job_maps ADD COLUMN {column} {ddl}"))
                logger.info("Added candidate_job_maps.%s", column)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    try:
        add_missing_score_columns()
    except Exception:
        # Best-effort only; backend/migrate.py reports the underlying problem.
        logger.exception("Score column check failed")

    app.state.matcher = GeminiMatcher.from_config()
    if not app.state.matcher.api_key:
        logger.warning("GEMINI_API_KEY is not set; ATS scores will be zero placeholders")
