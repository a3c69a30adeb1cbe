import os
from pathlib import Path
from dotenv import load_dotenv

# Override=True so changes in backend/.env take effect on process reload.
#
# For automated tests (SQLite), we need to prevent backend/.env from overriding the
# test DATABASE_URL. Set DISABLE_DOTENV=1 to skip loading .env.
if os.getenv("DISABLE_DOTENV") != "1":
    load_dotenv(override=True)

_TRUTHY = {"1", "true", "True", "yes", "YES"}

_raw_database_url = (os.getenv("DATABASE_URL") or "").strip()
# Default to a local SQLite DB for dev so the backend can start out-of-the-box.
_default_sqlite_path = (Path(__file__).resolve().parent.parent / "dev.db").as_posix()
DATABASE_URL = _raw_database_url or f"sqlite:///{_default_sqlite_path}"

# -------------------- Matcher (Gemini) --------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com")
GEMINI_API_VERSION = os.getenv("GEMINI_API_VERSION", "v1")

AI_TIMEOUT_S = float(os.getenv("AI_TIMEOUT_S", "20") or "20")
# Scoring calls are not retried by default; a failed call degrades to a zero score.
AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "0") or "0")
AI_LOG_PAYLOADS = (os.getenv("AI_LOG_PAYLOADS", "0") or "0").strip() in _TRUTHY

# -------------------- ATS scoring --------------------
# (skills, experience, education). Single source for the composite score.
ATS_SCORE_WEIGHTS = (0.4, 0.35, 0.25)
ATS_STALENESS_DAYS = int(os.getenv("ATS_STALENESS_DAYS", "7") or "7")
ATS_OPEN_JOB_STATUSES = tuple(
    s.strip()
    for s in (os.getenv("ATS_OPEN_JOB_STATUSES") or "new,active,closing soon").split(",")
    if s.strip()
)

# Tenant context
# NOTE: keep a default for local dev so the server can boot even if SECRET_KEY isn't set.
SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret_change_me")
