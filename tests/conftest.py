import os
import sys
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func
from sqlalchemy.orm import sessionmaker


# Ensure `import backend.app...` works regardless of where pytest is run from.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Config is read at import time, so these must be in place before any backend.app import.
os.environ["DISABLE_DOTENV"] = "1"
# Ensure tests never call external AI providers even if developer machine has keys set.
os.environ["GEMINI_API_KEY"] = ""
os.environ["SECRET_KEY"] = "test-secret"


class FakeMatcher:
    """
    In-memory matcher. Returns `default` unless a pair has its own score;
    pairs in `raise_for` blow up to exercise the orchestrator's safety net.
    """

    def __init__(self):
        from backend.app.schemas.ats import ATSScore, JobRequirements

        self.calls: list[tuple[int, int]] = []
        self.scores: dict[tuple[int, int], ATSScore] = {}
        self.raise_for: set[tuple[int, int]] = set()
        self.default = ATSScore(
            ats_score=73,
            skills_match=50.0,
            experience_match=80.0,
            education_match=100.0,
            analysis="Good overall fit",
        )
        self.requirement_texts: list[str] = []
        self.requirements = JobRequirements(
            required_skills=["Python", "SQL"],
            required_experience="mid",
            required_education="bachelor",
        )

    async def score(self, candidate, job):
        pair = (candidate.id, job.id)
        self.calls.append(pair)
        if pair in self.raise_for:
            raise RuntimeError("matcher exploded")
        return self.scores.get(pair, self.default)

    async def parse_job_requirements(self, requirements_text):
        self.requirement_texts.append(requirements_text)
        return self.requirements

    def reset_calls(self) -> None:
        self.calls.clear()


class Seeder:
    """Direct-to-DB fixtures for orchestrator and API tests."""

    def __init__(self, db):
        self.db = db

    def company(self, *, client_id: int = 1, name: str = "Acme"):
        from backend.app.models.company import Company

        company = Company(client_id=client_id, name=name)
        self.db.add(company)
        self.db.commit()
        self.db.refresh(company)
        return company

    def job(
        self,
        company,
        *,
        title: str = "Backend Engineer",
        skills: list[str] | None = None,
        status: str = "active",
        experience: str | None = "mid",
        education: str | None = "bachelor",
        stages: list[str] | None = None,
    ):
        from backend.app.models.job import Job

        job = Job(
            company_id=company.id,
            job_title=title,
            required_skills=["Python", "SQL"] if skills is None else skills,
            required_experience=experience,
            required_education=education,
            job_status=status,
            application_stages=stages or [],
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        return job

    def candidate(
        self,
        *,
        client_id: int = 1,
        name: str = "Ada Lovelace",
        email: str | None = None,
        skills: list[str] | None = None,
    ):
        from backend.app.models.candidate import Candidate, CandidateEducation, CandidateExperience
        from backend.app.models.skill import CandidateSkillMap, Skill

        candidate = Candidate(
            client_id=client_id,
            name=name,
            email=email or f"{name.split()[0].lower()}.{client_id}@example.com",
        )
        for title in ["Python"] if skills is None else skills:
            skill = self.db.query(Skill).filter(func.lower(Skill.title) == title.lower()).first()
            if skill is None:
                skill = Skill(title=title)
                self.db.add(skill)
                self.db.flush()
            candidate.skill_maps.append(CandidateSkillMap(skill=skill))
        candidate.experiences.append(
            CandidateExperience(title="Developer", company="Initech", start_date="2020-01", is_current_role=True)
        )
        candidate.educations.append(CandidateEducation(degree="BSc", institution="State University"))
        self.db.add(candidate)
        self.db.commit()
        self.db.refresh(candidate)
        return candidate


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite3"


@pytest.fixture()
def matcher() -> FakeMatcher:
    return FakeMatcher()


@pytest.fixture()
def app(test_db_path: Path, matcher: FakeMatcher) -> FastAPI:
    """
    Create a FastAPI app wired to a temporary SQLite DB and the fake matcher.

    `app.main` is not imported so its startup hook never builds a real matcher.
    """
    os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{test_db_path}"

    from backend.app import database as db

    engine = create_engine(
        os.environ["DATABASE_URL"],
        connect_args={"check_same_thread": False},
    )
    db.install_sqlite_pragmas(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Patch the shared database module so router dependencies and background tasks use the test DB.
    db.engine = engine
    db.SessionLocal = TestingSessionLocal

    # Import models so Base metadata is populated, then create tables.
    from backend.app import models  # noqa: F401

    db.Base.metadata.drop_all(bind=engine)
    db.Base.metadata.create_all(bind=engine)

    from backend.app.api import application as application_api
    from backend.app.api import ats as ats_api
    from backend.app.api import candidate as candidate_api
    from backend.app.api import company as company_api
    from backend.app.api import job as job_api
    from backend.app.utils.dependencies import get_matcher
    from backend.app.utils.error_handlers import register_exception_handlers

    fastapi_app = FastAPI()
    fastapi_app.include_router(company_api.router)
    fastapi_app.include_router(job_api.router)
    fastapi_app.include_router(candidate_api.router)
    fastapi_app.include_router(ats_api.router)
    fastapi_app.include_router(application_api.router)
    register_exception_handlers(fastapi_app)
    fastapi_app.dependency_overrides[get_matcher] = lambda: matcher

    return fastapi_app


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session(app: FastAPI):
    """
    Direct SQLAlchemy session bound to the same temporary SQLite DB used by the test app.
    """
    from backend.app import database

    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def seed(db_session) -> Seeder:
    return Seeder(db_session)


@pytest.fixture()
def auth_headers():
    """Build bearer headers for a tenant. Pass client_id=None for a token without tenant context."""
    from backend.app.utils.jwt import create_access_token

    def _headers(client_id: int | None = 1, name: str = "Recruiter One") -> dict:
        claims = {"sub": f"user-{client_id}", "name": name}
        if client_id is not None:
            claims["client_id"] = client_id
        return {"Authorization": f"Bearer {create_access_token(claims)}"}

    return _headers
