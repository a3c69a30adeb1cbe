from datetime import datetime
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import config
from ..database import get_db
from ..models.application import Application
from ..models.candidate import Candidate
from ..models.job import Job
from ..services.ats_scoring import ScoreOrchestrator, rematch_job_task
from ..services.matcher import Matcher
from ..services.tenancy import get_tenant_company, get_tenant_job, jobs_query
from ..utils.dependencies import get_client_id, get_matcher, get_orchestrator
from ..utils.error_handlers import handle_database_error
from ..utils.validation import (
    validate_education_level,
    validate_experience_level,
    validate_job_status,
    validate_skill_list,
    validate_string_field,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])

# Changing any of these invalidates the job's cached scores.
SCORING_FIELDS = ("job_title", "description", "responsibilities", "required_skills", "required_experience", "required_education")


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def job_to_public(job: Job) -> dict:
    return {
        "id": job.id,
        "company_id": job.company_id,
        "company_name": job.company.name if job.company is not None else None,
        "job_title": job.job_title,
        "department": job.department,
        "location": job.location,
        "job_type": job.job_type,
        "description": job.description,
        "responsibilities": job.responsibilities,
        "required_skills": list(job.required_skills or []),
        "required_experience": job.required_experience,
        "required_education": job.required_education,
        "job_status": job.job_status,
        "application_stages": list(job.application_stages or []),
        "created_at": _iso(job.created_at),
        "updated_at": _iso(job.updated_at),
    }


class JobCreate(BaseModel):
    company_id: int
    job_title: str = Field(min_length=2, max_length=150)
    department: str | None = Field(default=None, max_length=120)
    location: str | None = Field(default=None, max_length=120)
    job_type: str | None = Field(default=None, max_length=50)
    description: str | None = None
    responsibilities: str | None = None
    required_skills: list[str] | None = None
    required_experience: str | None = None
    required_education: str | None = None
    job_status: str | None = None
    application_stages: list[str] | None = None


class JobUpdate(BaseModel):
    job_title: str | None = Field(default=None, min_length=2, max_length=150)
    department: str | None = Field(default=None, max_length=120)
    location: str | None = Field(default=None, max_length=120)
    job_type: str | None = Field(default=None, max_length=50)
    description: str | None = None
    responsibilities: str | None = None
    required_skills: list[str] | None = None
    required_experience: str | None = None
    required_education: str | None = None
    job_status: str | None = None
    application_stages: list[str] | None = None


class RequirementsText(BaseModel):
    text: str = Field(min_length=1, max_length=20000)


def _clean_stages(stages: list[str] | None) -> list[str]:
    return [s.strip() for s in stages or [] if isinstance(s, str) and s.strip()]


def _schedule_rematch(background_tasks: BackgroundTasks, job: Job, *, client_id: int, matcher: Matcher) -> bool:
    if job.job_status not in config.ATS_OPEN_JOB_STATUSES:
        return False
    background_tasks.add_task(rematch_job_task, job_id=int(job.id), client_id=client_id, matcher=matcher)
    return True


@router.post("", status_code=201)
def create_job(
    payload: JobCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
    matcher: Matcher = Depends(get_matcher),
):
    company = get_tenant_company(db, payload.company_id, client_id)

    job = Job(
        company_id=company.id,
        job_title=validate_string_field(payload.job_title, "Job title", min_length=2, max_length=150),
        department=validate_string_field(payload.department, "Department", max_length=120, required=False),
        location=validate_string_field(payload.location, "Location", max_length=120, required=False),
        job_type=validate_string_field(payload.job_type, "Job type", max_length=50, required=False),
        description=payload.description,
        responsibilities=payload.responsibilities,
        required_skills=validate_skill_list(payload.required_skills),
        required_experience=validate_experience_level(payload.required_experience),
        required_education=validate_education_level(payload.required_education),
        job_status=validate_job_status(payload.job_status),
        application_stages=_clean_stages(payload.application_stages),
    )

    try:
        db.add(job)
        db.commit()
        db.refresh(job)
    except Exception as e:
        db.rollback()
        logger.error("Database error creating job: %s", e)
        raise handle_database_error(e, "creating job")

    scheduled = _schedule_rematch(background_tasks, job, client_id=client_id, matcher=matcher)
    logger.info("Job created id=%s company=%s matching_scheduled=%s", job.id, company.id, scheduled)
    return {"success": True, "job": job_to_public(job), "matching_scheduled": scheduled}


@router.get("")
def list_jobs(
    status: str | None = Query(default=None, description="new/active/closing soon/closed/draft"),
    company_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    q = jobs_query(db, client_id)
    status_norm = (status or "").strip().lower()
    if status_norm and status_norm != "all":
        q = q.filter(Job.job_status == validate_job_status(status_norm))
    if company_id is not None:
        q = q.filter(Job.company_id == company_id)
    jobs = q.order_by(Job.created_at.desc(), Job.id.desc()).all()
    return {"success": True, "jobs": [job_to_public(j) for j in jobs]}


@router.post("/parse-requirements")
async def parse_requirements(
    payload: RequirementsText,
    client_id: int = Depends(get_client_id),
    matcher: Matcher = Depends(get_matcher),
):
    """Extract structured requirements from free text. Empty fields when the AI is unavailable."""
    requirements = await matcher.parse_job_requirements(payload.text)
    return {"success": True, "requirements": requirements.model_dump()}


@router.get("/{job_id}")
def get_job(
    job_id: int,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    job = get_tenant_job(db, job_id, client_id)
    return {"success": True, "job": job_to_public(job)}


@router.patch("/{job_id}")
def update_job(
    job_id: int,
    payload: JobUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
    matcher: Matcher = Depends(get_matcher),
):
    job = get_tenant_job(db, job_id, client_id)
    fields = payload.model_dump(exclude_unset=True)

    updates: dict = {}
    if "job_title" in fields:
        updates["job_title"] = validate_string_field(fields["job_title"], "Job title", min_length=2, max_length=150)
    for name, label, max_length in (
        ("department", "Department", 120),
        ("location", "Location", 120),
        ("job_type", "Job type", 50),
    ):
        if name in fields:
            updates[name] = validate_string_field(fields[name], label, max_length=max_length, required=False)
    for name in ("description", "responsibilities"):
        if name in fields:
            updates[name] = fields[name]
    if "required_skills" in fields:
        updates["required_skills"] = validate_skill_list(fields["required_skills"])
    if "required_experience" in fields:
        updates["required_experience"] = validate_experience_level(fields["required_experience"])
    if "required_education" in fields:
        updates["required_education"] = validate_education_level(fields["required_education"])
    if "job_status" in fields:
        updates["job_status"] = validate_job_status(fields["job_status"])
    if "application_stages" in fields:
        updates["application_stages"] = _clean_stages(fields["application_stages"])

    scoring_changed = any(
        name in updates and updates[name] != getattr(job, name) for name in SCORING_FIELDS
    )
    for name, value in updates.items():
        setattr(job, name, value)

    try:
        db.commit()
        db.refresh(job)
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "updating job")

    scheduled = False
    if scoring_changed:
        scheduled = _schedule_rematch(background_tasks, job, client_id=client_id, matcher=matcher)
    return {"success": True, "job": job_to_public(job), "matching_scheduled": scheduled}


@router.delete("/{job_id}")
def delete_job(
    job_id: int,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    job = get_tenant_job(db, job_id, client_id)
    try:
        db.delete(job)
        db.commit()
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "deleting job")
    return {"success": True, "deleted_job_id": job_id}


@router.get("/{job_id}/applicants")
async def list_applicants(
    job_id: int,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
    orchestrator: ScoreOrchestrator = Depends(get_orchestrator),
):
    """Applications for a job with their ATS scores, best match first."""
    job = get_tenant_job(db, job_id, client_id)
    applications = (
        db.query(Application)
        .join(Candidate, Application.candidate_id == Candidate.id)
        .filter(Application.job_id == job.id, Candidate.client_id == client_id)
        .order_by(Application.id)
        .all()
    )
    if not applications:
        return {"success": True, "job_id": job.id, "applicants": []}

    scores = await orchestrator.ensure_scores_bulk(
        [a.candidate_id for a in applications], job.id, client_id
    )

    applicants = []
    for a in applications:
        candidate = a.candidate
        score = scores[int(a.candidate_id)]
        applicants.append({
            "application_id": a.id,
            "candidate": {
                "id": candidate.id,
                "name": candidate.name,
                "email": candidate.email,
                "position": candidate.position,
            },
            "status": a.status,
            "current_stage": a.current_stage,
            "is_shortlisted": bool(a.is_shortlisted),
            "applied_date": _iso(a.applied_date),
            **score.model_dump(),
        })
    applicants.sort(key=lambda x: x["ats_score"], reverse=True)
    return {"success": True, "job_id": job.id, "applicants": applicants}
