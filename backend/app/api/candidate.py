from datetime import datetime
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.application import Application
from ..models.candidate import Candidate, CandidateEducation, CandidateExperience
from ..models.candidate_job_map import CandidateJobMap
from ..models.skill import CandidateSkillMap, Skill
from ..services.ats_scoring import rematch_candidate_task
from ..services.matcher import Matcher
from ..services.score_store import get_score_row
from ..services.tenancy import candidates_query, get_tenant_candidate, get_tenant_job
from ..utils.dependencies import get_actor, get_client_id, get_matcher
from ..utils.error_handlers import NotFoundError, get_error_message, handle_database_error
from ..utils.validation import (
    validate_assignment_status,
    validate_email,
    validate_skill_list,
    validate_string_field,
)
from .application import application_to_public, stage_entry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/candidates", tags=["Candidates"])


class ExperienceIn(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    company: str | None = Field(default=None, max_length=255)
    location: str | None = Field(default=None, max_length=255)
    start_date: str | None = Field(default=None, max_length=50)
    end_date: str | None = Field(default=None, max_length=50)
    description: str | None = None
    is_current_role: bool = False


class EducationIn(BaseModel):
    degree: str | None = Field(default=None, max_length=255)
    institution: str | None = Field(default=None, max_length=255)
    field_of_study: str | None = Field(default=None, max_length=255)
    location: str | None = Field(default=None, max_length=255)
    start_date: str | None = Field(default=None, max_length=50)
    end_date: str | None = Field(default=None, max_length=50)


class CandidateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str
    phone: str | None = Field(default=None, max_length=50)
    location: str | None = Field(default=None, max_length=255)
    position: str | None = Field(default=None, max_length=255)
    bio: str | None = None
    linkedin_profile: str | None = Field(default=None, max_length=255)
    github_profile: str | None = Field(default=None, max_length=255)
    portfolio_url: str | None = Field(default=None, max_length=255)
    current_company: str | None = Field(default=None, max_length=255)
    total_experience: int | None = Field(default=None, ge=0, le=80)
    skills: list[str] = Field(default_factory=list)
    experiences: list[ExperienceIn] = Field(default_factory=list)
    educations: list[EducationIn] = Field(default_factory=list)


class CandidateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = None
    phone: str | None = Field(default=None, max_length=50)
    location: str | None = Field(default=None, max_length=255)
    position: str | None = Field(default=None, max_length=255)
    bio: str | None = None
    linkedin_profile: str | None = Field(default=None, max_length=255)
    github_profile: str | None = Field(default=None, max_length=255)
    portfolio_url: str | None = Field(default=None, max_length=255)
    current_company: str | None = Field(default=None, max_length=255)
    total_experience: int | None = Field(default=None, ge=0, le=80)
    skills: list[str] | None = None
    experiences: list[ExperienceIn] | None = None
    educations: list[EducationIn] | None = None


class AssignmentStatusUpdate(BaseModel):
    status: str


class ApplyRequest(BaseModel):
    source: str | None = Field(default=None, max_length=50)
    notes: str | None = None


# Plain profile columns copied straight from the payload.
_PROFILE_FIELDS = (
    "phone",
    "location",
    "position",
    "bio",
    "linkedin_profile",
    "github_profile",
    "portfolio_url",
    "current_company",
    "total_experience",
)


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def candidate_to_public(candidate: Candidate) -> dict:
    return {
        "id": candidate.id,
        "name": candidate.name,
        "email": candidate.email,
        **{name: getattr(candidate, name) for name in _PROFILE_FIELDS},
        "skills": candidate.skill_titles,
        "experiences": [
            {
                "id": e.id,
                "title": e.title,
                "company": e.company,
                "location": e.location,
                "start_date": e.start_date,
                "end_date": e.end_date,
                "description": e.description,
                "is_current_role": bool(e.is_current_role),
            }
            for e in candidate.experiences
        ],
        "educations": [
            {
                "id": e.id,
                "degree": e.degree,
                "institution": e.institution,
                "field_of_study": e.field_of_study,
                "location": e.location,
                "start_date": e.start_date,
                "end_date": e.end_date,
            }
            for e in candidate.educations
        ],
        "created_at": _iso(candidate.created_at),
        "updated_at": _iso(candidate.updated_at),
    }


def assignment_to_public(row: CandidateJobMap) -> dict:
    return {
        "id": row.id,
        "candidate_id": row.candidate_id,
        "job_id": row.job_id,
        "status": row.status,
        "assigned_by": row.assigned_by,
        "assigned_date": _iso(row.assigned_date),
        "ats_score": row.ats_score,
        "last_scored_at": _iso(row.last_scored_at),
    }


def _get_or_create_skill(db: Session, title: str) -> Skill:
    skill = db.query(Skill).filter(func.lower(Skill.title) == title.lower()).first()
    if skill is None:
        skill = Skill(title=title)
        db.add(skill)
        db.flush()
    return skill


def _set_skills(db: Session, candidate: Candidate, skills: list[str]) -> None:
    titles = validate_skill_list(skills)
    # Old maps must be gone before re-inserting the same (candidate, skill) pairs.
    candidate.skill_maps = []
    db.flush()
    candidate.skill_maps = [
        CandidateSkillMap(skill=_get_or_create_skill(db, title)) for title in titles
    ]


def _set_experiences(candidate: Candidate, experiences: list[ExperienceIn]) -> None:
    candidate.experiences = [CandidateExperience(**e.model_dump()) for e in experiences]


def _set_educations(candidate: Candidate, educations: list[EducationIn]) -> None:
    candidate.educations = [CandidateEducation(**e.model_dump()) for e in educations]


def _schedule_rematch(background_tasks: BackgroundTasks, candidate: Candidate, *, client_id: int, matcher: Matcher) -> None:
    background_tasks.add_task(
        rematch_candidate_task, candidate_id=int(candidate.id), client_id=client_id, matcher=matcher
    )


@router.post("", status_code=201)
def create_candidate(
    payload: CandidateCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
    matcher: Matcher = Depends(get_matcher),
):
    candidate = Candidate(
        client_id=client_id,
        name=validate_string_field(payload.name, "Name", min_length=1, max_length=255),
        email=validate_email(payload.email),
        **{name: getattr(payload, name) for name in _PROFILE_FIELDS},
    )

    try:
        db.add(candidate)
        _set_skills(db, candidate, payload.skills)
        _set_experiences(candidate, payload.experiences)
        _set_educations(candidate, payload.educations)
        db.commit()
        db.refresh(candidate)
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "creating candidate")

    _schedule_rematch(background_tasks, candidate, client_id=client_id, matcher=matcher)
    logger.info("Candidate created id=%s client=%s", candidate.id, client_id)
    return {"success": True, "candidate": candidate_to_public(candidate)}


@router.get("")
def list_candidates(
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    candidates = candidates_query(db, client_id, with_profile=True).order_by(Candidate.id).all()
    return {"success": True, "candidates": [candidate_to_public(c) for c in candidates]}


@router.get("/{candidate_id}")
def get_candidate(
    candidate_id: int,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    candidate = get_tenant_candidate(db, candidate_id, client_id, with_profile=True)
    return {"success": True, "candidate": candidate_to_public(candidate)}


@router.patch("/{candidate_id}")
def update_candidate(
    candidate_id: int,
    payload: CandidateUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
    matcher: Matcher = Depends(get_matcher),
):
    """
    Partial update. Nested lists (skills, experiences, educations) are replaced
    wholesale when present; any of them changing triggers background rescoring.
    """
    candidate = get_tenant_candidate(db, candidate_id, client_id, with_profile=True)
    fields = payload.model_dump(exclude_unset=True)

    try:
        if "name" in fields:
            candidate.name = validate_string_field(fields["name"], "Name", min_length=1, max_length=255)
        if "email" in fields:
            candidate.email = validate_email(fields["email"])
        for name in _PROFILE_FIELDS:
            if name in fields:
                setattr(candidate, name, fields[name])

        if payload.skills is not None:
            _set_skills(db, candidate, payload.skills)
        if payload.experiences is not None:
            _set_experiences(candidate, payload.experiences)
        if payload.educations is not None:
            _set_educations(candidate, payload.educations)

        db.commit()
        db.refresh(candidate)
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "updating candidate")

    profile_changed = any(
        getattr(payload, name) is not None for name in ("skills", "experiences", "educations")
    )
    if profile_changed:
        _schedule_rematch(background_tasks, candidate, client_id=client_id, matcher=matcher)
    return {"success": True, "candidate": candidate_to_public(candidate), "matching_scheduled": profile_changed}


@router.delete("/{candidate_id}")
def delete_candidate(
    candidate_id: int,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    candidate = get_tenant_candidate(db, candidate_id, client_id)
    try:
        db.delete(candidate)
        db.commit()
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "deleting candidate")
    return {"success": True, "deleted_candidate_id": candidate_id}


def _load_pair(db: Session, candidate_id: int, job_id: int, client_id: int):
    try:
        candidate = get_tenant_candidate(db, candidate_id, client_id)
        job = get_tenant_job(db, job_id, client_id)
    except NotFoundError:
        raise NotFoundError(get_error_message("pair_not_found")) from None
    return candidate, job


@router.post("/{candidate_id}/jobs/{job_id}/assign", status_code=201)
def assign_job(
    candidate_id: int,
    job_id: int,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
    actor: str = Depends(get_actor),
):
    """Source a candidate for a job. Assigning twice returns the existing row."""
    candidate, job = _load_pair(db, candidate_id, job_id, client_id)

    row = get_score_row(db, candidate_id=candidate.id, job_id=job.id)
    if row is not None:
        return {"success": True, "already_assigned": True, "assignment": assignment_to_public(row)}

    row = CandidateJobMap(candidate_id=candidate.id, job_id=job.id, status="candidate", assigned_by=actor)
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "assigning candidate")

    logger.info("Candidate %s assigned to job %s by %s", candidate.id, job.id, actor)
    return {"success": True, "already_assigned": False, "assignment": assignment_to_public(row)}


@router.patch("/{candidate_id}/jobs/{job_id}/status")
def update_assignment_status(
    candidate_id: int,
    job_id: int,
    payload: AssignmentStatusUpdate,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    candidate, job = _load_pair(db, candidate_id, job_id, client_id)
    status = validate_assignment_status(payload.status)

    row = get_score_row(db, candidate_id=candidate.id, job_id=job.id)
    if row is None:
        raise NotFoundError(get_error_message("assignment_not_found"))

    try:
        row.status = status
        db.commit()
        db.refresh(row)
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "updating assignment status")
    return {"success": True, "assignment": assignment_to_public(row)}


@router.delete("/{candidate_id}/jobs/{job_id}/assign")
def unassign_job(
    candidate_id: int,
    job_id: int,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    """Removes the sourcing row together with its cached score."""
    candidate, job = _load_pair(db, candidate_id, job_id, client_id)

    row = get_score_row(db, candidate_id=candidate.id, job_id=job.id)
    if row is None:
        raise NotFoundError(get_error_message("assignment_not_found"))

    try:
        db.delete(row)
        db.commit()
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "unassigning candidate")
    return {"success": True, "candidate_id": candidate.id, "job_id": job.id}


@router.post("/{candidate_id}/jobs/{job_id}/apply", status_code=201)
def apply_to_job(
    candidate_id: int,
    job_id: int,
    payload: ApplyRequest | None = None,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
    actor: str = Depends(get_actor),
):
    """Create an application at the first pipeline stage and mark the pairing as an applicant."""
    candidate, job = _load_pair(db, candidate_id, job_id, client_id)
    payload = payload or ApplyRequest()

    existing = (
        db.query(Application)
        .filter(Application.candidate_id == candidate.id, Application.job_id == job.id)
        .first()
    )
    if existing is not None:
        raise HTTPException(status_code=409, detail=get_error_message("already_applied"))

    stages = list(job.application_stages or [])
    application = Application(
        job_id=job.id,
        candidate_id=candidate.id,
        status="applied",
        current_stage=1,
        stage_history=[stage_entry(1, stages[0] if stages else "Applied", actor)],
        source=payload.source,
        notes=payload.notes,
    )

    row = get_score_row(db, candidate_id=candidate.id, job_id=job.id)
    if row is None:
        row = CandidateJobMap(candidate_id=candidate.id, job_id=job.id, assigned_by=actor)
        db.add(row)
    row.status = "applicant"

    try:
        db.add(application)
        db.commit()
        db.refresh(application)
        db.refresh(row)
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "creating application")

    logger.info("Application created id=%s candidate=%s job=%s", application.id, candidate.id, job.id)
    return {
        "success": True,
        "application": application_to_public(application),
        "assignment": assignment_to_public(row),
    }
