"""
Tenant-scoped lookups.

Every query filters on the caller's client_id. A row owned by another tenant is
indistinguishable from a missing row: both raise NotFoundError.
"""

from sqlalchemy.orm import Query, Session, selectinload

from ..models.application import Application
from ..models.candidate import Candidate
from ..models.company import Company
from ..models.job import Job
from ..models.skill import CandidateSkillMap
from ..utils.error_handlers import NotFoundError, get_error_message


def candidates_query(db: Session, client_id: int, *, with_profile: bool = False) -> Query:
    q = db.query(Candidate).filter(Candidate.client_id == client_id)
    if with_profile:
        q = q.options(
            selectinload(Candidate.skill_maps).selectinload(CandidateSkillMap.skill),
            selectinload(Candidate.experiences),
            selectinload(Candidate.educations),
        )
    return q


def jobs_query(db: Session, client_id: int) -> Query:
    return db.query(Job).join(Company, Job.company_id == Company.id).filter(Company.client_id == client_id)


def get_tenant_candidate(db: Session, candidate_id: int, client_id: int, *, with_profile: bool = False) -> Candidate:
    candidate = candidates_query(db, client_id, with_profile=with_profile).filter(Candidate.id == candidate_id).first()
    if candidate is None:
        raise NotFoundError(get_error_message("candidate_not_found"))
    return candidate


def get_tenant_job(db: Session, job_id: int, client_id: int) -> Job:
    job = jobs_query(db, client_id).filter(Job.id == job_id).first()
    if job is None:
        raise NotFoundError(get_error_message("job_not_found"))
    return job


def get_tenant_company(db: Session, company_id: int, client_id: int) -> Company:
    company = db.query(Company).filter(Company.id == company_id, Company.client_id == client_id).first()
    if company is None:
        raise NotFoundError(get_error_message("company_not_found"))
    return company


def get_tenant_application(db: Session, application_id: int, client_id: int) -> Application:
    application = (
        db.query(Application)
        .join(Candidate, Application.candidate_id == Candidate.id)
        .filter(Application.id == application_id, Candidate.client_id == client_id)
        .first()
    )
    if application is None:
        raise NotFoundError(get_error_message("application_not_found"))
    return application
