import logging

from fastapi import APIRouter, Depends

from ..models.candidate import Candidate
from ..models.candidate_job_map import CandidateJobMap
from ..models.job import Job
from ..schemas.ats import ATSScore
from ..services.ats_scoring import ScoreOrchestrator
from ..utils.dependencies import get_client_id, get_orchestrator
from ..utils.error_handlers import NotFoundError, get_error_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ats", tags=["ATS"])


def _job_summary(job: Job) -> dict:
    company = job.company
    return {
        "id": job.id,
        "job_title": job.job_title,
        "department": job.department,
        "location": job.location,
        "job_status": job.job_status,
        "company": {"id": company.id, "name": company.name} if company is not None else None,
    }


def _candidate_summary(candidate: Candidate) -> dict:
    return {
        "id": candidate.id,
        "name": candidate.name,
        "email": candidate.email,
        "position": candidate.position,
    }


def score_to_public(score: ATSScore) -> dict:
    return score.model_dump()


def score_row_to_public(row: CandidateJobMap) -> dict:
    return {
        "id": row.id,
        "candidate_id": row.candidate_id,
        "job_id": row.job_id,
        "status": row.status,
        "assigned_by": row.assigned_by,
        "ats_score": row.ats_score,
        "skills_match": row.skills_match,
        "experience_match": row.experience_match,
        "education_match": row.education_match,
        "ats_analysis": row.ats_analysis,
        "score_failed": bool(row.score_failed),
        "last_scored_at": row.last_scored_at.isoformat() if row.last_scored_at else None,
    }


@router.get("/candidate/{candidate_id}")
async def match_candidate(
    candidate_id: int,
    client_id: int = Depends(get_client_id),
    orchestrator: ScoreOrchestrator = Depends(get_orchestrator),
):
    """Rescore a candidate against every open job and rank best first."""
    ranked = await orchestrator.match_candidate_across_jobs(candidate_id, client_id)
    return [{"job": _job_summary(m.job), **score_to_public(m.score)} for m in ranked]


@router.get("/job/{job_id}")
async def match_job(
    job_id: int,
    client_id: int = Depends(get_client_id),
    orchestrator: ScoreOrchestrator = Depends(get_orchestrator),
):
    """Rescore every candidate against a job and rank best first."""
    ranking = await orchestrator.match_job_across_candidates(job_id, client_id)
    return {
        "job_id": ranking.job_id,
        "total_candidates": ranking.total_candidates,
        "candidate_scores": [
            {"candidate": _candidate_summary(m.candidate), **score_to_public(m.score)}
            for m in ranking.candidate_scores
        ],
    }


@router.get("/candidate/{candidate_id}/scores")
def candidate_scores(
    candidate_id: int,
    client_id: int = Depends(get_client_id),
    orchestrator: ScoreOrchestrator = Depends(get_orchestrator),
):
    rows = orchestrator.get_candidate_scores(candidate_id, client_id)
    return [{**score_row_to_public(r), "job": _job_summary(r.job)} for r in rows]


@router.get("/job/{job_id}/scores")
def job_scores(
    job_id: int,
    client_id: int = Depends(get_client_id),
    orchestrator: ScoreOrchestrator = Depends(get_orchestrator),
):
    rows = orchestrator.get_job_scores(job_id, client_id)
    return [{**score_row_to_public(r), "candidate": _candidate_summary(r.candidate)} for r in rows]


@router.get("/score/{candidate_id}/{job_id}")
async def single_score(
    candidate_id: int,
    job_id: int,
    client_id: int = Depends(get_client_id),
    orchestrator: ScoreOrchestrator = Depends(get_orchestrator),
):
    """Fresh matcher call for one pair. Nothing is cached."""
    try:
        score = await orchestrator.calculate_score(candidate_id, job_id, client_id)
    except NotFoundError:
        raise NotFoundError(get_error_message("pair_not_found")) from None
    return score_to_public(score)


@router.get("/ensure/{candidate_id}/{job_id}")
async def ensure_score(
    candidate_id: int,
    job_id: int,
    client_id: int = Depends(get_client_id),
    orchestrator: ScoreOrchestrator = Depends(get_orchestrator),
):
    """Serve the cached score for one pair, recomputing it when missing or stale."""
    try:
        score = await orchestrator.ensure_score(candidate_id, job_id, client_id)
    except NotFoundError:
        raise NotFoundError(get_error_message("pair_not_found")) from None
    return score_to_public(score)
