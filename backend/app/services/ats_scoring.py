"""
ATS score orchestration.

Decides per (candidate, job) pair whether a cached score can be served or the
matcher must be called, and persists fresh results to the score store.
Matcher failures never abort a batch: the failing item gets a zero placeholder.
Only a missing entity or a tenant mismatch raises (NotFoundError).
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import config, database
from ..models.candidate import Candidate
from ..models.candidate_job_map import CandidateJobMap
from ..models.company import Company
from ..models.job import Job
from ..schemas.ats import ATSScore
from ..utils.error_handlers import NotFoundError, get_error_message
from .matcher import Matcher, candidate_profile, job_profile
from .score_store import (
    get_score_row,
    get_score_rows_for_job,
    is_fresh,
    row_to_score,
    upsert_score,
)
from .tenancy import candidates_query, get_tenant_candidate, get_tenant_job, jobs_query

logger = logging.getLogger(__name__)


@dataclass
class JobMatch:
    job: Job
    score: ATSScore


@dataclass
class CandidateMatch:
    candidate: Candidate
    score: ATSScore


@dataclass
class JobRanking:
    job_id: int
    total_candidates: int
    candidate_scores: list[CandidateMatch]


class ScoreOrchestrator:
    def __init__(
        self,
        db: Session,
        matcher: Matcher,
        *,
        staleness: timedelta | None = None,
        open_job_statuses: Iterable[str] | None = None,
    ):
        self.db = db
        self.matcher = matcher
        self.staleness = staleness or timedelta(days=config.ATS_STALENESS_DAYS)
        self.open_job_statuses = tuple(open_job_statuses or config.ATS_OPEN_JOB_STATUSES)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def _score_pair(self, candidate: Candidate, job: Job) -> ATSScore:
        try:
            return await self.matcher.score(candidate_profile(candidate), job_profile(job))
        except Exception:
            logger.exception("ATS scoring failed candidate=%s job=%s", candidate.id, job.id)
            return ATSScore.zero("Error calculating score")

    def _store(self, candidate_id: int, job_id: int, score: ATSScore) -> None:
        try:
            upsert_score(self.db, candidate_id=candidate_id, job_id=job_id, score=score)
        except SQLAlchemyError:
            logger.exception("Failed to store ATS score candidate=%s job=%s", candidate_id, job_id)
            self.db.rollback()

    async def calculate_score(self, candidate_id: int, job_id: int, client_id: int) -> ATSScore:
        """Always calls the matcher; nothing is read from or written to the score store."""
        candidate = get_tenant_candidate(self.db, candidate_id, client_id, with_profile=True)
        job = get_tenant_job(self.db, job_id, client_id)
        return await self._score_pair(candidate, job)

    async def ensure_score(self, candidate_id: int, job_id: int, client_id: int) -> ATSScore:
        candidate = get_tenant_candidate(self.db, candidate_id, client_id, with_profile=True)
        job = get_tenant_job(self.db, job_id, client_id)

        row = get_score_row(self.db, candidate_id=candidate.id, job_id=job.id)
        if is_fresh(row, staleness=self.staleness):
            logger.debug("ATS cache hit candidate=%s job=%s", candidate.id, job.id)
            return row_to_score(row)

        score = await self._score_pair(candidate, job)
        upsert_score(self.db, candidate_id=candidate.id, job_id=job.id, score=score)
        logger.info("ATS score computed candidate=%s job=%s score=%s", candidate.id, job.id, score.ats_score)
        return score

    async def ensure_scores_bulk(self, candidate_ids: list[int], job_id: int, client_id: int) -> dict[int, ATSScore]:
        """
        Cache-aware scoring of many candidates against one job.

        Returns an entry for every requested id. Only stale or missing pairs reach
        the matcher, and those calls run concurrently.
        """
        job = get_tenant_job(self.db, job_id, client_id)
        ids = list(dict.fromkeys(int(c) for c in candidate_ids))

        cached = get_score_rows_for_job(self.db, candidate_ids=ids, job_id=job.id)
        results: dict[int, ATSScore] = {}
        stale: list[int] = []
        for cid in ids:
            row = cached.get(cid)
            if is_fresh(row, staleness=self.staleness):
                results[cid] = row_to_score(row)
            else:
                stale.append(cid)

        if stale:
            logger.info("ATS bulk job=%s cached=%s recompute=%s", job.id, len(results), len(stale))
            candidates = candidates_query(self.db, client_id, with_profile=True).filter(Candidate.id.in_(stale)).all()
            scores = await asyncio.gather(*(self._score_pair(c, job) for c in candidates))
            for candidate, score in zip(candidates, scores):
                self._store(candidate.id, job.id, score)
                results[int(candidate.id)] = score

            for cid in stale:
                if cid not in results:
                    results[cid] = ATSScore.zero(get_error_message("candidate_not_found"))

        return {cid: results[cid] for cid in ids}

    async def match_candidate_across_jobs(self, candidate_id: int, client_id: int) -> list[JobMatch]:
        """Rescore one candidate against every open tenant job, best match first."""
        candidate = get_tenant_candidate(self.db, candidate_id, client_id, with_profile=True)
        jobs = (
            jobs_query(self.db, client_id)
            .filter(Job.job_status.in_(self.open_job_statuses))
            .order_by(Job.id)
            .all()
        )
        logger.info("ATS matching candidate=%s against %s open jobs client=%s", candidate.id, len(jobs), client_id)

        scores = await asyncio.gather(*(self._score_pair(candidate, job) for job in jobs))
        # sorted() is stable: ties keep database order.
        ranked = sorted(
            (JobMatch(job=job, score=score) for job, score in zip(jobs, scores)),
            key=lambda m: m.score.ats_score,
            reverse=True,
        )
        for m in ranked:
            self._store(candidate.id, m.job.id, m.score)
        return ranked

    async def match_job_across_candidates(self, job_id: int, client_id: int) -> JobRanking:
        """Rescore every tenant candidate against one job, best match first."""
        job = get_tenant_job(self.db, job_id, client_id)
        candidates = candidates_query(self.db, client_id, with_profile=True).order_by(Candidate.id).all()
        logger.info("ATS matching job=%s against %s candidates client=%s", job.id, len(candidates), client_id)

        scores = await asyncio.gather(*(self._score_pair(c, job) for c in candidates))
        ranked = sorted(
            (CandidateMatch(candidate=c, score=s) for c, s in zip(candidates, scores)),
            key=lambda m: m.score.ats_score,
            reverse=True,
        )
        for m in ranked:
            self._store(m.candidate.id, job.id, m.score)
        return JobRanking(job_id=job.id, total_candidates=len(candidates), candidate_scores=ranked)

    # ------------------------------------------------------------------
    # Cached reads
    # ------------------------------------------------------------------

    def get_candidate_scores(self, candidate_id: int, client_id: int) -> list[CandidateJobMap]:
        candidate = get_tenant_candidate(self.db, candidate_id, client_id, with_profile=True)
        return (
            self.db.query(CandidateJobMap)
            .join(Job, CandidateJobMap.job_id == Job.id)
            .join(Company, Job.company_id == Company.id)
            .options(selectinload(CandidateJobMap.job))
            .filter(CandidateJobMap.candidate_id == candidate.id, Company.client_id == client_id)
            .order_by(CandidateJobMap.id)
            .all()
        )

    def get_job_scores(self, job_id: int, client_id: int) -> list[CandidateJobMap]:
        job = get_tenant_job(self.db, job_id, client_id)
        return (
            self.db.query(CandidateJobMap)
            .join(Candidate, CandidateJobMap.candidate_id == Candidate.id)
            .options(selectinload(CandidateJobMap.candidate))
            .filter(CandidateJobMap.job_id == job.id, Candidate.client_id == client_id)
            .order_by(CandidateJobMap.id)
            .all()
        )


async def rematch_candidate_task(*, candidate_id: int, client_id: int, matcher: Matcher) -> None:
    """Background rescoring after a candidate profile changes."""
    db = database.SessionLocal()
    try:
        ranked = await ScoreOrchestrator(db, matcher).match_candidate_across_jobs(candidate_id, client_id)
        logger.info("Background match candidate=%s processed %s jobs", candidate_id, len(ranked))
    except NotFoundError:
        logger.warning("Background match skipped: candidate=%s no longer exists", candidate_id)
    except Exception:
        logger.exception("Background match failed candidate=%s", candidate_id)
    finally:
        db.close()


async def rematch_job_task(*, job_id: int, client_id: int, matcher: Matcher) -> None:
    """Background rescoring after a job is created or its requirements change."""
    db = database.SessionLocal()
    try:
        ranking = await ScoreOrchestrator(db, matcher).match_job_across_candidates(job_id, client_id)
        logger.info("Background match job=%s processed %s candidates", job_id, ranking.total_candidates)
    except NotFoundError:
        logger.warning("Background match skipped: job=%s no longer exists", job_id)
    except Exception:
        logger.exception("Background match failed job=%s", job_id)
    finally:
        db.close()
