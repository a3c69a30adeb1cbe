import asyncio
from datetime import timedelta

import pytest


def _orchestrator(db_session, matcher, **kwargs):
    from backend.app.services.ats_scoring import ScoreOrchestrator

    return ScoreOrchestrator(db_session, matcher, **kwargs)


def _score(ats, s=0.0, e=0.0, d=0.0, analysis="ok"):
    from backend.app.schemas.ats import ATSScore

    return ATSScore(ats_score=ats, skills_match=s, experience_match=e, education_match=d, analysis=analysis)


def test_ensure_score_computes_then_serves_from_cache(db_session, seed, matcher):
    company = seed.company()
    job = seed.job(company)
    candidate = seed.candidate()
    orch = _orchestrator(db_session, matcher)

    first = asyncio.run(orch.ensure_score(candidate.id, job.id, 1))
    second = asyncio.run(orch.ensure_score(candidate.id, job.id, 1))

    assert first.ats_score == 73
    assert second.model_dump() == first.model_dump()
    assert matcher.calls == [(candidate.id, job.id)]


def test_ensure_score_recomputes_stale_row(db_session, seed, matcher):
    from backend.app.services.score_store import get_score_row, upsert_score, utcnow

    company = seed.company()
    job = seed.job(company)
    candidate = seed.candidate()
    upsert_score(
        db_session,
        candidate_id=candidate.id,
        job_id=job.id,
        score=_score(40, 40, 40, 40, "old"),
        scored_at=utcnow() - timedelta(days=8),
    )

    result = asyncio.run(_orchestrator(db_session, matcher).ensure_score(candidate.id, job.id, 1))

    assert result.ats_score == 73
    assert matcher.calls == [(candidate.id, job.id)]
    db_session.expire_all()
    row = get_score_row(db_session, candidate_id=candidate.id, job_id=job.id)
    assert row.ats_score == 73
    assert row.ats_analysis == "Good overall fit"


def test_ensure_score_serves_row_inside_window(db_session, seed, matcher):
    from backend.app.services.score_store import upsert_score, utcnow

    company = seed.company()
    job = seed.job(company)
    candidate = seed.candidate()
    upsert_score(
        db_session,
        candidate_id=candidate.id,
        job_id=job.id,
        score=_score(40, 40, 40, 40, "six days old"),
        scored_at=utcnow() - timedelta(days=6),
    )

    result = asyncio.run(_orchestrator(db_session, matcher).ensure_score(candidate.id, job.id, 1))

    assert result.ats_score == 40
    assert result.analysis == "six days old"
    assert matcher.calls == []


def test_failed_score_is_stored_but_retried(db_session, seed, matcher):
    from backend.app.services.score_store import get_score_row

    company = seed.company()
    job = seed.job(company)
    candidate = seed.candidate()
    matcher.raise_for.add((candidate.id, job.id))
    orch = _orchestrator(db_session, matcher)

    first = asyncio.run(orch.ensure_score(candidate.id, job.id, 1))
    assert first.ats_score == 0
    assert first.failed is True
    assert first.analysis == "Error calculating score"
    db_session.expire_all()
    assert get_score_row(db_session, candidate_id=candidate.id, job_id=job.id).score_failed is True

    matcher.raise_for.clear()
    second = asyncio.run(orch.ensure_score(candidate.id, job.id, 1))
    assert second.ats_score == 73
    assert len(matcher.calls) == 2


def test_calculate_score_never_touches_store(db_session, seed, matcher):
    from backend.app.services.score_store import get_score_row

    company = seed.company()
    job = seed.job(company)
    candidate = seed.candidate()
    orch = _orchestrator(db_session, matcher)

    asyncio.run(orch.calculate_score(candidate.id, job.id, 1))
    asyncio.run(orch.calculate_score(candidate.id, job.id, 1))

    assert len(matcher.calls) == 2
    assert get_score_row(db_session, candidate_id=candidate.id, job_id=job.id) is None


def test_cross_tenant_pair_is_not_found(db_session, seed, matcher):
    from backend.app.utils.error_handlers import NotFoundError

    own_company = seed.company(client_id=1)
    other_company = seed.company(client_id=2, name="Globex")
    own_job = seed.job(own_company)
    other_job = seed.job(other_company)
    own_candidate = seed.candidate(client_id=1)
    other_candidate = seed.candidate(client_id=2, name="Grace Hopper")
    orch = _orchestrator(db_session, matcher)

    with pytest.raises(NotFoundError):
        asyncio.run(orch.ensure_score(own_candidate.id, other_job.id, 1))
    with pytest.raises(NotFoundError):
        asyncio.run(orch.ensure_score(other_candidate.id, own_job.id, 1))
    with pytest.raises(NotFoundError):
        asyncio.run(orch.match_candidate_across_jobs(other_candidate.id, 1))
    with pytest.raises(NotFoundError):
        asyncio.run(orch.match_job_across_candidates(other_job.id, 1))
    assert matcher.calls == []


def test_match_candidate_across_jobs_ranks_open_jobs(db_session, seed, matcher):
    company = seed.company()
    low = seed.job(company, title="Data Analyst")
    high = seed.job(company, title="Platform Engineer")
    closed = seed.job(company, title="Legacy Role", status="closed")
    other_tenant_job = seed.job(seed.company(client_id=2, name="Globex"), title="Elsewhere")
    candidate = seed.candidate()
    matcher.scores[(candidate.id, low.id)] = _score(30)
    matcher.scores[(candidate.id, high.id)] = _score(90)

    ranked = asyncio.run(_orchestrator(db_session, matcher).match_candidate_across_jobs(candidate.id, 1))

    assert [m.job.id for m in ranked] == [high.id, low.id]
    assert [m.score.ats_score for m in ranked] == [90, 30]
    scored_jobs = {job_id for _, job_id in matcher.calls}
    assert closed.id not in scored_jobs
    assert other_tenant_job.id not in scored_jobs


def test_match_job_across_candidates_ties_keep_insertion_order(db_session, seed, matcher):
    company = seed.company()
    job = seed.job(company)
    a = seed.candidate(name="Alan Turing")
    b = seed.candidate(name="Barbara Liskov")
    c = seed.candidate(name="Claude Shannon")
    matcher.scores[(a.id, job.id)] = _score(60)
    matcher.scores[(b.id, job.id)] = _score(85)
    matcher.scores[(c.id, job.id)] = _score(60)

    ranking = asyncio.run(_orchestrator(db_session, matcher).match_job_across_candidates(job.id, 1))

    assert ranking.job_id == job.id
    assert ranking.total_candidates == 3
    assert [m.candidate.id for m in ranking.candidate_scores] == [b.id, a.id, c.id]


def test_match_job_isolates_failures(db_session, seed, matcher):
    from backend.app.services.score_store import get_score_rows_for_job

    company = seed.company()
    job = seed.job(company)
    good = seed.candidate(name="Good Candidate")
    bad = seed.candidate(name="Bad Candidate")
    matcher.raise_for.add((bad.id, job.id))

    ranking = asyncio.run(_orchestrator(db_session, matcher).match_job_across_candidates(job.id, 1))

    by_id = {m.candidate.id: m.score for m in ranking.candidate_scores}
    assert by_id[good.id].ats_score == 73
    assert by_id[bad.id].ats_score == 0
    assert by_id[bad.id].analysis == "Error calculating score"
    db_session.expire_all()
    rows = get_score_rows_for_job(db_session, candidate_ids=[good.id, bad.id], job_id=job.id)
    assert set(rows) == {good.id, bad.id}


def test_ensure_scores_bulk_mixes_cache_and_recompute(db_session, seed, matcher):
    from backend.app.services.score_store import upsert_score

    company = seed.company()
    job = seed.job(company)
    cached = seed.candidate(name="Cached Person")
    fresh = seed.candidate(name="Fresh Person")
    failing = seed.candidate(name="Failing Person")
    upsert_score(db_session, candidate_id=cached.id, job_id=job.id, score=_score(55, 55, 55, 55, "cached"))
    matcher.raise_for.add((failing.id, job.id))

    missing_id = 999_999
    results = asyncio.run(
        _orchestrator(db_session, matcher).ensure_scores_bulk([fresh.id, cached.id, failing.id, missing_id], job.id, 1)
    )

    assert list(results) == [fresh.id, cached.id, failing.id, missing_id]
    assert results[cached.id].ats_score == 55
    assert results[fresh.id].ats_score == 73
    assert results[failing.id].ats_score == 0
    assert results[failing.id].failed is True
    assert results[missing_id].ats_score == 0
    assert results[missing_id].analysis == "Candidate not found"
    assert sorted(matcher.calls) == sorted([(fresh.id, job.id), (failing.id, job.id)])


def test_ensure_scores_bulk_ignores_other_tenant_candidates(db_session, seed, matcher):
    company = seed.company()
    job = seed.job(company)
    outsider = seed.candidate(client_id=2, name="Outside Person")

    results = asyncio.run(_orchestrator(db_session, matcher).ensure_scores_bulk([outsider.id], job.id, 1))

    assert results[outsider.id].ats_score == 0
    assert results[outsider.id].failed is True
    assert matcher.calls == []


def test_rescoring_keeps_assignment_status(db_session, seed, matcher):
    from backend.app.models.candidate_job_map import CandidateJobMap
    from backend.app.services.score_store import get_score_row

    company = seed.company()
    job = seed.job(company)
    candidate = seed.candidate()
    db_session.add(CandidateJobMap(candidate_id=candidate.id, job_id=job.id, status="rejected", assigned_by="Recruiter"))
    db_session.commit()

    asyncio.run(_orchestrator(db_session, matcher).match_job_across_candidates(job.id, 1))

    db_session.expire_all()
    row = get_score_row(db_session, candidate_id=candidate.id, job_id=job.id)
    assert row.status == "rejected"
    assert row.assigned_by == "Recruiter"
    assert row.ats_score == 73
    assert db_session.query(CandidateJobMap).count() == 1


def test_upsert_then_read_back_round_trip(db_session, seed, matcher):
    from backend.app.services.score_store import upsert_score

    company = seed.company()
    job = seed.job(company)
    candidate = seed.candidate()
    upsert_score(
        db_session,
        candidate_id=candidate.id,
        job_id=job.id,
        score=_score(81, 75.5, 90.0, 70.25, "Detailed analysis text"),
    )

    rows = _orchestrator(db_session, matcher).get_candidate_scores(candidate.id, 1)

    assert len(rows) == 1
    row = rows[0]
    assert (row.skills_match, row.experience_match, row.education_match) == (75.5, 90.0, 70.25)
    assert row.ats_analysis == "Detailed analysis text"
    assert row.job.id == job.id


def test_custom_staleness_window(db_session, seed, matcher):
    from backend.app.services.score_store import upsert_score, utcnow

    company = seed.company()
    job = seed.job(company)
    candidate = seed.candidate()
    upsert_score(
        db_session,
        candidate_id=candidate.id,
        job_id=job.id,
        score=_score(40, 40, 40, 40, "two hours old"),
        scored_at=utcnow() - timedelta(hours=2),
    )

    orch = _orchestrator(db_session, matcher, staleness=timedelta(hours=1))
    result = asyncio.run(orch.ensure_score(candidate.id, job.id, 1))
    assert result.ats_score == 73


def test_is_fresh_rules():
    from backend.app.models.candidate_job_map import CandidateJobMap
    from backend.app.services.score_store import is_fresh, utcnow

    now = utcnow()
    window = timedelta(days=7)
    row = CandidateJobMap(ats_score=50.0, ats_analysis="ok", score_failed=False, last_scored_at=now - timedelta(days=1))
    assert is_fresh(row, staleness=window, now=now) is True
    assert is_fresh(None, staleness=window, now=now) is False

    row.last_scored_at = now - timedelta(days=7)
    assert is_fresh(row, staleness=window, now=now) is False

    row.last_scored_at = (now - timedelta(days=1)).replace(tzinfo=None)
    assert is_fresh(row, staleness=window, now=now) is True

    row.ats_analysis = "  "
    assert is_fresh(row, staleness=window, now=now) is False

    row.ats_analysis = "ok"
    row.score_failed = True
    assert is_fresh(row, staleness=window, now=now) is False
