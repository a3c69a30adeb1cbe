import asyncio
import json

import pytest


def _gemini(**overrides):
    from backend.app.services.matcher import GeminiMatcher

    kwargs = {
        "api_key": "test-key",
        "model": "gemini-test",
        "base_url": "https://gemini.invalid",
    }
    kwargs.update(overrides)
    return GeminiMatcher(**kwargs)


def _profiles():
    from backend.app.schemas.ats import CandidateProfile, JobProfile

    candidate = CandidateProfile(id=1, name="Ada", skills=["Python"])
    job = JobProfile(id=2, title="Backend Engineer", requiredSkills=["Python", "SQL"])
    return candidate, job


def _fake_generate(text: str):
    from backend.app.services.ai_client import GeminiMeta

    async def fake(**kwargs):
        return text, GeminiMeta(model="gemini-test", latency_ms=1, status_code=200, retries=0)

    return fake


def _failing_generate(exc: Exception):
    async def fake(**kwargs):
        raise exc

    return fake


def test_compute_ats_score_uses_fixed_weights():
    from backend.app.services.matcher import compute_ats_score

    # 0.4*50 + 0.35*80 + 0.25*100 = 73
    assert compute_ats_score(50, 80, 100) == 73
    assert compute_ats_score(0, 0, 0) == 0
    assert compute_ats_score(100, 100, 100) == 100


def test_parse_analysis_response_valid():
    from backend.app.services.matcher import parse_analysis_response

    score = parse_analysis_response(json.dumps({
        "skillsMatch": 50,
        "experienceMatch": 80,
        "educationMatch": 100,
        "analysis": "Knows Python, lacks SQL.",
    }))
    assert score.ats_score == 73
    assert (score.skills_match, score.experience_match, score.education_match) == (50.0, 80.0, 100.0)
    assert score.analysis == "Knows Python, lacks SQL."
    assert score.failed is False


def test_parse_analysis_response_clamps_out_of_range():
    from backend.app.services.matcher import parse_analysis_response

    score = parse_analysis_response('{"skillsMatch": 150, "experienceMatch": -5, "educationMatch": 100.0}')
    assert score.skills_match == 100.0
    assert score.experience_match == 0.0
    assert score.ats_score == 65  # 40 + 0 + 25
    for value in (score.skills_match, score.experience_match, score.education_match):
        assert 0.0 <= value <= 100.0


def test_parse_analysis_response_defaults_missing_analysis():
    from backend.app.services.matcher import parse_analysis_response

    score = parse_analysis_response('{"skillsMatch": 10, "experienceMatch": 10, "educationMatch": 10}')
    assert score.analysis == "No detailed analysis provided"
    assert score.failed is False


@pytest.mark.parametrize("value", ['"80"', "true", "null", '[80]'])
def test_parse_analysis_response_rejects_non_numeric(value):
    from backend.app.services.matcher import parse_analysis_response

    score = parse_analysis_response(
        '{"skillsMatch": %s, "experienceMatch": 80, "educationMatch": 100}' % value
    )
    assert score.failed is True
    assert score.ats_score == 0
    assert (score.skills_match, score.experience_match, score.education_match) == (0.0, 0.0, 0.0)
    assert score.analysis == "Error parsing analysis: Invalid score format in response"


@pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
def test_parse_analysis_response_rejects_non_finite(value):
    from backend.app.services.matcher import parse_analysis_response

    score = parse_analysis_response(
        '{"skillsMatch": %s, "experienceMatch": 80, "educationMatch": 100, "analysis": "x"}' % value
    )
    assert score.failed is True
    assert score.ats_score == 0
    assert score.analysis == "Error parsing analysis: Invalid score format in response"


def test_gemini_matcher_nan_score_is_zero_not_exception(monkeypatch):
    import backend.app.services.matcher as matcher_mod

    monkeypatch.setattr(
        matcher_mod,
        "gemini_generate_content",
        _fake_generate('{"skillsMatch": NaN, "experienceMatch": 80, "educationMatch": 100, "analysis": "x"}'),
    )
    candidate, job = _profiles()
    score = asyncio.run(_gemini().score(candidate, job))
    assert score.failed is True
    assert score.ats_score == 0
    assert score.analysis == "Error parsing analysis: Invalid score format in response"


def test_parse_analysis_response_missing_field_is_zero():
    from backend.app.services.matcher import parse_analysis_response

    score = parse_analysis_response('{"skillsMatch": 80, "experienceMatch": 80}')
    assert score.failed is True
    assert score.ats_score == 0
    assert score.analysis.startswith("Error parsing analysis:")


def test_parse_analysis_response_tolerates_prose():
    from backend.app.services.matcher import parse_analysis_response

    score = parse_analysis_response(
        'Sure! Here is the result:\n{"skillsMatch": 80, "experienceMatch": 80, "educationMatch": 80, '
        '"analysis": "Strong"}\nLet me know if you need more.'
    )
    assert score.ats_score == 80
    assert score.analysis == "Strong"


def test_parse_analysis_response_without_json():
    from backend.app.services.matcher import parse_analysis_response

    score = parse_analysis_response("The candidate looks great.")
    assert score.failed is True
    assert score.analysis == "Error parsing analysis: No JSON object found in AI response"


def test_gemini_matcher_scores_from_model_text(monkeypatch):
    import backend.app.services.matcher as matcher_mod

    monkeypatch.setattr(
        matcher_mod,
        "gemini_generate_content",
        _fake_generate('{"skillsMatch": 50, "experienceMatch": 80, "educationMatch": 100, "analysis": "ok"}'),
    )
    candidate, job = _profiles()
    score = asyncio.run(_gemini().score(candidate, job))
    assert score.ats_score == 73
    assert score.failed is False


@pytest.mark.parametrize("exc, expected", [
    ("http", "Error analyzing match: HTTP 429"),
    ("timeout", "Error analyzing match: Gemini request timed out"),
    ("boom", "Error analyzing match: RuntimeError"),
])
def test_gemini_matcher_is_fail_soft(monkeypatch, exc, expected):
    import backend.app.services.matcher as matcher_mod
    from backend.app.services.ai_client import AIClientHTTPError, AIClientTimeout

    errors = {
        "http": AIClientHTTPError(status_code=429, message="quota"),
        "timeout": AIClientTimeout("Gemini request timed out"),
        "boom": RuntimeError("unexpected"),
    }
    monkeypatch.setattr(matcher_mod, "gemini_generate_content", _failing_generate(errors[exc]))
    candidate, job = _profiles()
    score = asyncio.run(_gemini().score(candidate, job))
    assert score.failed is True
    assert score.ats_score == 0
    assert score.analysis == expected


def test_gemini_matcher_without_key_returns_zero():
    candidate, job = _profiles()
    score = asyncio.run(_gemini(api_key="").score(candidate, job))
    assert score.failed is True
    assert score.analysis == "Error analyzing match: Missing GEMINI_API_KEY"


def test_parse_job_requirements_normalizes(monkeypatch):
    import backend.app.services.matcher as matcher_mod

    monkeypatch.setattr(
        matcher_mod,
        "gemini_generate_content",
        _fake_generate(
            '```json\n{"requiredSkills": ["Python", "  ", "SQL"], '
            '"requiredExperience": "Senior", "requiredEducation": "high_school"}\n```'
        ),
    )
    reqs = asyncio.run(_gemini().parse_job_requirements("We need a senior Python dev"))
    assert reqs.required_skills == ["Python", "SQL"]
    assert reqs.required_experience == "senior"
    assert reqs.required_education == "high school"


def test_parse_job_requirements_drops_unknown_levels(monkeypatch):
    import backend.app.services.matcher as matcher_mod

    monkeypatch.setattr(
        matcher_mod,
        "gemini_generate_content",
        _fake_generate('{"requiredSkills": "Python", "requiredExperience": "guru", "requiredEducation": 3}'),
    )
    reqs = asyncio.run(_gemini().parse_job_requirements("anything"))
    assert reqs.required_skills == []
    assert reqs.required_experience is None
    assert reqs.required_education is None


def test_parse_job_requirements_failure_returns_empty(monkeypatch):
    import backend.app.services.matcher as matcher_mod
    from backend.app.services.ai_client import AIClientError

    monkeypatch.setattr(matcher_mod, "gemini_generate_content", _failing_generate(AIClientError("down")))
    reqs = asyncio.run(_gemini().parse_job_requirements("anything"))
    assert reqs.model_dump() == {
        "required_skills": [],
        "required_experience": None,
        "required_education": None,
    }


def test_profiles_built_from_models(seed):
    from backend.app.services.matcher import candidate_profile, job_profile

    company = seed.company()
    job = seed.job(company, skills=["Python", "SQL"])
    candidate = seed.candidate(skills=["Python", "Docker"])

    cp = candidate_profile(candidate)
    assert cp.id == candidate.id
    assert sorted(cp.skills) == ["Docker", "Python"]
    assert cp.experiences[0].title == "Developer"
    assert cp.experiences[0].isCurrentRole is True
    assert cp.educations[0].degree == "BSc"

    jp = job_profile(job)
    assert jp.title == "Backend Engineer"
    assert jp.requiredSkills == ["Python", "SQL"]
    assert jp.requiredExperience == "mid"
    assert jp.requiredEducation == "bachelor"
