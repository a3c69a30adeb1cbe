"""
External matcher: asks a generative-language model how well a candidate fits a job.

The matcher is fail-soft. `score()` always returns a well-formed ATSScore; any
transport, configuration or parse problem becomes a zero score whose analysis
text carries the reason.
"""

import logging
from typing import Protocol

from pydantic import ValidationError

from .. import config
from ..models.candidate import Candidate
from ..models.job import Job
from ..schemas.ats import (
    AIMatchBreakdown,
    ATSScore,
    CandidateProfile,
    EducationProfile,
    ExperienceProfile,
    JobProfile,
    JobRequirements,
)
from .ai_client import AIClientError, AIClientHTTPError, gemini_generate_content
from .ai_common import extract_first_json_object, round_half_up
from .ai_prompts import ats_match_system_prompt, ats_match_user_prompt, job_requirements_user_prompt


logger = logging.getLogger(__name__)


class Matcher(Protocol):
    async def score(self, candidate: CandidateProfile, job: JobProfile) -> ATSScore: ...

    async def parse_job_requirements(self, requirements_text: str) -> JobRequirements: ...


def compute_ats_score(skills_match: float, experience_match: float, education_match: float) -> int:
    w_skills, w_experience, w_education = config.ATS_SCORE_WEIGHTS
    return round_half_up(skills_match * w_skills + experience_match * w_experience + education_match * w_education)


def _error_reason(e: Exception) -> str:
    if isinstance(e, ValidationError):
        errors = e.errors()
        if errors:
            msg = str(errors[0].get("msg") or "")
            # pydantic prefixes custom ValueErrors with "Value error, "
            return msg.split(", ", 1)[1] if msg.startswith("Value error, ") else msg
    return str(e) or type(e).__name__


def parse_analysis_response(text: str) -> ATSScore:
    try:
        obj = extract_first_json_object(text)
        parsed = AIMatchBreakdown.model_validate(obj)
        return ATSScore(
            ats_score=compute_ats_score(parsed.skillsMatch, parsed.experienceMatch, parsed.educationMatch),
            skills_match=parsed.skillsMatch,
            experience_match=parsed.experienceMatch,
            education_match=parsed.educationMatch,
            analysis=(parsed.analysis or "").strip() or "No detailed analysis provided",
        )
    except (ValueError, ValidationError) as e:
        return ATSScore.zero(f"Error parsing analysis: {_error_reason(e)}")


def candidate_profile(candidate: Candidate) -> CandidateProfile:
    return CandidateProfile(
        id=candidate.id,
        name=candidate.name,
        skills=candidate.skill_titles,
        experiences=[
            ExperienceProfile(
                title=e.title,
                company=e.company,
                startDate=e.start_date,
                endDate=e.end_date,
                description=e.description,
                isCurrentRole=bool(e.is_current_role),
            )
            for e in candidate.experiences
        ],
        educations=[
            EducationProfile(
                degree=e.degree,
                institution=e.institution,
                fieldOfStudy=e.field_of_study,
                startDate=e.start_date,
                endDate=e.end_date,
                location=e.location,
            )
            for e in candidate.educations
        ],
    )


def job_profile(job: Job) -> JobProfile:
    return JobProfile(
        id=job.id,
        title=job.job_title,
        requiredSkills=[str(s) for s in (job.required_skills or [])],
        requiredExperience=job.required_experience,
        requiredEducation=job.required_education,
        description=job.description,
        responsibilities=job.responsibilities,
    )


class GeminiMatcher:
    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        base_url: str,
        api_version: str = "v1",
        timeout_s: float = 20.0,
        max_retries: int = 0,
        log_payloads: bool = False,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.api_version = api_version
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.log_payloads = log_payloads

    @classmethod
    def from_config(cls) -> "GeminiMatcher":
        return cls(
            api_key=config.GEMINI_API_KEY,
            model=config.GEMINI_MODEL,
            base_url=config.GEMINI_BASE_URL,
            api_version=config.GEMINI_API_VERSION,
            timeout_s=config.AI_TIMEOUT_S,
            max_retries=config.AI_MAX_RETRIES,
            log_payloads=config.AI_LOG_PAYLOADS,
        )

    async def _generate(self, *, user_text: str, system_text: str | None = None) -> str:
        text, _meta = await gemini_generate_content(
            api_key=self.api_key or "",
            base_url=self.base_url,
            api_version=self.api_version,
            model=self.model,
            user_text=user_text,
            system_text=system_text,
            temperature=0.0,
            timeout_s=self.timeout_s,
            max_retries=self.max_retries,
            log_payloads=self.log_payloads,
        )
        return text

    async def score(self, candidate: CandidateProfile, job: JobProfile) -> ATSScore:
        try:
            raw_text = await self._generate(
                user_text=ats_match_user_prompt(candidate=candidate, job=job),
                system_text=ats_match_system_prompt(),
            )
        except AIClientHTTPError as e:
            logger.warning("ATS match failed candidate=%s job=%s: HTTP %s", candidate.id, job.id, e.status_code)
            return ATSScore.zero(f"Error analyzing match: HTTP {e.status_code}")
        except AIClientError as e:
            logger.warning("ATS match failed candidate=%s job=%s: %s", candidate.id, job.id, e)
            return ATSScore.zero(f"Error analyzing match: {e}")
        except Exception as e:
            logger.exception("ATS match unexpected error candidate=%s job=%s", candidate.id, job.id)
            return ATSScore.zero(f"Error analyzing match: {type(e).__name__}")

        result = parse_analysis_response(raw_text)
        if result.failed:
            logger.warning("ATS match unparseable candidate=%s job=%s: %s", candidate.id, job.id, result.analysis)
        return result

    async def parse_job_requirements(self, requirements_text: str) -> JobRequirements:
        try:
            raw_text = await self._generate(user_text=job_requirements_user_prompt(requirements_text=requirements_text))
            obj = extract_first_json_object(raw_text)
        except (AIClientError, ValueError) as e:
            logger.warning("Job requirements extraction failed: %s", e)
            return JobRequirements()
        return JobRequirements(
            required_skills=obj.get("requiredSkills"),
            required_experience=obj.get("requiredExperience"),
            required_education=obj.get("requiredEducation"),
        )
