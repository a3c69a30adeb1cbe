import math
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..models.job import EDUCATION_LEVELS, EXPERIENCE_LEVELS


def clamp_score(v: float) -> float:
    if v < 0:
        return 0.0
    if v > 100:
        return 100.0
    return float(v)


class ATSScore(BaseModel):
    ats_score: int = 0
    skills_match: float = 0.0
    experience_match: float = 0.0
    education_match: float = 0.0
    analysis: str = ""
    # True when the score is a zero placeholder for a failed matcher call.
    failed: bool = False

    @classmethod
    def zero(cls, analysis: str) -> "ATSScore":
        return cls(analysis=analysis, failed=True)


class AIMatchBreakdown(BaseModel):
    """Shape the model is asked to return. Sub-scores must be JSON numbers."""
    skillsMatch: float
    experienceMatch: float
    educationMatch: float
    analysis: str | None = None

    @field_validator("skillsMatch", "experienceMatch", "educationMatch", mode="before")
    @classmethod
    def _numeric_only(cls, v: Any) -> float:
        # Rejects bools (an int subclass), strings like "80", and the NaN/Infinity json lets through.
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            raise ValueError("Invalid score format in response")
        return clamp_score(v)

    @field_validator("analysis", mode="before")
    @classmethod
    def _analysis_text(cls, v: Any) -> str | None:
        if v is None:
            return None
        return str(v)


class JobRequirements(BaseModel):
    required_skills: list[str] = Field(default_factory=list)
    required_experience: str | None = None
    required_education: str | None = None

    @field_validator("required_skills", mode="before")
    @classmethod
    def _skills_list(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [str(x).strip() for x in v if str(x).strip()]

    @field_validator("required_experience", mode="before")
    @classmethod
    def _experience_level(cls, v: Any) -> str | None:
        s = str(v or "").strip().lower()
        return s if s in EXPERIENCE_LEVELS else None

    @field_validator("required_education", mode="before")
    @classmethod
    def _education_level(cls, v: Any) -> str | None:
        s = str(v or "").strip().lower().replace("_", " ")
        return s if s in EDUCATION_LEVELS else None


class ExperienceProfile(BaseModel):
    title: str | None = None
    company: str | None = None
    startDate: str | None = None
    endDate: str | None = None
    description: str | None = None
    isCurrentRole: bool = False


class EducationProfile(BaseModel):
    degree: str | None = None
    institution: str | None = None
    fieldOfStudy: str | None = None
    startDate: str | None = None
    endDate: str | None = None
    location: str | None = None


class CandidateProfile(BaseModel):
    id: int
    name: str
    skills: list[str] = Field(default_factory=list)
    experiences: list[ExperienceProfile] = Field(default_factory=list)
    educations: list[EducationProfile] = Field(default_factory=list)


class JobProfile(BaseModel):
    id: int
    title: str
    requiredSkills: list[str] = Field(default_factory=list)
    requiredExperience: str | None = None
    requiredEducation: str | None = None
    description: str | None = None
    responsibilities: str | None = None
