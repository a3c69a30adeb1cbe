"""
Validation utilities for input validation and error handling.
"""
import re
from typing import Any
from fastapi import HTTPException

from ..models.candidate_job_map import ASSIGNMENT_STATUSES
from ..models.job import EDUCATION_LEVELS, EXPERIENCE_LEVELS, JOB_STATUSES


def validate_email(email: str) -> str:
    """Validate email format."""
    if not email or not isinstance(email, str):
        raise HTTPException(status_code=400, detail="Email is required")

    email = email.strip().lower()
    if len(email) > 255:
        raise HTTPException(status_code=400, detail="Email too long (max 255 characters)")

    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if not re.match(pattern, email):
        raise HTTPException(status_code=400, detail="Invalid email format")

    return email


def validate_string_field(
    value: Any,
    field_name: str,
    min_length: int = 1,
    max_length: int = 1000,
    required: bool = True,
) -> str | None:
    """Validate a string field with common rules."""
    if value is None:
        if required:
            raise HTTPException(status_code=400, detail=f"{field_name} is required")
        return None

    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f"{field_name} must be a string")

    value = value.strip()

    if required and not value:
        raise HTTPException(status_code=400, detail=f"{field_name} cannot be empty")

    if len(value) < min_length:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must be at least {min_length} characters"
        )

    if len(value) > max_length:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must not exceed {max_length} characters"
        )

    return value


def _validate_choice(value: str | None, *, field_name: str, choices: tuple[str, ...]) -> str:
    v = (value or "").strip().lower()
    if v not in choices:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name} must be one of: {', '.join(choices)}"
        )
    return v


def validate_job_status(status: str | None) -> str:
    """Validate job status. Missing status means a new posting."""
    if not status:
        return "new"
    return _validate_choice(status, field_name="Status", choices=JOB_STATUSES)


def validate_experience_level(level: str | None) -> str | None:
    if not level:
        return None
    return _validate_choice(level, field_name="Experience level", choices=EXPERIENCE_LEVELS)


def validate_education_level(level: str | None) -> str | None:
    if not level:
        return None
    return _validate_choice(level.replace("_", " "), field_name="Education level", choices=EDUCATION_LEVELS)


def validate_assignment_status(status: str | None) -> str:
    return _validate_choice(status, field_name="Status", choices=ASSIGNMENT_STATUSES)


def validate_skill_list(skills: list[Any] | None, *, max_items: int = 100) -> list[str]:
    """Trim, drop blanks and de-duplicate case-insensitively, keeping first spelling."""
    out: list[str] = []
    seen: set[str] = set()
    for s in skills or []:
        if not isinstance(s, str):
            raise HTTPException(status_code=400, detail="Skills must be strings")
        t = s.strip()
        if not t or t.lower() in seen:
            continue
        if len(t) > 120:
            raise HTTPException(status_code=400, detail="Skill names must not exceed 120 characters")
        seen.add(t.lower())
        out.append(t)
    if len(out) > max_items:
        raise HTTPException(status_code=400, detail=f"At most {max_items} skills are allowed")
    return out
