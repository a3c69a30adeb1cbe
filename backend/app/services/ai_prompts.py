import json

from ..schemas.ats import CandidateProfile, JobProfile


def ats_match_system_prompt() -> str:
    return (
        "You are a recruiter scoring candidates for open roles. Return only valid JSON. "
        "No markdown, no extra text. Use the profile data; do not hallucinate."
    )


def ats_match_user_prompt(*, candidate: CandidateProfile, job: JobProfile) -> str:
    return (
        "Analyze the match between this candidate and job.\n\n"
        "Return JSON in this exact shape:\n"
        "{\n"
        '  "skillsMatch": number (0-100),\n'
        '  "experienceMatch": number (0-100),\n'
        '  "educationMatch": number (0-100),\n'
        '  "analysis": string\n'
        "}\n\n"
        "Consider:\n"
        "1. Skills Match: compare candidate skills with required skills, including related skills.\n"
        "2. Experience Match: years, relevance and seniority against the required experience level.\n"
        "3. Education Match: degree level and field of study against the required education.\n"
        "4. analysis: a short recruiter-friendly explanation of the scores.\n\n"
        "Candidate Data:\n"
        f"{json.dumps(candidate.model_dump(), indent=2, ensure_ascii=False)}\n\n"
        "Job Data:\n"
        f"{json.dumps(job.model_dump(), indent=2, ensure_ascii=False)}\n"
    )


def job_requirements_user_prompt(*, requirements_text: str) -> str:
    return (
        "Extract the following from the job requirements text below:\n"
        "- requiredSkills: an array of skill names (strings)\n"
        "- requiredExperience: one of junior, mid, senior, lead\n"
        "- requiredEducation: one of high school, associate, bachelor, master, phd\n\n"
        "Return a JSON object with these keys. Only use information present in the text. "
        "If not found, use null.\n\n"
        "Job Requirements:\n"
        '"""\n'
        f"{requirements_text or ''}\n"
        '"""\n\n'
        "Example output:\n"
        '{"requiredSkills": ["Skill1", "Skill2"], "requiredExperience": "junior", "requiredEducation": "bachelor"}\n'
    )
