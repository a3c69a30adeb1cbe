from .application import Application
from .candidate import Candidate, CandidateEducation, CandidateExperience
from .candidate_job_map import CandidateJobMap
from .company import Company
from .job import Job
from .skill import CandidateSkillMap, Skill

__all__ = [
    "Application",
    "Candidate",
    "CandidateEducation",
    "CandidateExperience",
    "CandidateJobMap",
    "CandidateSkillMap",
    "Company",
    "Job",
    "Skill",
]
