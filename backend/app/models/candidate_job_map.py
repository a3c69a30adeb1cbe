from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base

ASSIGNMENT_STATUSES = ("candidate", "applicant", "rejected")


class CandidateJobMap(Base):
    """
    Sourcing relationship between a candidate and a job, plus the cached ATS score.

    One row per (candidate_id, job_id). Score fields are written only by the
    score orchestrator; rescoring never changes `status`.
    """
    __tablename__ = "candidate_job_maps"
    __table_args__ = (
        UniqueConstraint("candidate_id", "job_id", name="uq_candidate_job_maps_candidate_job"),
    )

    id = Column(Integer, primary_key=True, index=True)
    candidate_id = Column(Integer, ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="candidate", index=True)
    assigned_date = Column(DateTime(timezone=True), server_default=func.now())
    assigned_by = Column(String(255), nullable=True)

    # ATS scoring (0-100)
    ats_score = Column(Float, nullable=True, index=True)
    skills_match = Column(Float, nullable=True)
    experience_match = Column(Float, nullable=True)
    education_match = Column(Float, nullable=True)
    ats_analysis = Column(Text, nullable=True)
    # Zero placeholder stored after a matcher failure; never served from cache.
    score_failed = Column(Boolean, nullable=False, default=False)
    last_scored_at = Column(DateTime(timezone=True), nullable=True)

    candidate = relationship("Candidate", back_populates="job_maps")
    job = relationship("Job", back_populates="candidate_maps")

    def __repr__(self) -> str:
        return f"<CandidateJobMap(candidate={self.candidate_id}, job={self.job_id}, score={self.ats_score})>"
