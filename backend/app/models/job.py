from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base

JOB_STATUSES = ("new", "active", "closing soon", "closed", "draft")
EXPERIENCE_LEVELS = ("junior", "mid", "senior", "lead")
EDUCATION_LEVELS = ("high school", "associate", "bachelor", "master", "phd")


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        UniqueConstraint("job_title", "company_id", name="uq_jobs_title_company"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    job_title = Column(String(150), nullable=False, index=True)
    department = Column(String(120), nullable=True)
    location = Column(String(120), nullable=True)
    job_type = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    responsibilities = Column(Text, nullable=True)
    required_skills = Column(JSON, nullable=False, default=list)
    required_experience = Column(String(20), nullable=True)  # junior | mid | senior | lead
    required_education = Column(String(20), nullable=True)  # high school | associate | bachelor | master | phd
    job_status = Column(String(20), nullable=False, default="new")
    application_stages = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="jobs")
    candidate_maps = relationship("CandidateJobMap", back_populates="job", cascade="all, delete-orphan")
    applications = relationship("Application", back_populates="job", cascade="all, delete-orphan")
