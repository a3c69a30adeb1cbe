from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class Candidate(Base):
    __tablename__ = "candidates"
    __table_args__ = (
        # Same person may exist in several tenants.
        UniqueConstraint("email", "client_id", name="uq_candidates_email_client"),
    )

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    location = Column(String(255), nullable=True)
    position = Column(String(255), nullable=True)
    bio = Column(Text, nullable=True)
    linkedin_profile = Column(String(255), nullable=True)
    github_profile = Column(String(255), nullable=True)
    portfolio_url = Column(String(255), nullable=True)
    current_company = Column(String(255), nullable=True)
    total_experience = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    skill_maps = relationship(
        "CandidateSkillMap",
        back_populates="candidate",
        cascade="all, delete-orphan",
        order_by="CandidateSkillMap.id",
    )
    experiences = relationship(
        "CandidateExperience",
        back_populates="candidate",
        cascade="all, delete-orphan",
        order_by="CandidateExperience.id",
    )
    educations = relationship(
        "CandidateEducation",
        back_populates="candidate",
        cascade="all, delete-orphan",
        order_by="CandidateEducation.id",
    )
    job_maps = relationship("CandidateJobMap", back_populates="candidate", cascade="all, delete-orphan")
    applications = relationship("Application", back_populates="candidate", cascade="all, delete-orphan")

    @property
    def skill_titles(self) -> list[str]:
        return [m.skill.title for m in self.skill_maps if m.skill is not None and m.skill.title]


class CandidateExperience(Base):
    __tablename__ = "candidate_experiences"

    id = Column(Integer, primary_key=True, index=True)
    candidate_id = Column(Integer, ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    # Free-form dates as entered in the UI (e.g. "2021-03", "Mar 2021").
    start_date = Column(String(50), nullable=True)
    end_date = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    is_current_role = Column(Boolean, nullable=False, default=False)

    candidate = relationship("Candidate", back_populates="experiences")


class CandidateEducation(Base):
    __tablename__ = "candidate_educations"

    id = Column(Integer, primary_key=True, index=True)
    candidate_id = Column(Integer, ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, index=True)
    degree = Column(String(255), nullable=True)
    institution = Column(String(255), nullable=True)
    field_of_study = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    start_date = Column(String(50), nullable=True)
    end_date = Column(String(50), nullable=True)

    candidate = relationship("Candidate", back_populates="educations")
