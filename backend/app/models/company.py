from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    # Tenant key: jobs inherit their tenant through the owning company.
    client_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    industry = Column(String(120), nullable=True)
    location = Column(String(255), nullable=True)
    website = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    jobs = relationship("Job", back_populates="company", cascade="all, delete-orphan")
