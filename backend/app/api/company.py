from datetime import datetime
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.company import Company
from ..services.tenancy import get_tenant_company
from ..utils.dependencies import get_client_id
from ..utils.error_handlers import handle_database_error
from ..utils.validation import validate_string_field

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/companies", tags=["Companies"])


class CompanyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    industry: str | None = Field(default=None, max_length=120)
    location: str | None = Field(default=None, max_length=255)
    website: str | None = Field(default=None, max_length=255)
    description: str | None = None


def company_to_public(company: Company) -> dict:
    return {
        "id": company.id,
        "name": company.name,
        "industry": company.industry,
        "location": company.location,
        "website": company.website,
        "description": company.description,
        "created_at": company.created_at.isoformat() if isinstance(company.created_at, datetime) else company.created_at,
    }


@router.post("", status_code=201)
def create_company(
    payload: CompanyCreate,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    name = validate_string_field(payload.name, "Name", min_length=1, max_length=255)
    company = Company(
        client_id=client_id,
        name=name,
        industry=validate_string_field(payload.industry, "Industry", max_length=120, required=False),
        location=validate_string_field(payload.location, "Location", max_length=255, required=False),
        website=validate_string_field(payload.website, "Website", max_length=255, required=False),
        description=payload.description,
    )
    try:
        db.add(company)
        db.commit()
        db.refresh(company)
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "creating company")

    logger.info("Company created id=%s client=%s", company.id, client_id)
    return {"success": True, "company": company_to_public(company)}


@router.get("")
def list_companies(
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    companies = db.query(Company).filter(Company.client_id == client_id).order_by(Company.id).all()
    return {"success": True, "companies": [company_to_public(c) for c in companies]}


@router.get("/{company_id}")
def get_company(
    company_id: int,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    company = get_tenant_company(db, company_id, client_id)
    return {"success": True, "company": company_to_public(company)}


@router.delete("/{company_id}")
def delete_company(
    company_id: int,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    """Deletes the company together with its jobs and their score rows."""
    company = get_tenant_company(db, company_id, client_id)
    try:
        db.delete(company)
        db.commit()
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "deleting company")
    return {"success": True, "deleted_company_id": company_id}
