from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.application import Application
from ..services.tenancy import get_tenant_application
from ..utils.dependencies import get_actor, get_client_id
from ..utils.error_handlers import handle_database_error
from ..utils.validation import validate_string_field

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/applications", tags=["Applications"])


class ApplicationStatusUpdate(BaseModel):
    status: str
    is_shortlisted: bool | None = None


class ApplicationReject(BaseModel):
    reason: str | None = Field(default=None, max_length=255)


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def stage_entry(stage: int, name: str, actor: str, **extra) -> dict:
    return {
        "stage": stage,
        "name": name,
        "entered_at": datetime.now(timezone.utc).isoformat(),
        "by": actor,
        **extra,
    }


def application_to_public(application: Application) -> dict:
    return {
        "id": application.id,
        "job_id": application.job_id,
        "candidate_id": application.candidate_id,
        "status": application.status,
        "current_stage": application.current_stage,
        "stage_history": list(application.stage_history or []),
        "source": application.source,
        "notes": application.notes,
        "is_shortlisted": bool(application.is_shortlisted),
        "rejection_reason": application.rejection_reason,
        "applied_date": _iso(application.applied_date),
        "last_updated": _iso(application.last_updated),
    }


def _match_stage(stages: list[str], status: str) -> int | None:
    """1-based pipeline position of the stage named like `status`."""
    wanted = status.casefold()
    for index, name in enumerate(stages, start=1):
        if str(name).strip().casefold() == wanted:
            return index
    return None


@router.get("/{application_id}")
def get_application(
    application_id: int,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
):
    application = get_tenant_application(db, application_id, client_id)
    return {"success": True, "application": application_to_public(application)}


@router.put("/{application_id}/status")
def update_application_status(
    application_id: int,
    payload: ApplicationStatusUpdate,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
    actor: str = Depends(get_actor),
):
    """
    Set an application's status.

    When the status names one of the job's pipeline stages the application moves
    to that stage and the move is appended to its stage history. Any other status
    only changes the status text.
    """
    application = get_tenant_application(db, application_id, client_id)
    status = validate_string_field(payload.status, "Status", max_length=50)

    stages = list(application.job.application_stages or [])
    stage = _match_stage(stages, status)
    moved = stage is not None and stage != application.current_stage

    try:
        application.status = status
        if moved:
            application.current_stage = stage
            # JSON columns only persist on reassignment.
            application.stage_history = [
                *(application.stage_history or []),
                stage_entry(stage, stages[stage - 1], actor),
            ]
        if payload.is_shortlisted is not None:
            application.is_shortlisted = payload.is_shortlisted
        db.commit()
        db.refresh(application)
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "updating application status")

    if moved:
        logger.info("Application %s moved to stage %s by %s", application.id, stage, actor)
    return {"success": True, "stage_changed": moved, "application": application_to_public(application)}


@router.put("/{application_id}/reject")
def reject_application(
    application_id: int,
    payload: ApplicationReject | None = None,
    db: Session = Depends(get_db),
    client_id: int = Depends(get_client_id),
    actor: str = Depends(get_actor),
):
    application = get_tenant_application(db, application_id, client_id)
    reason = validate_string_field((payload or ApplicationReject()).reason, "Reason", max_length=255, required=False)

    try:
        application.status = "rejected"
        application.rejection_reason = reason or None
        application.is_shortlisted = False
        application.stage_history = [
            *(application.stage_history or []),
            stage_entry(application.current_stage, "Rejected", actor, reason=reason or None),
        ]
        db.commit()
        db.refresh(application)
    except Exception as e:
        db.rollback()
        raise handle_database_error(e, "rejecting application")

    logger.info("Application %s rejected by %s", application.id, actor)
    return {"success": True, "application": application_to_public(application)}
