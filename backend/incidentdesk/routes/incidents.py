from fastapi import APIRouter, Depends, HTTPException, Response
from datetime import datetime, timezone
from sqlalchemy.orm import Session
from typing import List, Literal

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, audit, exports
from ..narratives import dashboard_stats, ensure_capture_open, touch
from ..rbac import (
    Permissions,
    ensure_company_access,
    ensure_incident_access,
    has_permission,
    is_platform_admin,
    parse_uuid,
    require_permission,
)

router = APIRouter(prefix="/api/incidents", tags=["incidents"])


def _visible_incidents(db: Session, user: models.User, company_id: str | None = None):
    query = db.query(models.Incident)
    if is_platform_admin(user):
        target = parse_uuid(company_id, "company") if company_id else user.company_id
        if target is not None:
            query = query.filter(models.Incident.company_id == target)
        return query
    if company_id:
        ensure_company_access(user, parse_uuid(company_id, "company"))
    query = query.filter(models.Incident.company_id == user.company_id)
    if not has_permission(user, Permissions.VIEW_ALL_COMPANY_INCIDENTS):
        query = query.filter(models.Incident.created_by == user.id)
    return query


@router.post("", response_model=schemas.IncidentOut)
async def create_incident(
    data: schemas.IncidentCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.CREATE_INCIDENT)
    company_id = data.company_id if (data.company_id and is_platform_admin(user)) else user.company_id
    if company_id is None:
        raise HTTPException(status_code=400, detail="User must belong to a company to report incidents")
    participant_name = (data.participant_name or "").strip()
    if data.participant_id:
        participant = db.get(models.Participant, data.participant_id)
        if not participant or participant.company_id != company_id:
            raise HTTPException(status_code=404, detail="Participant not found")
        participant_name = participant.full_name
    if not participant_name:
        raise HTTPException(status_code=400, detail="participant_name or participant_id is required")
    now = datetime.now(timezone.utc)
    incident = models.Incident(
        company_id=company_id,
        reporter_name=data.reporter_name.strip(),
        participant_id=data.participant_id,
        participant_name=participant_name,
        event_date_time=data.event_date_time,
        location=data.location.strip(),
        capture_status="draft",
        analysis_status="not_started",
        overall_status="capture_pending",
        created_by=user.id,
        created_at=now,
        updated_at=now,
    )
    incident.narrative = models.IncidentNarrative(created_at=now, updated_at=now)
    db.add(incident)
    db.commit()
    db.refresh(incident)
    audit.log_action(db, user.id, "create_incident", "incident", incident.id, company_id=company_id)
    return incident


@router.get("", response_model=List[schemas.IncidentOut])
async def list_incidents(
    status: str | None = None,
    company_id: str | None = None,
    limit: int = 50,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    query = _visible_incidents(db, user, company_id)
    if status:
        query = query.filter(models.Incident.overall_status == status)
    return query.order_by(models.Incident.created_at.desc()).limit(max(1, min(limit, 500))).all()


@router.get("/dashboard", response_model=schemas.DashboardStats)
async def incident_dashboard(
    company_id: str | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return dashboard_stats(_visible_incidents(db, user, company_id).all())


@router.get("/{incident_id}", response_model=schemas.IncidentOut)
async def get_incident(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return ensure_incident_access(db, user, parse_uuid(incident_id, "incident"))


@router.patch("/{incident_id}", response_model=schemas.IncidentOut)
async def update_incident(
    incident_id: str,
    data: schemas.IncidentUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"), write=True)
    ensure_capture_open(incident, "Cannot edit incident: capture phase is completed")
    for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(incident, field, value.strip())
    touch(incident)
    db.commit()
    db.refresh(incident)
    return incident


@router.patch("/{incident_id}/status", response_model=schemas.IncidentOut)
async def update_incident_status(
    incident_id: str,
    data: schemas.IncidentStatusUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"), write=True)
    if data.analysis_status is not None:
        require_permission(db, user, Permissions.PERFORM_ANALYSIS)
        incident.analysis_status = data.analysis_status
    if data.capture_status is not None:
        incident.capture_status = data.capture_status
    touch(incident)
    db.commit()
    db.refresh(incident)
    audit.log_action(
        db, user.id, "incident_status_change", "incident", incident.id,
        data.model_dump(exclude_none=True), company_id=incident.company_id,
    )
    return incident


@router.get("/{incident_id}/export")
async def export_incident(
    incident_id: str,
    format: Literal["text", "markdown"] = "text",
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"))
    body = exports.incident_report(db, incident, markdown=format == "markdown")
    media_type = "text/markdown" if format == "markdown" else "text/plain"
    return Response(body, media_type=f"{media_type}; charset=utf-8")
