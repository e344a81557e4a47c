from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime, timezone
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, audit
from ..rbac import Permissions, ensure_company_access, parse_uuid, require_permission

router = APIRouter(prefix="/api/participants", tags=["participants"])


def _get_participant(db: Session, user: models.User, participant_id: str) -> models.Participant:
    participant = db.get(models.Participant, parse_uuid(participant_id, "participant"))
    if not participant:
        raise HTTPException(status_code=404, detail="Participant not found")
    ensure_company_access(user, participant.company_id)
    return participant


def _ensure_unique_ndis(db: Session, company_id, ndis_number: str, exclude=None) -> None:
    query = db.query(models.Participant).filter(
        models.Participant.company_id == company_id,
        models.Participant.ndis_number == ndis_number,
    )
    if exclude is not None:
        query = query.filter(models.Participant.id != exclude)
    if query.first():
        raise HTTPException(status_code=409, detail="A participant with this NDIS number already exists")


@router.post("", response_model=schemas.ParticipantOut)
async def create_participant(
    data: schemas.ParticipantCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.CREATE_INCIDENT)
    if not user.company_id:
        raise HTTPException(status_code=400, detail="User must belong to a company to manage participants")
    _ensure_unique_ndis(db, user.company_id, data.ndis_number)
    participant = models.Participant(
        company_id=user.company_id,
        created_by=user.id,
        updated_by=user.id,
        **data.model_dump(),
    )
    db.add(participant)
    db.commit()
    db.refresh(participant)
    audit.log_action(db, user.id, "create_participant", "participant", participant.id, company_id=user.company_id)
    return participant


@router.get("", response_model=List[schemas.ParticipantOut])
async def list_participants(
    search: str | None = None,
    status: str | None = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if not user.company_id:
        return []
    query = db.query(models.Participant).filter(models.Participant.company_id == user.company_id)
    if status:
        query = query.filter(models.Participant.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.Participant.first_name.ilike(pattern),
                models.Participant.last_name.ilike(pattern),
                models.Participant.ndis_number.ilike(pattern),
            )
        )
    return (
        query.order_by(models.Participant.last_name, models.Participant.first_name)
        .limit(max(1, min(limit, 500)))
        .all()
    )


@router.get("/{participant_id}", response_model=schemas.ParticipantOut)
async def get_participant(
    participant_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _get_participant(db, user, participant_id)


@router.patch("/{participant_id}", response_model=schemas.ParticipantOut)
async def update_participant(
    participant_id: str,
    data: schemas.ParticipantUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.CREATE_INCIDENT)
    participant = _get_participant(db, user, participant_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("ndis_number") and changes["ndis_number"] != participant.ndis_number:
        _ensure_unique_ndis(db, participant.company_id, changes["ndis_number"], exclude=participant.id)
    for field, value in changes.items():
        if field in ("first_name", "last_name", "date_of_birth", "ndis_number", "support_level") and value is None:
            continue
        setattr(participant, field, value)
    participant.updated_by = user.id
    participant.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(participant)
    return participant


@router.patch("/{participant_id}/status", response_model=schemas.ParticipantOut)
async def update_participant_status(
    participant_id: str,
    data: schemas.ParticipantStatusUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.CREATE_INCIDENT)
    participant = _get_participant(db, user, participant_id)
    participant.status = data.status
    participant.updated_by = user.id
    participant.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(participant)
    audit.log_action(
        db, user.id, "participant_status_change", "participant", participant.id,
        {"status": data.status}, company_id=participant.company_id,
    )
    return participant
