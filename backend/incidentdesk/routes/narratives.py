from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, narratives
from ..rbac import ensure_incident_access, parse_uuid

router = APIRouter(prefix="/api/incidents", tags=["narratives"])


@router.post("/{incident_id}/narrative", response_model=schemas.NarrativeOut)
async def create_narrative(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"), write=True)
    return narratives.get_or_create_narrative(db, incident)


@router.get("/{incident_id}/narrative", response_model=schemas.NarrativeOut)
async def get_narrative(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"))
    return narratives.require_narrative(db, incident.id)


@router.patch("/{incident_id}/narrative", response_model=schemas.NarrativeOut)
async def update_narrative(
    incident_id: str,
    data: schemas.NarrativeUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"), write=True)
    return narratives.update_phases(db, incident, data.model_dump(exclude_unset=True))


@router.get("/{incident_id}/narrative/consolidated", response_model=schemas.ConsolidatedNarrativeOut)
async def get_consolidated_narrative(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"))
    narrative = narratives.require_narrative(db, incident.id)
    return schemas.ConsolidatedNarrativeOut(
        incident_id=incident.id,
        consolidated_narrative=narratives.consolidated_narrative(db, narrative),
        version=narrative.version,
    )
