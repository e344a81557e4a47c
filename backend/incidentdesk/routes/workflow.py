from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, enhancement
from ..rbac import ensure_incident_access, parse_uuid
from ..schemas.incidents import Phase

router = APIRouter(prefix="/api/incidents", tags=["workflow"])


# blocking LLM call; a plain def runs in the threadpool
@router.post("/{incident_id}/enhance/{phase}", response_model=schemas.EnhancementResult)
def enhance_phase(
    incident_id: str,
    phase: Phase,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"), write=True)
    return enhancement.enhance_phase(db, incident=incident, phase=phase, user=user)


@router.patch("/{incident_id}/enhance/{phase}", response_model=schemas.NarrativeOut)
async def edit_enhanced_phase(
    incident_id: str,
    phase: Phase,
    data: schemas.EnhancedNarrativeUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"), write=True)
    return enhancement.edit_enhanced(db, incident=incident, phase=phase, text=data.enhanced_text)


@router.get("/{incident_id}/workflow/validation", response_model=schemas.WorkflowValidation)
async def validate_workflow(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"))
    return enhancement.validate_workflow(db, incident)


@router.post("/{incident_id}/submit")
async def submit_incident(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"), write=True)
    return enhancement.submit_for_analysis(db, incident=incident, user=user)
