from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, analysis, audit, classification
from ..rbac import Permissions, ensure_incident_access, parse_uuid, require_permission

router = APIRouter(prefix="/api/incidents", tags=["analysis"])


def _analysable_incident(db: Session, user: models.User, incident_id: str) -> models.Incident:
    require_permission(db, user, Permissions.PERFORM_ANALYSIS)
    return ensure_incident_access(db, user, parse_uuid(incident_id, "incident"))


@router.get("/{incident_id}/analysis", response_model=schemas.AnalysisOut)
async def get_analysis(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"))
    record = analysis.get_analysis(db, incident.id)
    if not record:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return record


@router.post("/{incident_id}/analysis", response_model=schemas.AnalysisOut)
async def start_analysis(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = _analysable_incident(db, user, incident_id)
    record = analysis.start_analysis(db, incident=incident, user=user)
    audit.log_action(db, user.id, "start_analysis", "incident", incident.id, company_id=incident.company_id)
    return record


# blocking LLM call; a plain def runs in the threadpool
@router.post("/{incident_id}/analysis/generate", response_model=schemas.AnalysisOut)
def generate_analysis(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = _analysable_incident(db, user, incident_id)
    return analysis.generate_conditions(db, incident=incident, user=user)


@router.patch("/{incident_id}/analysis", response_model=schemas.AnalysisOut)
async def update_analysis(
    incident_id: str,
    data: schemas.AnalysisUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = _analysable_incident(db, user, incident_id)
    return analysis.update_conditions(
        db,
        incident=incident,
        contributing_conditions=data.contributing_conditions,
        analysis_status=data.analysis_status,
    )


@router.post("/{incident_id}/analysis/complete", response_model=schemas.AnalysisOut)
async def complete_analysis(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = _analysable_incident(db, user, incident_id)
    record = analysis.complete_analysis(db, incident=incident)
    audit.log_action(db, user.id, "complete_analysis", "incident", incident.id, company_id=incident.company_id)
    return record


@router.get("/{incident_id}/analysis/classifications", response_model=List[schemas.ClassificationOut])
async def list_classifications(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"))
    return classification.list_classifications(db, incident.id)


# blocking LLM call; a plain def runs in the threadpool
@router.post(
    "/{incident_id}/analysis/classifications/generate",
    response_model=schemas.ClassificationGenerationResult,
)
def generate_classifications(
    incident_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = _analysable_incident(db, user, incident_id)
    return classification.generate_classifications(db, incident=incident, user=user)


@router.post("/{incident_id}/analysis/classifications", response_model=schemas.ClassificationOut)
async def create_classification(
    incident_id: str,
    data: schemas.ClassificationCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = _analysable_incident(db, user, incident_id)
    record = classification.create_classification(db, incident=incident, user=user, **data.model_dump())
    audit.log_action(
        db, user.id, "create_classification", "incident", incident.id,
        {"incident_type": record.incident_type, "severity": record.severity},
        company_id=incident.company_id,
    )
    return record


@router.patch(
    "/{incident_id}/analysis/classifications/{classification_id}",
    response_model=schemas.ClassificationOut,
)
async def update_classification(
    incident_id: str,
    classification_id: str,
    data: schemas.ClassificationUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = _analysable_incident(db, user, incident_id)
    record = classification.update_classification(
        db,
        incident=incident,
        classification_id=parse_uuid(classification_id, "classification"),
        user=user,
        changes=data.model_dump(exclude_unset=True),
    )
    audit.log_action(
        db, user.id, "update_classification", "incident", incident.id,
        {"classification_id": record.classification_id, "user_modified": record.user_modified},
        company_id=incident.company_id,
    )
    return record
