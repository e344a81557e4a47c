from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, clarification
from ..rbac import ensure_incident_access, parse_uuid
from ..schemas.incidents import Phase

router = APIRouter(prefix="/api/incidents", tags=["clarifications"])


# blocking LLM call; a plain def runs in the threadpool
@router.post("/{incident_id}/clarifications/{phase}/generate", response_model=schemas.QuestionGenerationResult)
def generate_questions(
    incident_id: str,
    phase: Phase,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"), write=True)
    return clarification.generate_questions(db, incident=incident, phase=phase, user=user)


@router.get("/{incident_id}/clarifications", response_model=List[schemas.ClarificationQuestionOut])
async def list_questions(
    incident_id: str,
    phase: Phase | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"))
    return clarification.questions_with_answers(db, incident.id, phase)


@router.put("/{incident_id}/clarifications/answers", response_model=schemas.AnswerOut)
async def save_answer(
    incident_id: str,
    data: schemas.AnswerUpsert,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"), write=True)
    return clarification.upsert_answer(
        db, incident=incident, question_id=data.question_id, answer_text=data.answer_text, user=user
    )


@router.get("/{incident_id}/clarifications/answers", response_model=List[schemas.AnswerOut])
async def list_answers(
    incident_id: str,
    phase: Phase | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    incident = ensure_incident_access(db, user, parse_uuid(incident_id, "incident"))
    return clarification.answers_for(db, incident.id, phase)
