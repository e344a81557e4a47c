"""Clarification question generation and answer capture."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import llm, models, prompts
from .narratives import get_or_create_narrative, phase_text, text_hash, ensure_capture_open, consolidate

# purpose: turn each narrative phase into a short list of follow-up questions for the reporter
# status: active

logger = logging.getLogger(__name__)

OPERATION = "generate_clarification_questions"
COMPLETE_ANSWER_MIN_CHARS = 10


def parse_questions(content: str) -> list[str]:
    """Extract question strings from an LLM reply shaped as a JSON array."""
    data: Any = llm.extract_json(content)
    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        data = data["questions"]
    if not isinstance(data, list):
        raise ValueError("expected a JSON array of questions")
    questions: list[str] = []
    for item in data:
        if isinstance(item, str):
            text = item
        elif isinstance(item, dict):
            text = item.get("question") or item.get("question_text") or ""
        else:
            continue
        text = str(text).strip()
        if text:
            questions.append(text)
    if not questions:
        raise ValueError("no questions found in response")
    return questions


def incident_variables(incident: models.Incident) -> dict[str, str]:
    return {
        "participant_name": incident.participant_name,
        "reporter_name": incident.reporter_name,
        "event_date_time": incident.event_date_time,
        "incident_location": incident.location or "unspecified location",
    }


def active_questions(db: Session, incident_id, phase: str | None = None) -> list[models.ClarificationQuestion]:
    query = db.query(models.ClarificationQuestion).filter(
        models.ClarificationQuestion.incident_id == incident_id,
        models.ClarificationQuestion.is_active.is_(True),
    )
    if phase:
        query = query.filter(models.ClarificationQuestion.phase == phase)
    return query.order_by(
        models.ClarificationQuestion.phase, models.ClarificationQuestion.question_order
    ).all()


def answers_for(db: Session, incident_id, phase: str | None = None) -> list[models.ClarificationAnswer]:
    query = db.query(models.ClarificationAnswer).filter(models.ClarificationAnswer.incident_id == incident_id)
    if phase:
        query = query.filter(models.ClarificationAnswer.phase == phase)
    return query.order_by(models.ClarificationAnswer.answered_at).all()


def questions_with_answers(db: Session, incident_id, phase: str | None = None) -> list[dict]:
    answers = {a.question_id: a for a in answers_for(db, incident_id, phase)}
    rows = []
    for q in active_questions(db, incident_id, phase):
        answer = answers.get(q.question_id)
        rows.append(
            {
                "question_id": q.question_id,
                "phase": q.phase,
                "question_text": q.question_text,
                "question_order": q.question_order,
                "answered": bool(answer and answer.answer_text.strip()),
                "answer_text": answer.answer_text if answer else None,
            }
        )
    return rows


def generate_questions(
    db: Session,
    *,
    incident: models.Incident,
    phase: str,
    user: models.User,
) -> dict:
    """Return active questions for a phase, calling the LLM only when the narrative changed."""
    narrative = get_or_create_narrative(db, incident)
    text = phase_text(narrative, phase)
    if not text:
        raise HTTPException(status_code=400, detail=f"No narrative content found for phase: {phase}")
    current_hash = text_hash(text)

    existing = active_questions(db, incident.id, phase)
    if existing and all(q.narrative_hash == current_hash for q in existing):
        logger.info("clarification cache hit incident=%s phase=%s", incident.id, phase)
        return {
            "phase": phase,
            "cached": True,
            "questions": questions_with_answers(db, incident.id, phase),
            "correlation_id": None,
        }

    prompt = prompts.require_active_prompt(db, prompts.CLARIFICATION_PROMPT)
    variables = {**incident_variables(incident), "narrative_phase": phase, "existing_narrative": text}
    rendered = prompts.render(prompt.prompt_template, variables)
    request = llm.LLMRequest(
        prompt=rendered.text,
        operation=OPERATION,
        model=prompt.ai_model,
        temperature=prompt.temperature if prompt.temperature is not None else 0.7,
        max_tokens=prompt.max_tokens or 1000,
    )
    try:
        response = llm.get_client().complete(request)
        questions = parse_questions(response.content)
    except (llm.LLMError, ValueError) as exc:
        logger.error("question generation failed incident=%s phase=%s: %s", incident.id, phase, exc)
        llm.log_request(
            db,
            correlation_id=request.correlation_id,
            operation=OPERATION,
            model=request.model or llm.default_model(),
            prompt_template=prompt.prompt_name,
            input_data={"phase": phase, "narrative_hash": current_hash},
            success=False,
            error_message=str(exc),
            user_id=user.id,
            incident_id=incident.id,
        )
        prompts.record_usage(db, prompt.prompt_name, 0, False)
        raise HTTPException(status_code=502, detail=f"Failed to generate clarification questions: {exc}")

    now = datetime.now(timezone.utc)
    for old in existing:
        old.is_active = False
    for order, question_text in enumerate(questions, start=1):
        db.add(
            models.ClarificationQuestion(
                incident_id=incident.id,
                question_id=f"{phase}_q{order}",
                phase=phase,
                question_text=question_text,
                question_order=order,
                narrative_hash=current_hash,
                ai_model=response.model,
                prompt_version=prompt.prompt_version,
                is_active=True,
                generated_at=now,
            )
        )
    incident.questions_generated = True
    incident.narrative_hash = text_hash(consolidate(narrative))
    incident.updated_at = now
    db.commit()

    llm.log_request(
        db,
        correlation_id=response.correlation_id,
        operation=OPERATION,
        model=response.model,
        prompt_template=prompt.prompt_name,
        input_data={"phase": phase, "narrative_hash": current_hash},
        output_data={"questions": questions},
        processing_time_ms=response.processing_time_ms,
        tokens_used=response.tokens_used,
        cost_usd=response.cost_usd,
        user_id=user.id,
        incident_id=incident.id,
    )
    prompts.record_usage(db, prompt.prompt_name, response.processing_time_ms, True)
    return {
        "phase": phase,
        "cached": False,
        "questions": questions_with_answers(db, incident.id, phase),
        "correlation_id": response.correlation_id,
    }


def upsert_answer(
    db: Session,
    *,
    incident: models.Incident,
    question_id: str,
    answer_text: str,
    user: models.User,
) -> models.ClarificationAnswer:
    ensure_capture_open(incident, "Cannot edit answers: capture phase is completed")
    question = (
        db.query(models.ClarificationQuestion)
        .filter(
            models.ClarificationQuestion.incident_id == incident.id,
            models.ClarificationQuestion.question_id == question_id,
            models.ClarificationQuestion.is_active.is_(True),
        )
        .first()
    )
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")

    text = answer_text.strip()
    now = datetime.now(timezone.utc)
    answer = (
        db.query(models.ClarificationAnswer)
        .filter(
            models.ClarificationAnswer.incident_id == incident.id,
            models.ClarificationAnswer.question_id == question_id,
        )
        .first()
    )
    if answer is None:
        answer = models.ClarificationAnswer(
            incident_id=incident.id,
            question_id=question_id,
            phase=question.phase,
            answered_by=user.id,
            answered_at=now,
        )
        db.add(answer)
    answer.answer_text = text
    answer.phase = question.phase
    answer.updated_at = now
    answer.character_count = len(text)
    answer.word_count = len(text.split())
    answer.is_complete = len(text) > COMPLETE_ANSWER_MIN_CHARS
    db.commit()
    db.refresh(answer)
    return answer
