"""Per-phase narrative enhancement, workflow validation and submission."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import audit, llm, models, prompts
from .clarification import active_questions, answers_for, incident_variables
from .models import NARRATIVE_PHASES
from .narratives import (
    enhanced_text,
    ensure_capture_open,
    get_or_create_narrative,
    phase_text,
    touch,
)

# purpose: merge a phase narrative with its clarification answers into a cleaner account
# status: active

logger = logging.getLogger(__name__)

OPERATION = "enhance_narrative"


def format_clarifications(db: Session, incident_id, phase: str) -> str:
    """Render answered questions for a phase as ``Q: ...`` / ``A: ...`` blocks."""
    questions = {q.question_id: q for q in active_questions(db, incident_id, phase)}
    blocks = []
    for answer in answers_for(db, incident_id, phase):
        question = questions.get(answer.question_id)
        if not question or not answer.answer_text.strip():
            continue
        blocks.append(f"Q: {question.question_text}\nA: {answer.answer_text.strip()}")
    return "\n\n".join(blocks)


def fallback_enhancement(original: str, clarification_responses: str) -> str:
    """Deterministic enhancement used when the LLM is unavailable."""
    enhanced = re.sub(r"\s+", " ", original.replace(". . ", ". ")).strip()
    details = []
    for block in clarification_responses.split("\n\n") if clarification_responses.strip() else []:
        match = re.search(r"A: (.+)", block, re.DOTALL)
        if not match or not match.group(1).strip():
            continue
        detail = match.group(1).strip()
        if not detail.endswith((".", "!", "?")):
            detail += "."
        details.append(detail)
    if details:
        enhanced += "\n\n**Additional Context:**\n" + " ".join(details)
    enhanced = re.sub(r"([.!?])\s*([A-Z])", r"\1 \2", enhanced)
    return re.sub(r"\s+", " ", enhanced).strip()


def _all_phases_enhanced(narrative: models.IncidentNarrative) -> bool:
    written = [p for p in NARRATIVE_PHASES if phase_text(narrative, p)]
    return bool(written) and all(enhanced_text(narrative, p) for p in written)


def _store_enhancement(
    db: Session,
    incident: models.Incident,
    narrative: models.IncidentNarrative,
    phase: str,
    text: str,
) -> None:
    now = datetime.now(timezone.utc)
    setattr(narrative, f"{phase}_extra", text)
    narrative.enhanced_at = now
    narrative.updated_at = now
    narrative.version = (narrative.version or 1) + 1
    narrative.consolidated_narrative = None
    incident.narrative_enhanced = _all_phases_enhanced(narrative)
    incident.updated_at = now
    db.commit()
    db.refresh(narrative)


def enhance_phase(
    db: Session,
    *,
    incident: models.Incident,
    phase: str,
    user: models.User,
) -> dict:
    ensure_capture_open(incident)
    narrative = get_or_create_narrative(db, incident)
    original = phase_text(narrative, phase)
    if not original:
        raise HTTPException(status_code=400, detail=f"No original narrative found for phase: {phase}")

    responses = format_clarifications(db, incident.id, phase)
    prompt = prompts.require_active_prompt(db, prompts.ENHANCEMENT_PROMPT)
    variables = {
        **incident_variables(incident),
        "narrative_phase": phase,
        "phase_original_narrative": original,
        "phase_clarification_responses": responses or "No clarification responses provided.",
    }
    rendered = prompts.render(prompt.prompt_template, variables)
    request = llm.LLMRequest(
        prompt=rendered.text,
        operation=OPERATION,
        model=prompt.ai_model,
        temperature=prompt.temperature if prompt.temperature is not None else 0.3,
        max_tokens=prompt.max_tokens or 1500,
    )
    input_data = {"phase": phase, "original_length": len(original), "has_clarifications": bool(responses)}

    try:
        response = llm.get_client().complete(request)
        text = response.content.strip()
        if not text:
            raise llm.LLMError("empty completion")
    except llm.LLMError as exc:
        logger.warning("enhancement fell back to deterministic merge incident=%s phase=%s: %s", incident.id, phase, exc)
        text = fallback_enhancement(original, responses)
        _store_enhancement(db, incident, narrative, phase, text)
        llm.log_request(
            db,
            correlation_id=request.correlation_id,
            operation=OPERATION,
            model=request.model or llm.default_model(),
            prompt_template=prompt.prompt_name,
            input_data=input_data,
            output_data={"enhanced_length": len(text), "fallback": True},
            success=False,
            error_message=str(exc),
            user_id=user.id,
            incident_id=incident.id,
        )
        prompts.record_usage(db, prompt.prompt_name, 0, False)
        return {
            "phase": phase,
            "enhanced_text": text,
            "success": False,
            "used_fallback": True,
            "correlation_id": request.correlation_id,
            "version": narrative.version,
        }

    _store_enhancement(db, incident, narrative, phase, text)
    llm.log_request(
        db,
        correlation_id=response.correlation_id,
        operation=OPERATION,
        model=response.model,
        prompt_template=prompt.prompt_name,
        input_data=input_data,
        output_data={"enhanced_length": len(text), "fallback": False},
        processing_time_ms=response.processing_time_ms,
        tokens_used=response.tokens_used,
        cost_usd=response.cost_usd,
        user_id=user.id,
        incident_id=incident.id,
    )
    prompts.record_usage(db, prompt.prompt_name, response.processing_time_ms, True)
    return {
        "phase": phase,
        "enhanced_text": text,
        "success": True,
        "used_fallback": False,
        "correlation_id": response.correlation_id,
        "version": narrative.version,
    }


def edit_enhanced(
    db: Session,
    *,
    incident: models.Incident,
    phase: str,
    text: str,
) -> models.IncidentNarrative:
    ensure_capture_open(incident)
    narrative = get_or_create_narrative(db, incident)
    _store_enhancement(db, incident, narrative, phase, text.strip())
    return narrative


def validate_workflow(db: Session, incident: models.Incident) -> dict:
    narrative = get_or_create_narrative(db, incident)
    answer_count = (
        db.query(models.ClarificationAnswer)
        .filter(models.ClarificationAnswer.incident_id == incident.id)
        .count()
    )
    checklist = {
        "metadata_complete": bool(incident.participant_name and incident.location and incident.event_date_time),
        "narratives_complete": all(phase_text(narrative, p) for p in NARRATIVE_PHASES),
        "clarifications_complete": answer_count > 0,
        "enhancement_complete": any(enhanced_text(narrative, p) for p in NARRATIVE_PHASES),
        "validation_passed": True,
    }
    missing = [name for name, ok in checklist.items() if not ok]
    return {**checklist, "all_complete": not missing, "missing_requirements": missing}


def submit_for_analysis(db: Session, *, incident: models.Incident, user: models.User) -> dict:
    ensure_capture_open(incident, "Incident has already been submitted for analysis")
    validation = validate_workflow(db, incident)
    if not validation["all_complete"]:
        raise HTTPException(
            status_code=400,
            detail=f"Workflow incomplete. Missing: {', '.join(validation['missing_requirements'])}",
        )
    now = datetime.now(timezone.utc)
    incident.capture_status = "completed"
    incident.submitted_by = user.id
    incident.submitted_at = now
    touch(incident)
    db.commit()
    db.refresh(incident)
    audit.log_action(
        db,
        user.id,
        "submit_for_analysis",
        "incident",
        incident.id,
        company_id=incident.company_id,
    )
    logger.info("incident %s submitted for analysis by %s", incident.id, user.id)
    return {"incident_id": str(incident.id), "overall_status": incident.overall_status, "submitted_at": now}
