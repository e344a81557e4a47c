"""Contributing conditions analysis for submitted incidents."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import llm, models, prompts
from .clarification import incident_variables
from .models import NARRATIVE_PHASES
from .narratives import enhanced_text, get_or_create_narrative, phase_text, touch

logger = logging.getLogger(__name__)

OPERATION = "analyze_contributing_conditions"
MIN_CONDITIONS_CHARS = 10


def get_analysis(db: Session, incident_id) -> models.IncidentAnalysis | None:
    return (
        db.query(models.IncidentAnalysis)
        .filter(models.IncidentAnalysis.incident_id == incident_id)
        .first()
    )


def start_analysis(db: Session, *, incident: models.Incident, user: models.User) -> models.IncidentAnalysis:
    if incident.capture_status != "completed":
        raise HTTPException(status_code=400, detail="Cannot start analysis: incident capture must be completed first")
    if get_analysis(db, incident.id):
        raise HTTPException(status_code=409, detail="Analysis already exists for this incident")
    now = datetime.now(timezone.utc)
    analysis = models.IncidentAnalysis(
        incident_id=incident.id,
        contributing_conditions="",
        analysis_status="draft",
        analyzed_by=user.id,
        analyzed_at=now,
        updated_at=now,
        revision_count=0,
    )
    db.add(analysis)
    incident.analysis_status = "in_progress"
    touch(incident)
    db.commit()
    db.refresh(analysis)
    return analysis


def generate_conditions(db: Session, *, incident: models.Incident, user: models.User) -> models.IncidentAnalysis:
    analysis = get_analysis(db, incident.id) or start_analysis(db, incident=incident, user=user)
    if analysis.analysis_status == "completed":
        raise HTTPException(status_code=400, detail="Cannot regenerate a completed analysis")

    narrative = get_or_create_narrative(db, incident)
    variables = dict(incident_variables(incident))
    for phase in NARRATIVE_PHASES:
        variables[phase] = phase_text(narrative, phase)
        variables[f"{phase}_extra"] = enhanced_text(narrative, phase)
    prompt = prompts.require_active_prompt(db, prompts.ANALYSIS_PROMPT)
    rendered = prompts.render(prompt.prompt_template, variables)
    request = llm.LLMRequest(
        prompt=rendered.text,
        operation=OPERATION,
        model=prompt.ai_model,
        temperature=prompt.temperature if prompt.temperature is not None else 0.5,
        max_tokens=prompt.max_tokens or 1200,
    )
    try:
        response = llm.get_client().complete(request)
        conditions = response.content.strip()
        if not conditions:
            raise llm.LLMError("empty completion")
    except llm.LLMError as exc:
        logger.error("contributing conditions analysis failed incident=%s: %s", incident.id, exc)
        llm.log_request(
            db,
            correlation_id=request.correlation_id,
            operation=OPERATION,
            model=request.model or llm.default_model(),
            prompt_template=prompt.prompt_name,
            input_data={"incident_id": str(incident.id)},
            success=False,
            error_message=str(exc),
            user_id=user.id,
            incident_id=incident.id,
        )
        prompts.record_usage(db, prompt.prompt_name, 0, False)
        raise HTTPException(status_code=502, detail=f"Failed to analyze contributing conditions: {exc}")

    now = datetime.now(timezone.utc)
    analysis.contributing_conditions = conditions
    analysis.conditions_original = conditions
    analysis.conditions_edited = False
    analysis.analysis_status = "ai_generated"
    analysis.ai_model = response.model
    analysis.ai_processing_time_ms = response.processing_time_ms
    analysis.analyzed_by = user.id
    analysis.analyzed_at = now
    analysis.updated_at = now
    incident.analysis_generated = True
    incident.updated_at = now
    db.commit()
    db.refresh(analysis)

    llm.log_request(
        db,
        correlation_id=response.correlation_id,
        operation=OPERATION,
        model=response.model,
        prompt_template=prompt.prompt_name,
        input_data={"incident_id": str(incident.id)},
        output_data={"conditions_length": len(conditions)},
        processing_time_ms=response.processing_time_ms,
        tokens_used=response.tokens_used,
        cost_usd=response.cost_usd,
        user_id=user.id,
        incident_id=incident.id,
    )
    prompts.record_usage(db, prompt.prompt_name, response.processing_time_ms, True)
    return analysis


def _ensure_completable(db: Session, analysis: models.IncidentAnalysis, conditions: str | None = None) -> None:
    if conditions is None:
        conditions = analysis.contributing_conditions or ""
    if len(conditions.strip()) < MIN_CONDITIONS_CHARS:
        raise HTTPException(
            status_code=400,
            detail="Contributing conditions must be completed before finalizing analysis",
        )
    classified = (
        db.query(models.IncidentClassification.id)
        .filter(models.IncidentClassification.analysis_id == analysis.id)
        .first()
    )
    if classified is None:
        raise HTTPException(
            status_code=400,
            detail="At least one classification must be created before completing analysis",
        )


def _mark_incident_analysed(incident: models.Incident) -> None:
    incident.analysis_status = "completed"
    touch(incident)


def update_conditions(
    db: Session,
    *,
    incident: models.Incident,
    contributing_conditions: str,
    analysis_status: str | None = None,
) -> models.IncidentAnalysis:
    text = contributing_conditions.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Contributing conditions cannot be empty")
    analysis = get_analysis(db, incident.id)
    if not analysis:
        raise HTTPException(status_code=404, detail="Analysis not found")
    if analysis.analysis_status == "completed":
        raise HTTPException(status_code=400, detail="Cannot edit completed analysis")
    if analysis_status == "completed":
        _ensure_completable(db, analysis, text)

    analysis.conditions_edited = bool(analysis.conditions_original and text != analysis.conditions_original)
    if not analysis.conditions_original:
        analysis.conditions_original = text
    analysis.contributing_conditions = text
    analysis.revision_count = (analysis.revision_count or 0) + 1
    analysis.updated_at = datetime.now(timezone.utc)
    if analysis_status:
        analysis.analysis_status = analysis_status
    if analysis_status == "completed":
        _mark_incident_analysed(incident)
    db.commit()
    db.refresh(analysis)
    return analysis


def complete_analysis(db: Session, *, incident: models.Incident) -> models.IncidentAnalysis:
    analysis = get_analysis(db, incident.id)
    if not analysis:
        raise HTTPException(status_code=404, detail="Analysis not found")
    _ensure_completable(db, analysis)
    analysis.analysis_status = "completed"
    analysis.updated_at = datetime.now(timezone.utc)
    _mark_incident_analysed(incident)
    db.commit()
    db.refresh(analysis)
    return analysis
