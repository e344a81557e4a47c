"""Incident type and severity classification for the analysis step."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import llm, models, prompts
from .analysis import MIN_CONDITIONS_CHARS, get_analysis
from .clarification import incident_variables
from .narratives import consolidated_narrative, get_or_create_narrative

# purpose: attach reviewable type/severity labels to an analysed incident
# status: active

logger = logging.getLogger(__name__)

OPERATION = "classify_incident"
INCIDENT_TYPES = ("behavioural", "environmental", "medical", "communication", "other")
SEVERITIES = ("low", "medium", "high")
TYPE_ALIASES = {"behavioral": "behavioural", "behaviour": "behavioural", "behavior": "behavioural"}
REVIEWED_FIELDS = ("incident_type", "severity", "supporting_evidence")


def new_classification_id() -> str:
    return f"cls_{uuid.uuid4().hex[:12]}"


def _normalise(item: dict[str, Any]) -> dict[str, Any] | None:
    evidence = str(item.get("supporting_evidence") or item.get("evidence") or "").strip()
    if not evidence:
        return None
    incident_type = str(item.get("incident_type") or item.get("type") or "").strip().lower()
    incident_type = TYPE_ALIASES.get(incident_type, incident_type)
    if incident_type not in INCIDENT_TYPES:
        incident_type = "other"
    severity = str(item.get("severity") or "").strip().lower()
    if severity not in SEVERITIES:
        severity = "medium"
    try:
        confidence = float(item.get("confidence_score", item.get("confidence", 0.5)))
    except (TypeError, ValueError):
        confidence = 0.5
    return {
        "incident_type": incident_type,
        "severity": severity,
        "confidence_score": min(max(confidence, 0.0), 1.0),
        "supporting_evidence": evidence,
    }


def parse_classifications(content: str) -> list[dict[str, Any]]:
    """Read classifications from an LLM reply; unknown types fall back to ``other``."""
    data: Any = llm.extract_json(content)
    if isinstance(data, dict):
        data = data.get("classifications", [data])
    if not isinstance(data, list):
        raise ValueError("expected a JSON list of classifications")
    parsed = [c for c in (_normalise(item) for item in data if isinstance(item, dict)) if c]
    if not parsed:
        raise ValueError("no classifications found in response")
    return parsed


def list_classifications(db: Session, incident_id) -> list[models.IncidentClassification]:
    return (
        db.query(models.IncidentClassification)
        .filter(models.IncidentClassification.incident_id == incident_id)
        .order_by(models.IncidentClassification.created_at, models.IncidentClassification.classification_id)
        .all()
    )


def _open_analysis(db: Session, incident: models.Incident) -> models.IncidentAnalysis:
    analysis = get_analysis(db, incident.id)
    if not analysis:
        raise HTTPException(status_code=404, detail="Analysis not found")
    if analysis.analysis_status == "completed":
        raise HTTPException(status_code=400, detail="Cannot modify classifications of a completed analysis")
    return analysis


def generate_classifications(db: Session, *, incident: models.Incident, user: models.User) -> dict[str, Any]:
    analysis = _open_analysis(db, incident)
    conditions = (analysis.contributing_conditions or "").strip()
    if len(conditions) < MIN_CONDITIONS_CHARS:
        raise HTTPException(
            status_code=400,
            detail="Contributing conditions must be completed before generating classifications",
        )

    narrative = get_or_create_narrative(db, incident)
    variables = {
        **incident_variables(incident),
        "incident_narrative": consolidated_narrative(db, narrative),
        "contributing_conditions": conditions,
    }
    prompt = prompts.require_active_prompt(db, prompts.CLASSIFICATION_PROMPT)
    rendered = prompts.render(prompt.prompt_template, variables)
    request = llm.LLMRequest(
        prompt=rendered.text,
        operation=OPERATION,
        model=prompt.ai_model,
        temperature=prompt.temperature if prompt.temperature is not None else 0.3,
        max_tokens=prompt.max_tokens or 800,
    )
    try:
        response = llm.get_client().complete(request)
        parsed = parse_classifications(response.content)
    except (llm.LLMError, ValueError) as exc:
        logger.error("classification failed incident=%s: %s", incident.id, exc)
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
        raise HTTPException(status_code=502, detail=f"Failed to generate classifications: {exc}")

    now = datetime.now(timezone.utc)
    # unreviewed AI suggestions are replaced; anything a person touched stays
    for old in list_classifications(db, incident.id):
        if old.ai_generated and not old.user_reviewed:
            db.delete(old)
    for item in parsed:
        db.add(
            models.IncidentClassification(
                incident_id=incident.id,
                analysis_id=analysis.id,
                classification_id=new_classification_id(),
                classified_by=user.id,
                ai_generated=True,
                ai_model=response.model,
                original_ai_classification=item,
                created_at=now,
                updated_at=now,
                **item,
            )
        )
    if analysis.analysis_status == "draft":
        analysis.analysis_status = "ai_generated"
    analysis.updated_at = now
    db.commit()

    llm.log_request(
        db,
        correlation_id=response.correlation_id,
        operation=OPERATION,
        model=response.model,
        prompt_template=prompt.prompt_name,
        input_data={"incident_id": str(incident.id)},
        output_data={"classifications": parsed},
        processing_time_ms=response.processing_time_ms,
        tokens_used=response.tokens_used,
        cost_usd=response.cost_usd,
        user_id=user.id,
        incident_id=incident.id,
    )
    prompts.record_usage(db, prompt.prompt_name, response.processing_time_ms, True)
    return {
        "classifications": list_classifications(db, incident.id),
        "correlation_id": response.correlation_id,
    }


def create_classification(
    db: Session,
    *,
    incident: models.Incident,
    user: models.User,
    incident_type: str,
    severity: str,
    supporting_evidence: str,
    confidence_score: float = 1.0,
    review_notes: str | None = None,
) -> models.IncidentClassification:
    analysis = _open_analysis(db, incident)
    record = models.IncidentClassification(
        incident_id=incident.id,
        analysis_id=analysis.id,
        classification_id=new_classification_id(),
        incident_type=incident_type,
        severity=severity,
        supporting_evidence=supporting_evidence.strip(),
        confidence_score=confidence_score,
        review_notes=review_notes,
        classified_by=user.id,
        ai_generated=False,
        user_reviewed=True,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def update_classification(
    db: Session,
    *,
    incident: models.Incident,
    classification_id,
    user: models.User,
    changes: dict[str, Any],
) -> models.IncidentClassification:
    _open_analysis(db, incident)
    record = db.get(models.IncidentClassification, classification_id)
    if not record or record.incident_id != incident.id:
        raise HTTPException(status_code=404, detail="Classification not found")
    changes = {k: v for k, v in changes.items() if v is not None or k == "review_notes"}
    if record.ai_generated and any(
        field in changes and changes[field] != getattr(record, field) for field in REVIEWED_FIELDS
    ):
        record.user_modified = True
    for field, value in changes.items():
        setattr(record, field, value.strip() if isinstance(value, str) else value)
    record.user_reviewed = True
    record.classified_by = user.id
    record.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(record)
    return record
