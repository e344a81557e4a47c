"""Incident status derivation and narrative helpers."""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import models
from .models import NARRATIVE_PHASES

PHASE_LABELS = {
    "before_event": "Before Event",
    "during_event": "During Event",
    "end_event": "End Event",
    "post_event": "Post Event",
}


def derive_overall_status(capture_status: str, analysis_status: str) -> str:
    if capture_status == "completed" and analysis_status == "completed":
        return "completed"
    if capture_status == "completed":
        return "analysis_pending"
    return "capture_pending"


def touch(incident: models.Incident) -> None:
    incident.overall_status = derive_overall_status(incident.capture_status, incident.analysis_status)
    incident.updated_at = datetime.now(timezone.utc)


def ensure_capture_open(incident: models.Incident, message: str = "Cannot edit narrative: capture phase is completed"):
    if incident.capture_status == "completed":
        raise HTTPException(status_code=400, detail=message)


def text_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def phase_text(narrative: models.IncidentNarrative, phase: str) -> str:
    return (getattr(narrative, phase) or "").strip()


def enhanced_text(narrative: models.IncidentNarrative, phase: str) -> str:
    return (getattr(narrative, f"{phase}_extra") or "").strip()


def get_or_create_narrative(db: Session, incident: models.Incident) -> models.IncidentNarrative:
    narrative = (
        db.query(models.IncidentNarrative)
        .filter(models.IncidentNarrative.incident_id == incident.id)
        .first()
    )
    if narrative:
        return narrative
    narrative = models.IncidentNarrative(incident_id=incident.id)
    db.add(narrative)
    db.commit()
    db.refresh(narrative)
    return narrative


def require_narrative(db: Session, incident_id: UUID) -> models.IncidentNarrative:
    narrative = (
        db.query(models.IncidentNarrative)
        .filter(models.IncidentNarrative.incident_id == incident_id)
        .first()
    )
    if not narrative:
        raise HTTPException(status_code=404, detail="Narrative not found")
    return narrative


def update_phases(
    db: Session,
    incident: models.Incident,
    changes: dict[str, str | None],
) -> models.IncidentNarrative:
    """Apply a partial phase update and bump the narrative version."""
    provided = {k: v for k, v in changes.items() if k in NARRATIVE_PHASES and v is not None}
    if not provided:
        raise HTTPException(status_code=400, detail="At least one narrative phase must be provided")
    ensure_capture_open(incident)
    narrative = get_or_create_narrative(db, incident)
    for phase, value in provided.items():
        setattr(narrative, phase, value)
    now = datetime.now(timezone.utc)
    narrative.version = (narrative.version or 1) + 1
    narrative.updated_at = now
    narrative.consolidated_narrative = None
    if incident.capture_status == "draft":
        incident.capture_status = "in_progress"
    touch(incident)
    db.commit()
    db.refresh(narrative)
    return narrative


def consolidate(narrative: models.IncidentNarrative) -> str:
    sections = []
    for phase in NARRATIVE_PHASES:
        body = enhanced_text(narrative, phase) or phase_text(narrative, phase)
        if body:
            sections.append(f"**{PHASE_LABELS[phase]}**: {body}")
    return "\n\n".join(sections)


def consolidated_narrative(db: Session, narrative: models.IncidentNarrative) -> str:
    if narrative.consolidated_narrative:
        return narrative.consolidated_narrative
    text = consolidate(narrative)
    if text:
        narrative.consolidated_narrative = text
        db.commit()
    return text


def dashboard_stats(incidents: list[models.Incident]) -> dict[str, int]:
    recent_cutoff = datetime.now(timezone.utc) - timedelta(days=30)
    return {
        "total_incidents": len(incidents),
        "captures_pending": sum(1 for i in incidents if i.overall_status == "capture_pending"),
        "analysis_pending": sum(1 for i in incidents if i.overall_status == "analysis_pending"),
        "completed": sum(1 for i in incidents if i.overall_status == "completed"),
        "recent_incidents": sum(
            1 for i in incidents if i.created_at and models.as_utc(i.created_at) >= recent_cutoff
        ),
        "questions_generated": sum(1 for i in incidents if i.questions_generated),
        "narratives_enhanced": sum(1 for i in incidents if i.narrative_enhanced),
        "analysis_generated": sum(1 for i in incidents if i.analysis_generated),
    }
