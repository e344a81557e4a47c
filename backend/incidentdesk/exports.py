"""Database and incident report exports."""

from __future__ import annotations

# purpose: provide reusable serialization utilities for admin backups and incident reports
# status: active

from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from . import models
from .clarification import active_questions, answers_for
from .database import Base
from .models import NARRATIVE_PHASES
from .narratives import PHASE_LABELS, enhanced_text, phase_text

EXPORT_VERSION = "1.0"

# columns never written to an export
REDACTED_COLUMNS: dict[str, set[str]] = {
    "users": {"hashed_password"},
    "sessions": {"session_token"},
    "password_reset_tokens": {"token"},
    "user_invitations": {"invitation_token"},
}


def _format_timestamp(value: datetime | None) -> str:
    """Return a standardized ISO 8601 timestamp string."""

    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _serialize(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return _format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def export_database(db: Session, *, exported_by: models.User) -> dict[str, Any]:
    data: dict[str, list[dict[str, Any]]] = {}
    for table in Base.metadata.sorted_tables:
        hidden = REDACTED_COLUMNS.get(table.name, set())
        columns = [c for c in table.columns if c.name not in hidden]
        rows = db.execute(table.select()).mappings().all()
        data[table.name] = [{c.name: _serialize(row[c.name]) for c in columns} for row in rows]
    counts = {name: len(rows) for name, rows in data.items()}
    return {
        "metadata": {
            "exported_at": _format_timestamp(datetime.now(timezone.utc)),
            "export_type": "full",
            "version": EXPORT_VERSION,
            "record_counts": counts,
            "total_records": sum(counts.values()),
            "exported_by": exported_by.email,
        },
        "data": data,
    }


def _heading(text: str, level: int, markdown: bool) -> str:
    if markdown:
        return f"{'#' * level} {text}"
    return f"{text.upper()}\n{'=' * len(text) if level == 1 else '-' * len(text)}"


def incident_report(db: Session, incident: models.Incident, *, markdown: bool = False) -> str:
    """Render a reviewer-friendly text report of an incident and its capture."""

    narrative = incident.narrative
    lines = [
        _heading("Incident Report", 1, markdown),
        "",
        f"Participant: {incident.participant_name}",
        f"Reporter: {incident.reporter_name}",
        f"Date/Time: {incident.event_date_time}",
        f"Location: {incident.location}",
        f"Status: {incident.overall_status} (capture {incident.capture_status}, analysis {incident.analysis_status})",
        f"Reported: {_format_timestamp(incident.created_at)}",
    ]

    questions = {q.question_id: q for q in active_questions(db, incident.id)}
    answers = answers_for(db, incident.id)
    for phase in NARRATIVE_PHASES:
        original = phase_text(narrative, phase) if narrative else ""
        enhanced = enhanced_text(narrative, phase) if narrative else ""
        phase_answers = [a for a in answers if a.phase == phase and a.question_id in questions and a.answer_text]
        if not (original or enhanced or phase_answers):
            continue
        lines += ["", _heading(PHASE_LABELS[phase], 2, markdown), ""]
        if original:
            lines += ["Original:", original]
        if enhanced:
            lines += ["", "Enhanced:", enhanced]
        if phase_answers:
            lines += ["", "Clarifications:"]
            for answer in sorted(phase_answers, key=lambda a: questions[a.question_id].question_order):
                lines.append(f"Q: {questions[answer.question_id].question_text}")
                lines.append(f"A: {answer.answer_text}")

    analysis = incident.analysis
    if analysis and analysis.contributing_conditions:
        lines += [
            "",
            _heading("Contributing Conditions", 2, markdown),
            "",
            analysis.contributing_conditions,
            "",
            f"Analysis status: {analysis.analysis_status}",
        ]
    if analysis and analysis.classifications:
        lines += ["", _heading("Classifications", 2, markdown), ""]
        for item in analysis.classifications:
            lines.append(
                f"- {item.incident_type} ({item.severity}, confidence {item.confidence_score:.2f}): "
                f"{item.supporting_evidence}"
            )
    return "\n".join(lines) + "\n"
