"""Prompt template storage, rendering and seeding."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import models

# purpose: keep LLM prompt text in the database so it can be versioned without deploys
# status: active

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")
VARIABLE_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")

CLARIFICATION_PROMPT = "generate_clarification_questions"
ENHANCEMENT_PROMPT = "enhance_narrative"
ANALYSIS_PROMPT = "analyze_contributing_conditions"
CLASSIFICATION_PROMPT = "classify_incident"


@dataclass
class RenderedPrompt:
    text: str
    substitutions: dict[str, str]
    missing: list[str]


def template_variables(template: str) -> list[str]:
    seen: list[str] = []
    for match in PLACEHOLDER.finditer(template):
        name = match.group(1).strip()
        if name not in seen:
            seen.append(name)
    return seen


def invalid_variables(template: str) -> list[str]:
    return [name for name in template_variables(template) if not VARIABLE_NAME.match(name)]


def render(template: str, variables: dict[str, Any]) -> RenderedPrompt:
    """Substitute ``{{ name }}`` placeholders; unknown names are left in place."""
    substitutions: dict[str, str] = {}
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        name = match.group(1).strip()
        if name in variables and variables[name] is not None:
            value = str(variables[name])
            substitutions[name] = value
            return value
        if name not in missing:
            missing.append(name)
        return match.group(0)

    text = PLACEHOLDER.sub(_replace, template)
    return RenderedPrompt(text=text, substitutions=substitutions, missing=missing)


def get_active_prompt(db: Session, name: str, subsystem: str | None = None) -> models.AIPrompt | None:
    query = db.query(models.AIPrompt).filter(
        models.AIPrompt.prompt_name == name,
        models.AIPrompt.is_active.is_(True),
    )
    if subsystem:
        query = query.filter(models.AIPrompt.subsystem == subsystem)
    return query.order_by(models.AIPrompt.created_at.desc()).first()


def require_active_prompt(db: Session, name: str) -> models.AIPrompt:
    """Return the active prompt, seeding the default only if the name has never been stored.

    A deactivated prompt stays deactivated; the caller gets a 404 until an admin
    restores or reseeds it.
    """
    prompt = get_active_prompt(db, name)
    if (
        prompt is None
        and name in DEFAULT_PROMPTS_BY_NAME
        and not db.query(models.AIPrompt.id).filter(models.AIPrompt.prompt_name == name).first()
    ):
        seed_default_prompts(db, names=[name])
        prompt = get_active_prompt(db, name)
    if prompt is None:
        raise HTTPException(status_code=404, detail=f"No active prompt named '{name}'")
    return prompt


def record_usage(db: Session, name: str, response_time_ms: int, success: bool) -> None:
    prompt = get_active_prompt(db, name)
    if prompt is None:
        return
    count = prompt.usage_count or 0
    avg = prompt.average_response_time or 0.0
    rate = prompt.success_rate if prompt.success_rate is not None else 1.0
    successes = round(rate * count) + (1 if success else 0)
    prompt.usage_count = count + 1
    prompt.average_response_time = (avg * count + response_time_ms) / (count + 1)
    prompt.success_rate = successes / (count + 1)
    db.commit()


def bump_version(version: str) -> str:
    """``v1.0.3`` -> ``v1.0.4``; anything unparseable gets ``.1`` appended."""
    match = re.match(r"^v?(\d+)\.(\d+)\.(\d+)$", version or "")
    if not match:
        return f"{version or 'v1.0.0'}.1"
    major, minor, patch = (int(part) for part in match.groups())
    return f"v{major}.{minor}.{patch + 1}"


def create_version(
    db: Session,
    prompt: models.AIPrompt,
    *,
    user_id: UUID,
    changes: dict[str, Any],
) -> models.AIPrompt:
    """Replace an active prompt with a new version carrying the given changes."""
    now = datetime.now(timezone.utc)
    successor = models.AIPrompt(
        prompt_name=prompt.prompt_name,
        prompt_version=bump_version(prompt.prompt_version),
        prompt_template=changes.get("prompt_template", prompt.prompt_template),
        description=changes.get("description", prompt.description),
        workflow_step=changes.get("workflow_step", prompt.workflow_step),
        subsystem=prompt.subsystem,
        ai_model=changes.get("ai_model", prompt.ai_model),
        max_tokens=changes.get("max_tokens", prompt.max_tokens),
        temperature=changes.get("temperature", prompt.temperature),
        group_id=prompt.group_id,
        display_order=prompt.display_order,
        is_active=True,
        created_by=user_id,
        created_at=now,
    )
    db.add(successor)
    db.flush()
    prompt.is_active = False
    prompt.replaced_at = now
    prompt.replaced_by = successor.id
    db.commit()
    db.refresh(successor)
    logger.info("prompt %s replaced %s -> %s", prompt.prompt_name, prompt.prompt_version, successor.prompt_version)
    return successor


DEFAULT_GROUPS: tuple[dict[str, Any], ...] = (
    {"group_name": "Question Generation", "display_order": 1, "workflow_step": "clarification_questions"},
    {"group_name": "Narrative Enhancement", "display_order": 2, "workflow_step": "narrative_enhancement"},
    {"group_name": "Contributing Analysis", "display_order": 3, "workflow_step": "contributing_analysis"},
    {"group_name": "Incident Classification", "display_order": 4, "workflow_step": "incident_classification"},
)

DEFAULT_PROMPTS: tuple[dict[str, Any], ...] = (
    {
        "prompt_name": CLARIFICATION_PROMPT,
        "description": "Generate clarification questions based on incident narrative to gather additional details",
        "workflow_step": "clarification_questions",
        "subsystem": "incidents",
        "max_tokens": 1000,
        "temperature": 0.7,
        "prompt_template": """You are an expert incident analyst helping to gather additional details about an NDIS incident involving {{participant_name}}.

**Incident Context:**
- **Participant**: {{participant_name}}
- **Date/Time**: {{event_date_time}}
- **Location**: {{incident_location}}
- **Reporter**: {{reporter_name}}

**Current Narrative ({{narrative_phase}} phase):**
{{existing_narrative}}

**Your Task:**
Generate 3-5 specific, focused clarification questions that would help gather additional important details about this incident. Focus on:
- Missing factual details that would improve understanding
- Context that could help prevent similar incidents
- Specific circumstances that aren't clear from the current narrative

**Requirements:**
- Questions should be clear and specific
- Avoid yes/no questions when possible
- Focus on actionable details
- Consider NDIS reporting requirements
- Be sensitive to the participant's needs and dignity

Generate questions as a JSON array with this format:
[
  {
    "question": "Your specific question here",
    "purpose": "Brief explanation of why this detail is important"
  }
]""",
    },
    {
        "prompt_name": ENHANCEMENT_PROMPT,
        "description": "Enhance incident narrative by combining original content with clarification responses",
        "workflow_step": "narrative_enhancement",
        "subsystem": "incidents",
        "max_tokens": 1500,
        "temperature": 0.3,
        "prompt_template": """You are an expert NDIS incident documentation specialist. Your task is to create enhanced narrative sections by naturally integrating original observations with clarification responses.

**Incident Overview:**
- **Participant**: {{participant_name}}
- **Date/Time**: {{event_date_time}}
- **Location**: {{incident_location}}
- **Reporter**: {{reporter_name}}

**Original Narrative ({{narrative_phase}} phase):**
{{phase_original_narrative}}

**Clarification Responses ({{narrative_phase}} phase):**
{{phase_clarification_responses}}

**Your Task:**
Create an enhanced narrative for the {{narrative_phase}} phase that:

1. **Preserves Original Meaning**: Keep the reporter's original observations and tone intact
2. **Light Grammar Improvements**: Fix only basic grammar, spelling, and sentence structure issues
3. **Natural Integration**: Weave clarification responses seamlessly into the narrative flow
4. **Maintains Authenticity**: Should read as if the reporter wrote it correctly the first time
5. **No Hallucinations**: Use only information provided - do not add assumptions or interpretations

**Output Format:**
Provide only the enhanced narrative text for the {{narrative_phase}} phase. Do not include headers, bullets, or explanations - just the improved narrative that combines original content with clarifications naturally.""",
    },
    {
        "prompt_name": ANALYSIS_PROMPT,
        "description": "Identify immediate contributing conditions from the completed incident narrative",
        "workflow_step": "contributing_analysis",
        "subsystem": "incidents",
        "max_tokens": 1200,
        "temperature": 0.5,
        "prompt_template": """You are reviewing a narrative report from {{ reporter_name }} about an incident involving {{ participant_name }} on {{ event_date_time }} at {{ incident_location }}.

Incident Inputs

What was happening in the lead-up to the incident?
<before_event>{{ before_event }}</before_event>
<before_event_extra>{{ before_event_extra }}</before_event_extra>

What occurred during the incident itself?
<during_event>{{ during_event }}</during_event>
<during_event_extra>{{ during_event_extra }}</during_event_extra>

How did the incident conclude?
<end_event>{{ end_event }}</end_event>
<end_event_extra>{{ end_event_extra }}</end_event_extra>

What support or care was provided in the two hours after the event?
<post_event>{{ post_event }}</post_event>
<post_event_extra>{{ post_event_extra }}</post_event_extra>

Your task
Identify and summarise the immediate contributing conditions: any meaningful patterns, responses, support gaps, or participant behaviours that contributed to the occurrence or escalation of this specific incident.

Response Format

**Immediate Contributing Conditions**

### [Condition Name 1]
- [Specific supporting detail from the report]
- [Another relevant observation]

Only include items clearly supported by the data. Focus on immediate relevance to this incident, not long-term systemic causes.""",
    },
    {
        "prompt_name": CLASSIFICATION_PROMPT,
        "description": "Classify the incident by type and severity from the narrative and contributing conditions",
        "workflow_step": "incident_classification",
        "subsystem": "incidents",
        "max_tokens": 800,
        "temperature": 0.3,
        "prompt_template": """You are classifying an NDIS incident involving {{ participant_name }} on {{ event_date_time }} at {{ incident_location }}, reported by {{ reporter_name }}.

**Incident Narrative:**
{{ incident_narrative }}

**Immediate Contributing Conditions:**
{{ contributing_conditions }}

**Your Task:**
Assign one or more classifications to this incident. Each classification needs:
- "incident_type": one of "behavioural", "environmental", "medical", "communication", "other"
- "severity": one of "low", "medium", "high"
- "confidence_score": a number between 0 and 1
- "supporting_evidence": one or two sentences quoting or paraphrasing the report

Only classify what the report supports. Respond with JSON only:
{
  "classifications": [
    {
      "incident_type": "behavioural",
      "severity": "medium",
      "confidence_score": 0.8,
      "supporting_evidence": "Evidence from the report"
    }
  ]
}""",
    },
)

DEFAULT_PROMPTS_BY_NAME = {p["prompt_name"]: p for p in DEFAULT_PROMPTS}


def _ensure_default_groups(db: Session, user_id: UUID | None) -> dict[str, models.PromptGroup]:
    by_step: dict[str, models.PromptGroup] = {}
    for entry in DEFAULT_GROUPS:
        group = (
            db.query(models.PromptGroup)
            .filter(models.PromptGroup.group_name == entry["group_name"])
            .first()
        )
        if group is None:
            group = models.PromptGroup(
                group_name=entry["group_name"],
                display_order=entry["display_order"],
                created_by=user_id,
            )
            db.add(group)
            db.flush()
        by_step[entry["workflow_step"]] = group
    return by_step


def seed_default_prompts(
    db: Session,
    *,
    user_id: UUID | None = None,
    names: list[str] | None = None,
) -> list[str]:
    """Insert default prompts that have no active row yet. Returns the names created."""
    groups = _ensure_default_groups(db, user_id)
    created: list[str] = []
    for order, entry in enumerate(DEFAULT_PROMPTS, start=1):
        if names is not None and entry["prompt_name"] not in names:
            continue
        if get_active_prompt(db, entry["prompt_name"]) is not None:
            continue
        group = groups.get(entry["workflow_step"])
        db.add(
            models.AIPrompt(
                prompt_name=entry["prompt_name"],
                prompt_version="v1.0.0",
                prompt_template=entry["prompt_template"],
                description=entry["description"],
                workflow_step=entry["workflow_step"],
                subsystem=entry["subsystem"],
                max_tokens=entry["max_tokens"],
                temperature=entry["temperature"],
                group_id=group.id if group else None,
                display_order=order,
                is_active=True,
                created_by=user_id,
            )
        )
        created.append(entry["prompt_name"])
    db.commit()
    if created:
        logger.info("seeded default prompts: %s", ", ".join(created))
    return created


def clear_prompts(db: Session) -> int:
    """Deactivate every active prompt. Returns the number touched."""
    now = datetime.now(timezone.utc)
    active = db.query(models.AIPrompt).filter(models.AIPrompt.is_active.is_(True)).all()
    for prompt in active:
        prompt.is_active = False
        prompt.replaced_at = now
    db.commit()
    return len(active)
