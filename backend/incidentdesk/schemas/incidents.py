"""Schemas for participants, incidents and the capture workflow."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

# purpose: request and response contracts for incident capture and analysis
# status: active

Phase = Literal["before_event", "during_event", "end_event", "post_event"]
SupportLevel = Literal["high", "medium", "low"]
ParticipantStatus = Literal["active", "inactive", "discharged"]


def _validate_dob(value: str) -> str:
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        raise ValueError("date_of_birth must be a valid ISO date (YYYY-MM-DD)")
    if parsed > date.today():
        raise ValueError("date_of_birth cannot be in the future")
    return value


class ParticipantCreate(BaseModel):
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    date_of_birth: str
    ndis_number: str = Field(pattern=r"^\d{9}$")
    contact_phone: Optional[str] = Field(default=None, pattern=r"^[\d\s\-\+\(\)]+$")
    emergency_contact: Optional[str] = None
    support_level: SupportLevel
    care_notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_names(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("date_of_birth")
    @classmethod
    def check_dob(cls, value: str) -> str:
        return _validate_dob(value)


class ParticipantUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    date_of_birth: Optional[str] = None
    ndis_number: Optional[str] = Field(default=None, pattern=r"^\d{9}$")
    contact_phone: Optional[str] = Field(default=None, pattern=r"^[\d\s\-\+\(\)]+$")
    emergency_contact: Optional[str] = None
    support_level: Optional[SupportLevel] = None
    care_notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("date_of_birth")
    @classmethod
    def check_dob(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _validate_dob(value)


class ParticipantStatusUpdate(BaseModel):
    status: ParticipantStatus


class ParticipantOut(BaseModel):
    id: UUID
    company_id: UUID
    first_name: str
    last_name: str
    date_of_birth: str
    ndis_number: str
    contact_phone: Optional[str] = None
    emergency_contact: Optional[str] = None
    support_level: str
    care_notes: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class IncidentCreate(BaseModel):
    reporter_name: str = Field(min_length=1, max_length=200)
    participant_name: Optional[str] = Field(default=None, max_length=200)
    participant_id: Optional[UUID] = None
    event_date_time: str = Field(min_length=1)
    location: str = Field(min_length=1, max_length=500)
    company_id: Optional[UUID] = None


class IncidentUpdate(BaseModel):
    reporter_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    participant_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    event_date_time: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = Field(default=None, min_length=1, max_length=500)


class IncidentStatusUpdate(BaseModel):
    capture_status: Optional[Literal["draft", "in_progress", "completed"]] = None
    analysis_status: Optional[Literal["not_started", "in_progress", "completed"]] = None


class IncidentOut(BaseModel):
    id: UUID
    company_id: UUID
    reporter_name: str
    participant_id: Optional[UUID] = None
    participant_name: str
    event_date_time: str
    location: str
    capture_status: str
    analysis_status: str
    overall_status: str
    created_by: UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    questions_generated: bool = False
    narrative_enhanced: bool = False
    analysis_generated: bool = False
    model_config = ConfigDict(from_attributes=True)


class DashboardStats(BaseModel):
    total_incidents: int
    captures_pending: int
    analysis_pending: int
    completed: int
    recent_incidents: int
    questions_generated: int
    narratives_enhanced: int
    analysis_generated: int


class NarrativeUpdate(BaseModel):
    before_event: Optional[str] = None
    during_event: Optional[str] = None
    end_event: Optional[str] = None
    post_event: Optional[str] = None


class NarrativeOut(BaseModel):
    id: UUID
    incident_id: UUID
    before_event: str
    during_event: str
    end_event: str
    post_event: str
    before_event_extra: Optional[str] = None
    during_event_extra: Optional[str] = None
    end_event_extra: Optional[str] = None
    post_event_extra: Optional[str] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    enhanced_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ConsolidatedNarrativeOut(BaseModel):
    incident_id: UUID
    consolidated_narrative: str
    version: int


class ClarificationQuestionOut(BaseModel):
    question_id: str
    phase: str
    question_text: str
    question_order: int
    answered: bool = False
    answer_text: Optional[str] = None


class QuestionGenerationResult(BaseModel):
    phase: str
    cached: bool
    questions: list[ClarificationQuestionOut]
    correlation_id: Optional[str] = None


class AnswerUpsert(BaseModel):
    question_id: str = Field(min_length=1)
    answer_text: str


class AnswerOut(BaseModel):
    question_id: str
    phase: str
    answer_text: str
    is_complete: bool
    character_count: int
    word_count: int
    answered_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class EnhancementResult(BaseModel):
    phase: str
    enhanced_text: str
    success: bool
    used_fallback: bool
    correlation_id: str
    version: int


class EnhancedNarrativeUpdate(BaseModel):
    enhanced_text: str = Field(min_length=1)


class WorkflowValidation(BaseModel):
    metadata_complete: bool
    narratives_complete: bool
    clarifications_complete: bool
    enhancement_complete: bool
    validation_passed: bool
    all_complete: bool
    missing_requirements: list[str]


class AnalysisUpdate(BaseModel):
    contributing_conditions: str
    analysis_status: Optional[Literal["draft", "ai_generated", "user_reviewed", "completed"]] = None


class AnalysisOut(BaseModel):
    id: UUID
    incident_id: UUID
    contributing_conditions: str
    conditions_original: Optional[str] = None
    conditions_edited: bool
    analysis_status: str
    analyzed_by: Optional[UUID] = None
    analyzed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    ai_model: Optional[str] = None
    revision_count: int
    model_config = ConfigDict(from_attributes=True)


IncidentType = Literal["behavioural", "environmental", "medical", "communication", "other"]
Severity = Literal["low", "medium", "high"]


class ClassificationCreate(BaseModel):
    incident_type: IncidentType
    severity: Severity
    supporting_evidence: str = Field(min_length=1)
    confidence_score: float = Field(default=1.0, ge=0, le=1)
    review_notes: Optional[str] = None


class ClassificationUpdate(BaseModel):
    incident_type: Optional[IncidentType] = None
    severity: Optional[Severity] = None
    supporting_evidence: Optional[str] = Field(default=None, min_length=1)
    confidence_score: Optional[float] = Field(default=None, ge=0, le=1)
    review_notes: Optional[str] = None


class ClassificationOut(BaseModel):
    id: UUID
    incident_id: UUID
    analysis_id: UUID
    classification_id: str
    incident_type: str
    severity: str
    supporting_evidence: str
    confidence_score: float
    user_reviewed: bool
    user_modified: bool
    review_notes: Optional[str] = None
    ai_generated: bool
    ai_model: Optional[str] = None
    classified_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ClassificationGenerationResult(BaseModel):
    classifications: list[ClassificationOut]
    correlation_id: str
