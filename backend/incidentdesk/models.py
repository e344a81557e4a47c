import uuid
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
    Float,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from sqlite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


NARRATIVE_PHASES = ("before_event", "during_event", "end_event", "post_event")


class Company(Base):
    __tablename__ = "companies"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    contact_email = Column(String, nullable=False)
    status = Column(String, default="active", nullable=False, index=True)
    created_by = Column(UUID(as_uuid=True))
    created_at = Column(DateTime, default=utcnow)

    users = relationship("User", back_populates="company")


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    role = Column(String, default="frontline_worker", nullable=False)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), index=True)
    has_llm_access = Column(Boolean, default=False, nullable=False)
    profile_image_url = Column(String)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    last_login_at = Column(DateTime)

    company = relationship("Company", back_populates="users")
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")


class UserSession(Base):
    __tablename__ = "sessions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    session_token = Column(String, unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    remember_me = Column(Boolean, default=False, nullable=False)
    user_agent = Column(String)
    ip_address = Column(String)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="sessions")


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String, unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False, nullable=False)


class UserInvitation(Base):
    __tablename__ = "user_invitations"
    __table_args__ = (Index("ix_user_invitations_email_company", "email", "company_id"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, nullable=False)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)
    role = Column(String, nullable=False)
    invited_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    invitation_token = Column(String, unique=True, nullable=False, index=True)
    status = Column(String, default="pending", nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    accepted_at = Column(DateTime)

    company = relationship("Company")
    inviter = relationship("User", foreign_keys=[invited_by])


class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (UniqueConstraint("company_id", "ndis_number", name="uq_participant_company_ndis"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    date_of_birth = Column(String, nullable=False)
    ndis_number = Column(String, nullable=False)
    contact_phone = Column(String)
    emergency_contact = Column(String)
    support_level = Column(String, nullable=False)
    care_notes = Column(Text)
    status = Column(String, default="active", nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)
    updated_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    updated_at = Column(DateTime, default=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Incident(Base):
    __tablename__ = "incidents"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)
    reporter_name = Column(String, nullable=False)
    participant_id = Column(UUID(as_uuid=True), ForeignKey("participants.id"))
    participant_name = Column(String, nullable=False)
    event_date_time = Column(String, nullable=False)
    location = Column(String, nullable=False)
    capture_status = Column(String, default="draft", nullable=False)
    analysis_status = Column(String, default="not_started", nullable=False)
    overall_status = Column(String, default="capture_pending", nullable=False, index=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    submitted_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    submitted_at = Column(DateTime)
    narrative_hash = Column(String)
    questions_generated = Column(Boolean, default=False, nullable=False)
    narrative_enhanced = Column(Boolean, default=False, nullable=False)
    analysis_generated = Column(Boolean, default=False, nullable=False)

    narrative = relationship(
        "IncidentNarrative", back_populates="incident", uselist=False, cascade="all, delete-orphan"
    )
    analysis = relationship(
        "IncidentAnalysis", back_populates="incident", uselist=False, cascade="all, delete-orphan"
    )
    participant = relationship("Participant")


class IncidentNarrative(Base):
    __tablename__ = "incident_narratives"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    incident_id = Column(UUID(as_uuid=True), ForeignKey("incidents.id"), unique=True, nullable=False)
    before_event = Column(Text, default="", nullable=False)
    during_event = Column(Text, default="", nullable=False)
    end_event = Column(Text, default="", nullable=False)
    post_event = Column(Text, default="", nullable=False)
    before_event_extra = Column(Text)
    during_event_extra = Column(Text)
    end_event_extra = Column(Text)
    post_event_extra = Column(Text)
    consolidated_narrative = Column(Text)
    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    enhanced_at = Column(DateTime)

    incident = relationship("Incident", back_populates="narrative")


class ClarificationQuestion(Base):
    __tablename__ = "clarification_questions"
    __table_args__ = (Index("ix_clarification_questions_incident_phase", "incident_id", "phase"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    incident_id = Column(UUID(as_uuid=True), ForeignKey("incidents.id"), nullable=False)
    question_id = Column(String, nullable=False)
    phase = Column(String, nullable=False)
    question_text = Column(Text, nullable=False)
    question_order = Column(Integer, nullable=False)
    narrative_hash = Column(String)
    ai_model = Column(String)
    prompt_version = Column(String)
    is_active = Column(Boolean, default=True, nullable=False)
    generated_at = Column(DateTime, default=utcnow)


class ClarificationAnswer(Base):
    __tablename__ = "clarification_answers"
    __table_args__ = (UniqueConstraint("incident_id", "question_id", name="uq_answer_incident_question"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    incident_id = Column(UUID(as_uuid=True), ForeignKey("incidents.id"), nullable=False, index=True)
    question_id = Column(String, nullable=False)
    phase = Column(String, nullable=False)
    answer_text = Column(Text, nullable=False)
    answered_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    answered_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    is_complete = Column(Boolean, default=False, nullable=False)
    character_count = Column(Integer, default=0, nullable=False)
    word_count = Column(Integer, default=0, nullable=False)


class IncidentAnalysis(Base):
    __tablename__ = "incident_analysis"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    incident_id = Column(UUID(as_uuid=True), ForeignKey("incidents.id"), unique=True, nullable=False)
    contributing_conditions = Column(Text, default="", nullable=False)
    conditions_original = Column(Text)
    conditions_edited = Column(Boolean, default=False, nullable=False)
    analysis_status = Column(String, default="draft", nullable=False)
    analyzed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    analyzed_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    ai_model = Column(String)
    ai_processing_time_ms = Column(Integer)
    revision_count = Column(Integer, default=0, nullable=False)

    incident = relationship("Incident", back_populates="analysis")
    classifications = relationship(
        "IncidentClassification",
        back_populates="analysis",
        cascade="all, delete-orphan",
        order_by="IncidentClassification.created_at",
    )


class IncidentClassification(Base):
    __tablename__ = "incident_classifications"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    incident_id = Column(UUID(as_uuid=True), ForeignKey("incidents.id"), nullable=False, index=True)
    analysis_id = Column(UUID(as_uuid=True), ForeignKey("incident_analysis.id"), nullable=False, index=True)
    classification_id = Column(String, nullable=False)
    incident_type = Column(String, nullable=False, index=True)
    supporting_evidence = Column(Text, nullable=False)
    severity = Column(String, nullable=False, index=True)
    confidence_score = Column(Float, default=1.0, nullable=False)
    user_reviewed = Column(Boolean, default=False, nullable=False)
    user_modified = Column(Boolean, default=False, nullable=False)
    review_notes = Column(Text)
    classified_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    ai_generated = Column(Boolean, default=False, nullable=False)
    ai_model = Column(String)
    original_ai_classification = Column(JSON)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    analysis = relationship("IncidentAnalysis", back_populates="classifications")


class PromptGroup(Base):
    __tablename__ = "prompt_groups"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_name = Column(String, nullable=False)
    description = Column(Text)
    display_order = Column(Integer, default=0, nullable=False)
    is_collapsible = Column(Boolean, default=True, nullable=False)
    default_collapsed = Column(Boolean, default=False, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)

    prompts = relationship("AIPrompt", back_populates="group")


class AIPrompt(Base):
    __tablename__ = "ai_prompts"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    prompt_name = Column(String, nullable=False, index=True)
    prompt_version = Column(String, default="v1.0.0", nullable=False)
    prompt_template = Column(Text, nullable=False)
    description = Column(Text)
    workflow_step = Column(String)
    subsystem = Column(String)
    ai_model = Column(String)
    max_tokens = Column(Integer)
    temperature = Column(Float)
    is_active = Column(Boolean, default=True, nullable=False)
    group_id = Column(UUID(as_uuid=True), ForeignKey("prompt_groups.id"))
    display_order = Column(Integer)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)
    replaced_by = Column(UUID(as_uuid=True))
    replaced_at = Column(DateTime)
    usage_count = Column(Integer, default=0, nullable=False)
    average_response_time = Column(Float)
    success_rate = Column(Float)

    group = relationship("PromptGroup", back_populates="prompts")


class AIRequestLog(Base):
    __tablename__ = "ai_request_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    correlation_id = Column(String, nullable=False, index=True)
    operation = Column(String, nullable=False, index=True)
    model = Column(String)
    prompt_template = Column(String)
    input_data = Column(JSON, default=dict)
    output_data = Column(JSON)
    processing_time_ms = Column(Integer, default=0)
    tokens_used = Column(Integer)
    cost_usd = Column(Float)
    success = Column(Boolean, default=True, nullable=False)
    error_message = Column(Text)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    incident_id = Column(UUID(as_uuid=True), ForeignKey("incidents.id"), index=True)
    created_at = Column(DateTime, default=utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    company_id = Column(UUID(as_uuid=True), index=True)
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)
