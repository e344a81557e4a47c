"""Pydantic schemas consolidating backend API contracts."""

# purpose: aggregate request and response schemas for FastAPI surfaces and services
# status: active

from datetime import datetime
from typing import Optional, Any, Dict, Literal, List
from pydantic import BaseModel, EmailStr, ConfigDict, Field, field_validator
from uuid import UUID

from .incidents import (
    AnalysisOut,
    AnalysisUpdate,
    AnswerOut,
    AnswerUpsert,
    ClassificationCreate,
    ClassificationGenerationResult,
    ClassificationOut,
    ClassificationUpdate,
    ClarificationQuestionOut,
    ConsolidatedNarrativeOut,
    DashboardStats,
    EnhancedNarrativeUpdate,
    EnhancementResult,
    IncidentCreate,
    IncidentOut,
    IncidentStatusUpdate,
    IncidentUpdate,
    NarrativeOut,
    NarrativeUpdate,
    ParticipantCreate,
    ParticipantOut,
    ParticipantStatusUpdate,
    ParticipantUpdate,
    QuestionGenerationResult,
    WorkflowValidation,
)
from .prompts import (
    AIRequestLogOut,
    PromptCreate,
    PromptGroupCreate,
    PromptGroupOut,
    PromptGroupUpdate,
    PromptMove,
    PromptOut,
    PromptPreviewIn,
    PromptPreviewOut,
    PromptReorder,
    PromptUpdate,
)

RoleName = Literal["system_admin", "demo_admin", "company_admin", "team_lead", "frontline_worker"]
InvitableRole = Literal["company_admin", "team_lead", "frontline_worker"]
CompanyStatus = Literal["active", "trial", "suspended"]


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    remember_me: bool = False


class UserOut(BaseModel):
    id: UUID
    name: str
    email: EmailStr
    role: str
    company_id: Optional[UUID] = None
    has_llm_access: bool = False
    profile_image_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class SessionOut(BaseModel):
    session_token: str
    expires_at: datetime
    user: UserOut


class SessionInfo(BaseModel):
    user: UserOut
    expires_at: datetime
    remember_me: bool = False


class RefreshRequest(BaseModel):
    extend: bool = False


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str


class UserCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str
    role: RoleName = "frontline_worker"
    company_id: Optional[UUID] = None
    has_llm_access: bool = False


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    profile_image_url: Optional[str] = None


class UserRoleUpdate(BaseModel):
    role: str


class CompanyCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    slug: str = Field(min_length=2, max_length=50, pattern=r"^[a-z0-9-]+$")
    contact_email: EmailStr
    status: CompanyStatus = "active"


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    slug: Optional[str] = Field(default=None, min_length=2, max_length=50, pattern=r"^[a-z0-9-]+$")
    contact_email: Optional[EmailStr] = None


class CompanyStatusUpdate(BaseModel):
    status: CompanyStatus


class CompanyOut(BaseModel):
    id: UUID
    name: str
    slug: str
    contact_email: str
    status: str
    created_at: Optional[datetime] = None
    created_by: Optional[UUID] = None
    model_config = ConfigDict(from_attributes=True)


class CompanyStats(BaseModel):
    user_count: int
    incident_count: int
    active_incidents: int
    participant_count: int


class InvitationCreate(BaseModel):
    email: EmailStr
    role: InvitableRole
    company_id: UUID

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class InvitationOut(BaseModel):
    id: UUID
    email: str
    company_id: UUID
    role: str
    status: str
    invited_by: UUID
    inviter_name: Optional[str] = None
    inviter_email: Optional[str] = None
    is_expired: bool = False
    expires_at: datetime
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None


class InvitationLookup(BaseModel):
    email: str
    company_name: str
    role: str
    status: str
    expires_at: datetime
    is_expired: bool


class InvitationAccept(BaseModel):
    token: str
    name: str = Field(min_length=2, max_length=100)
    password: str


class AuditLogOut(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    company_id: Optional[UUID] = None
    action: str
    target_type: Optional[str] = None
    target_id: Optional[UUID] = None
    details: Dict[str, Any] = {}
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AuditReportItem(BaseModel):
    action: str
    count: int


class PermissionInfoOut(BaseModel):
    key: str
    label: str
    description: str
    category: str


class MyPermissions(BaseModel):
    role: str
    company_id: Optional[UUID] = None
    permissions: List[str]
