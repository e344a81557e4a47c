"""Schemas for AI prompt templates, prompt groups and AI request logs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PromptCreate(BaseModel):
    prompt_name: str = Field(min_length=1, max_length=100)
    prompt_template: str = Field(min_length=1)
    description: Optional[str] = None
    workflow_step: Optional[str] = None
    subsystem: Optional[str] = None
    ai_model: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, gt=0)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    group_id: Optional[UUID] = None


class PromptUpdate(BaseModel):
    prompt_template: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    workflow_step: Optional[str] = None
    ai_model: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, gt=0)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)


class PromptOut(BaseModel):
    id: UUID
    prompt_name: str
    prompt_version: str
    prompt_template: str
    description: Optional[str] = None
    workflow_step: Optional[str] = None
    subsystem: Optional[str] = None
    ai_model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    is_active: bool
    group_id: Optional[UUID] = None
    display_order: Optional[int] = None
    created_at: Optional[datetime] = None
    replaced_at: Optional[datetime] = None
    replaced_by: Optional[UUID] = None
    usage_count: int = 0
    average_response_time: Optional[float] = None
    success_rate: Optional[float] = None
    model_config = ConfigDict(from_attributes=True)


class PromptPreviewIn(BaseModel):
    template: Optional[str] = None
    prompt_name: Optional[str] = None
    variables: dict[str, Any] = {}

    @model_validator(mode="after")
    def require_source(self):
        if not self.template and not self.prompt_name:
            raise ValueError("template or prompt_name required")
        return self


class PromptPreviewOut(BaseModel):
    rendered: str
    substitutions: dict[str, str]
    missing: list[str]


class PromptGroupCreate(BaseModel):
    group_name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    display_order: Optional[int] = None
    is_collapsible: bool = True
    default_collapsed: bool = False


class PromptGroupUpdate(BaseModel):
    group_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    display_order: Optional[int] = None
    is_collapsible: Optional[bool] = None
    default_collapsed: Optional[bool] = None


class PromptGroupOut(BaseModel):
    id: UUID
    group_name: str
    description: Optional[str] = None
    display_order: int
    is_collapsible: bool
    default_collapsed: bool
    created_at: Optional[datetime] = None
    prompt_count: int = 0
    model_config = ConfigDict(from_attributes=True)


class PromptReorder(BaseModel):
    prompt_ids: list[UUID]
    new_orders: list[int]


class PromptMove(BaseModel):
    prompt_id: UUID
    group_id: Optional[UUID] = None
    display_order: Optional[int] = None


class AIRequestLogOut(BaseModel):
    id: UUID
    correlation_id: str
    operation: str
    model: Optional[str] = None
    prompt_template: Optional[str] = None
    processing_time_ms: Optional[int] = None
    tokens_used: Optional[int] = None
    cost_usd: Optional[float] = None
    success: bool
    error_message: Optional[str] = None
    user_id: Optional[UUID] = None
    incident_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)
