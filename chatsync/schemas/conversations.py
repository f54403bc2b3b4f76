"""Schemas for the conversation list and conversation lifecycle endpoints."""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field

from .auth import ProfileSummary
from .messages import LastMessagePreview


class ConversationFilter(StrEnum):
    ALL = "all"
    GROUPS = "groups"
    INDIVIDUAL = "individual"
    UNREAD = "unread"


class ParticipantResponse(BaseModel):
    user_id: UUID
    role: str
    muted: bool = False
    joined_at: datetime
    profile: ProfileSummary | None = None


class ConversationResponse(BaseModel):
    id: UUID
    name: str | None
    image_url: str | None = None
    is_group: bool
    created_at: datetime
    updated_at: datetime
    created_by: UUID | None
    participants: List[ParticipantResponse] = Field(default_factory=list)
    last_message: LastMessagePreview | None = None
    unread_count: int = 0
    is_muted: bool = False
    other_participant: ProfileSummary | None = None


class DirectConversationCreate(BaseModel):
    participant_id: UUID


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    participant_ids: List[UUID] = Field(default_factory=list)
    image_url: str | None = Field(default=None, max_length=1024)


class ConversationCreatedResponse(BaseModel):
    conversation_id: UUID


class MuteConversationRequest(BaseModel):
    muted: bool


class ConversationActionResponse(BaseModel):
    conversation_id: UUID
    success: bool


__all__ = [
    "ConversationFilter",
    "ParticipantResponse",
    "ConversationResponse",
    "DirectConversationCreate",
    "GroupCreate",
    "ConversationCreatedResponse",
    "MuteConversationRequest",
    "ConversationActionResponse",
]
