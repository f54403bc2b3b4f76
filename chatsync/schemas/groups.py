"""Schemas for group administration endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field

from .auth import ProfileSummary
from .conversations import ParticipantResponse


class GroupInfo(BaseModel):
    id: UUID
    name: str | None
    image_url: str | None = None
    is_group: bool
    created_at: datetime
    created_by: UUID | None


class GroupHistoryEntry(BaseModel):
    id: UUID
    action_type: str
    performed_by: UUID | None
    affected_user_id: UUID | None
    old_value: str | None = None
    new_value: str | None = None
    created_at: datetime
    performer: ProfileSummary | None = None
    affected: ProfileSummary | None = None


class GroupDetailResponse(BaseModel):
    group: GroupInfo
    participants: List[ParticipantResponse]
    history: List[GroupHistoryEntry]
    is_admin: bool = False


class GroupParticipantsRequest(BaseModel):
    user_ids: List[UUID] = Field(..., min_length=1)


class GroupMembershipResponse(BaseModel):
    conversation_id: UUID
    user_ids: List[UUID] = Field(default_factory=list)


class GroupRenameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)


__all__ = [
    "GroupInfo",
    "GroupHistoryEntry",
    "GroupDetailResponse",
    "GroupParticipantsRequest",
    "GroupMembershipResponse",
    "GroupRenameRequest",
]
