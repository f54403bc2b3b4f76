"""Schemas for muted users and unread counters."""
from __future__ import annotations

from datetime import datetime
from typing import List
from uuid import UUID

from pydantic import BaseModel

from .auth import ProfileSummary


class MutedUserResponse(BaseModel):
    id: UUID
    muted_user_id: UUID
    created_at: datetime
    user: ProfileSummary | None = None


class MutedUserListResponse(BaseModel):
    items: List[MutedUserResponse]


class MuteActionResponse(BaseModel):
    user_id: UUID
    success: bool


class UnreadCountResponse(BaseModel):
    unread_count: int


__all__ = ["MutedUserResponse", "MutedUserListResponse", "MuteActionResponse", "UnreadCountResponse"]
