"""Schemas used by messaging endpoints."""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .auth import ProfileSummary


class MessageStatus(StrEnum):
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class MessageSendRequest(BaseModel):
    content: str = Field(default="", max_length=4000)
    images: List[str] = Field(default_factory=list)
    shared_post: dict[str, Any] | None = Field(None, description="Snapshot of a post shared into the chat")


class MessageEditRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)


class ReactionRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=32)


class ReactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    message_id: UUID
    user_id: UUID
    emoji: str
    created_at: datetime


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    conversation_id: UUID
    sender_id: UUID | None
    content: str
    images: List[str] = Field(default_factory=list)
    shared_post: dict[str, Any] | None = None
    created_at: datetime
    edited_at: datetime | None = None
    deleted_at: datetime | None = None
    sender: ProfileSummary | None = None
    reactions: List[ReactionResponse] = Field(default_factory=list)
    status: MessageStatus = MessageStatus.SENT
    is_edited: bool = False
    is_deleted: bool = False


class MessageThreadResponse(BaseModel):
    conversation_id: UUID
    messages: List[MessageResponse]


class MessageStatusResponse(BaseModel):
    message_id: UUID
    status: MessageStatus


class MessageActionResponse(BaseModel):
    message_id: UUID
    success: bool


class LastMessagePreview(BaseModel):
    id: UUID
    content: str
    images: List[str] = Field(default_factory=list)
    shared_post: dict[str, Any] | None = None
    created_at: datetime
    sender_id: UUID | None
    sender: ProfileSummary | None = None


__all__ = [
    "MessageStatus",
    "MessageSendRequest",
    "MessageEditRequest",
    "ReactionRequest",
    "ReactionResponse",
    "MessageResponse",
    "MessageThreadResponse",
    "MessageStatusResponse",
    "MessageActionResponse",
    "LastMessagePreview",
]
