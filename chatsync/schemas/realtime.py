"""Frames pushed over the realtime websocket."""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class ChangeType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """Row-level change notification for one table."""

    type: str = "change"
    table: str
    event: ChangeType
    record: dict[str, Any] = Field(default_factory=dict)
    old_record: dict[str, Any] | None = None
    conversation_id: UUID | None = None


class PresenceState(BaseModel):
    user_id: UUID
    online_at: datetime


__all__ = ["ChangeType", "ChangeEvent", "PresenceState"]
