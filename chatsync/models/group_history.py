"""Append-only audit log of group administration events."""
from __future__ import annotations

from enum import StrEnum

from sqlalchemy import Column, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from chatsync.database import Base
from .base import UTCDateTime, UUIDPrimaryKeyMixin, utcnow


class GroupAction(StrEnum):
    GROUP_CREATED = "group_created"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    MEMBER_LEFT = "member_left"
    ADMIN_PROMOTED = "admin_promoted"
    ADMIN_DEMOTED = "admin_demoted"
    ADMIN_TRANSFERRED = "admin_transferred"
    NAME_CHANGED = "name_changed"


class GroupHistory(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "group_history"

    conversation_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action_type = Column(String(32), nullable=False)
    performed_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    affected_user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    old_value = Column(String(255), nullable=True)
    new_value = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False, index=True)

    conversation = relationship("Conversation", back_populates="history")
    performer = relationship("User", foreign_keys=[performed_by])
    affected = relationship("User", foreign_keys=[affected_user_id])


__all__ = ["GroupAction", "GroupHistory"]
