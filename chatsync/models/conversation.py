"""SQLAlchemy ORM models for conversations and their participants."""
from __future__ import annotations

from enum import StrEnum

from sqlalchemy import Boolean, Column, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import expression

from chatsync.database import Base
from .base import TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin


class ParticipantRole(StrEnum):
    MEMBER = "member"
    ADMIN = "admin"


class Conversation(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "conversations"

    name = Column(String(120), nullable=True)
    image_url = Column(String(1024), nullable=True)
    is_group = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    creator = relationship("User", foreign_keys=[created_by])
    participants = relationship(
        "Participant",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Participant.created_at",
    )
    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")
    history = relationship("GroupHistory", back_populates="conversation", cascade="all, delete-orphan")

    def active_participants(self) -> list["Participant"]:
        return [participant for participant in self.participants if participant.hidden_at is None]

    def participant_for(self, user_id) -> "Participant | None":
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None


class Participant(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "participants"

    conversation_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False, default=ParticipantRole.MEMBER.value)
    muted = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    # Hidden from the "all" list until a new message arrives.
    hidden_from_all_chats = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    # Set when the user left or was removed from the conversation.
    hidden_at = Column(UTCDateTime(), nullable=True)
    last_read_at = Column(UTCDateTime(), nullable=True)

    conversation = relationship("Conversation", back_populates="participants")
    user = relationship("User", back_populates="participations")

    __table_args__ = (UniqueConstraint("conversation_id", "user_id", name="uq_participants_conversation_user"),)

    @property
    def is_active(self) -> bool:
        return self.hidden_at is None

    @property
    def is_admin(self) -> bool:
        return self.role == ParticipantRole.ADMIN.value


__all__ = ["Conversation", "Participant", "ParticipantRole"]
