"""SQLAlchemy ORM models for chat messages, reactions and receipts."""
from __future__ import annotations

from sqlalchemy import JSON, Column, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from chatsync.database import Base
from .base import TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin, utcnow

_JSON = JSON().with_variant(JSONB(), "postgresql")


class Message(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "messages"

    conversation_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    content = Column(Text, nullable=False, default="")
    images = Column(_JSON, nullable=True)
    shared_post = Column(_JSON, nullable=True)
    # String user ids for whom the message was deleted locally.
    hidden_by = Column(_JSON, nullable=True)
    edited_at = Column(UTCDateTime(), nullable=True)
    deleted_at = Column(UTCDateTime(), nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User", back_populates="sent_messages")
    reactions = relationship(
        "MessageReaction",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageReaction.created_at",
    )
    receipts = relationship("MessageReceipt", back_populates="message", cascade="all, delete-orphan")

    def is_hidden_for(self, user_id) -> bool:
        return str(user_id) in (self.hidden_by or [])

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_edited(self) -> bool:
        return self.edited_at is not None and self.deleted_at is None


class MessageReaction(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "message_reactions"

    message_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    emoji = Column(String(32), nullable=False)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)

    message = relationship("Message", back_populates="reactions")

    __table_args__ = (UniqueConstraint("message_id", "user_id", name="uq_message_reactions_message_user"),)


class MessageReceipt(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "message_receipts"

    message_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    delivered_at = Column(UTCDateTime(), nullable=True)
    read_at = Column(UTCDateTime(), nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)

    message = relationship("Message", back_populates="receipts")

    __table_args__ = (UniqueConstraint("message_id", "user_id", name="uq_message_receipts_message_user"),)


__all__ = ["Message", "MessageReaction", "MessageReceipt"]
