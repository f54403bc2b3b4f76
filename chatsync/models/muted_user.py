"""SQLAlchemy ORM model for users muted by another user."""
from __future__ import annotations

from sqlalchemy import Column, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from chatsync.database import Base
from .base import UTCDateTime, UUIDPrimaryKeyMixin, utcnow


class MutedUser(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "muted_users"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    muted_user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id], back_populates="muted_relations")
    muted_user = relationship("User", foreign_keys=[muted_user_id])

    __table_args__ = (UniqueConstraint("user_id", "muted_user_id", name="uq_muted_users_pair"),)


__all__ = ["MutedUser"]
