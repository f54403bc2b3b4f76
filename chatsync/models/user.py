"""SQLAlchemy ORM model for application users (profiles)."""
from __future__ import annotations

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from chatsync.database import Base
from .base import TimestampMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"

    username = Column(String(150), unique=True, nullable=False, index=True)
    display_name = Column(String(150), nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    status_text = Column(String(280), nullable=True)
    hashed_password = Column(String(255), nullable=False)

    participations = relationship("Participant", back_populates="user", cascade="all, delete-orphan")
    sent_messages = relationship("Message", back_populates="sender")
    muted_relations = relationship(
        "MutedUser",
        foreign_keys="MutedUser.user_id",
        back_populates="user",
        cascade="all, delete-orphan",
    )


__all__ = ["User"]
