"""Total unread message counter for the navigation badge."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Participant, User
from .conversation_service import unread_counts_by_conversation
from .mute_service import muted_user_ids


def count_unread_messages(db: Session, *, requester: User) -> int:
    """Count unread messages across active, non-muted conversations, ignoring muted senders."""

    conversation_ids = list(
        db.scalars(
            select(Participant.conversation_id).where(
                Participant.user_id == requester.id,
                Participant.hidden_at.is_(None),
                Participant.muted.is_(False),
            )
        )
    )
    counts = unread_counts_by_conversation(
        db,
        requester.id,
        conversation_ids,
        muted_sender_ids=muted_user_ids(db, requester.id),
    )
    return sum(counts.values())


__all__ = ["count_unread_messages"]
