"""Convenience exports for ORM models."""
from .conversation import Conversation, Participant, ParticipantRole
from .group_history import GroupAction, GroupHistory
from .message import Message, MessageReaction, MessageReceipt
from .muted_user import MutedUser
from .user import User

__all__ = [
    "Conversation",
    "Participant",
    "ParticipantRole",
    "GroupAction",
    "GroupHistory",
    "Message",
    "MessageReaction",
    "MessageReceipt",
    "MutedUser",
    "User",
]
