"""Aggregate router exports."""
from .auth import router as auth_router
from .conversations import router as conversations_router
from .groups import router as groups_router
from .messages import router as messages_router
from .mutes import router as mutes_router
from .realtime import router as realtime_router

__all__ = [
    "auth_router",
    "conversations_router",
    "groups_router",
    "messages_router",
    "mutes_router",
    "realtime_router",
]
