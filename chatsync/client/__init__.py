"""Async client synchronization layer for the chatsync backend."""
from .api import ChatApiClient, ChatApiError
from .cache import QueryCache
from .conversations import ConversationStore
from .debounce import Debouncer
from .groups import GroupManagementStore
from .messages import MessageStore
from .mutes import MutedUsersStore
from .presence import PresenceStore
from .realtime import RealtimeChannel, RealtimeClient
from .session import MessagingSession
from .unread import MessageCountStore

__all__ = [
    "ChatApiClient",
    "ChatApiError",
    "QueryCache",
    "ConversationStore",
    "Debouncer",
    "GroupManagementStore",
    "MessageStore",
    "MutedUsersStore",
    "PresenceStore",
    "RealtimeChannel",
    "RealtimeClient",
    "MessagingSession",
    "MessageCountStore",
]
