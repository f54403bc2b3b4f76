"""Top-level messaging session wiring the stores to one API client and change feed."""
from __future__ import annotations

import logging
from typing import Any, Optional

from ..config import ClientSettings, get_client_settings
from .api import ChatApiClient, ChatApiError
from .cache import QueryCache
from .conversations import CONVERSATIONS, UNREAD_COUNT, ConversationStore, conversations_key
from .groups import GroupManagementStore
from .messages import MESSAGES, MessageStore, messages_key
from .mutes import MutedUsersStore
from .presence import PresenceStore
from .realtime import RealtimeChannel, RealtimeClient
from .unread import MessageCountStore

logger = logging.getLogger(__name__)


class MessagingSession:
    """Acknowledge incoming messages and keep shared queries fresh for the signed-in user."""

    def __init__(
        self,
        api: ChatApiClient,
        realtime: RealtimeClient,
        *,
        user_id: Optional[str] = None,
        cache: Optional[QueryCache] = None,
        settings: Optional[ClientSettings] = None,
    ) -> None:
        self.api = api
        self.realtime = realtime
        self.cache = cache or QueryCache()
        self.settings = settings or get_client_settings()
        self.user_id = str(user_id or api.user_id or "")
        self.active_conversation_id: Optional[str] = None
        self.conversations = ConversationStore(api, self.cache, realtime, settings=self.settings)
        self.unread = MessageCountStore(api, self.cache, realtime, settings=self.settings)
        self.mutes = MutedUsersStore(api, self.cache, realtime)
        self.presence = PresenceStore(realtime)
        self._known_conversations: set[str] = set()
        self._message_stores: dict[str, MessageStore] = {}
        self._group_stores: dict[str, GroupManagementStore] = {}
        self._channel: Optional[RealtimeChannel] = None
        self._unsubscribe_cache = None

    @classmethod
    def from_settings(cls, token: str, user_id: str, *, settings: Optional[ClientSettings] = None) -> "MessagingSession":
        settings = settings or get_client_settings()
        api = ChatApiClient(settings.api_url, token=token, timeout=settings.request_timeout)
        api.user_id = user_id
        realtime = RealtimeClient(settings.ws_url, token=token)
        return cls(api, realtime, user_id=user_id, settings=settings)

    @property
    def known_conversation_ids(self) -> set[str]:
        return set(self._known_conversations)

    async def start(self, *, connect: bool = True, poll_unread: bool = True) -> None:
        if connect:
            await self.realtime.connect()
        self._unsubscribe_cache = self.cache.subscribe(conversations_key("all"), self._remember_conversations)
        self.conversations.start()
        self.unread.start(poll=poll_unread)
        self.mutes.start()
        self.presence.start()
        self._channel = (
            self.realtime.channel("messaging-session")
            .on("messages", self._on_message_insert, event="INSERT")
            .on("message_receipts", self._on_receipt)
        )
        await self.conversations.load("all")

    async def close(self) -> None:
        if self._channel is not None:
            self.realtime.remove_channel(self._channel)
            self._channel = None
        if self._unsubscribe_cache is not None:
            self._unsubscribe_cache()
            self._unsubscribe_cache = None
        for store in [*self._message_stores.values(), *self._group_stores.values()]:
            store.stop()
        self.conversations.stop()
        self.mutes.stop()
        self.presence.stop()
        await self.unread.stop()
        await self.realtime.close()
        await self.api.aclose()

    def _remember_conversations(self, key: tuple, rows: Any) -> None:
        if isinstance(rows, list):
            self._known_conversations = {row["id"] for row in rows if "id" in row}

    def message_store(self, conversation_id: Any) -> MessageStore:
        key = str(conversation_id)
        store = self._message_stores.get(key)
        if store is None:
            store = MessageStore(self.api, self.cache, self.realtime, key, user_id=self.user_id)
            store.start()
            self._message_stores[key] = store
        return store

    def group_store(self, conversation_id: Any) -> GroupManagementStore:
        key = str(conversation_id)
        store = self._group_stores.get(key)
        if store is None:
            store = GroupManagementStore(self.api, self.cache, self.realtime, key, user_id=self.user_id)
            store.start()
            self._group_stores[key] = store
        return store

    async def set_active_conversation(self, conversation_id: Optional[Any]) -> None:
        self.active_conversation_id = str(conversation_id) if conversation_id is not None else None
        if self.active_conversation_id is None:
            return
        try:
            await self.api.mark_read(self.active_conversation_id)
        except ChatApiError as exc:
            logger.warning("Failed to mark conversation as read: %s", exc.detail)
            return
        await self.cache.invalidate(CONVERSATIONS)
        await self.cache.invalidate(UNREAD_COUNT)

    async def _on_message_insert(self, frame: dict) -> None:
        record = frame.get("record") or {}
        conversation_id = str(record.get("conversation_id") or frame.get("conversation_id") or "")
        sender_id = record.get("sender_id")
        if not conversation_id or str(sender_id) == self.user_id:
            return
        if conversation_id in self._known_conversations:
            try:
                if conversation_id == self.active_conversation_id:
                    await self.api.mark_read(conversation_id)
                else:
                    await self.api.mark_delivered(conversation_id)
            except ChatApiError as exc:
                logger.warning("Failed to acknowledge message: %s", exc.detail)
        await self.cache.invalidate(messages_key(conversation_id))
        await self.cache.invalidate(CONVERSATIONS)

    async def _on_receipt(self, frame: dict) -> None:
        await self.cache.invalidate(MESSAGES)


__all__ = ["MessagingSession"]
