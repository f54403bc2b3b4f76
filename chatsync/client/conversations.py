"""Conversation list state kept current from the backend and the change feed."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from ..config import ClientSettings, get_client_settings
from .api import ChatApiClient, ChatApiError
from .cache import QueryCache
from .debounce import Debouncer
from .realtime import RealtimeChannel, RealtimeClient

logger = logging.getLogger(__name__)

CONVERSATIONS = ("conversations",)
UNREAD_COUNT = ("unread-count",)
FILTERS = ("all", "groups", "individual", "unread")


def conversations_key(filter_: str = "all") -> tuple:
    return (*CONVERSATIONS, filter_)


def _without(conversation_id: str):
    def _update(rows: Any) -> Any:
        if not isinstance(rows, list):
            return rows
        return [row for row in rows if row.get("id") != conversation_id]

    return _update


class ConversationStore:
    """Per-filter conversation lists with optimistic hide and leave."""

    def __init__(
        self,
        api: ChatApiClient,
        cache: QueryCache,
        realtime: RealtimeClient,
        *,
        settings: Optional[ClientSettings] = None,
    ) -> None:
        self._api = api
        self._cache = cache
        self._realtime = realtime
        self._settings = settings or get_client_settings()
        self._debouncer = Debouncer(self.refetch, self._settings.refetch_debounce_seconds)
        self._channel: Optional[RealtimeChannel] = None

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    def conversations(self, filter_: str = "all") -> list[dict]:
        return self._cache.get(conversations_key(filter_), [])

    def find(self, conversation_id: str) -> Optional[dict]:
        for key in self._cache.keys(CONVERSATIONS):
            for row in self._cache.get(key, []):
                if row.get("id") == conversation_id:
                    return row
        return None

    async def load(self, filter_: str = "all", *, force: bool = False) -> list[dict]:
        if filter_ not in FILTERS:
            raise ValueError(f"Unknown conversation filter: {filter_}")
        return await self._cache.fetch(
            conversations_key(filter_),
            lambda: self._api.list_conversations(filter_),
            stale_time=self._settings.conversations_stale_seconds,
            force=force,
        )

    async def refetch(self) -> None:
        await self._cache.invalidate(CONVERSATIONS)

    def start(self) -> None:
        """Subscribe to the tables that change the conversation list."""

        if self._channel is not None:
            return
        self._channel = (
            self._realtime.channel("conversations-changes")
            .on("conversations", self._on_change)
            .on("messages", self._on_change, event="INSERT")
            .on("participants", self._on_change)
        )

    def stop(self) -> None:
        if self._channel is not None:
            self._realtime.remove_channel(self._channel)
            self._channel = None
        self._debouncer.cancel()

    def _on_change(self, frame: dict) -> None:
        self._debouncer.trigger()

    async def create_conversation(self, user_id: Any) -> Optional[str]:
        try:
            conversation_id = await self._api.create_direct_conversation(user_id)
        except ChatApiError as exc:
            logger.warning("Failed to create conversation: %s", exc.detail)
            return None
        await self.refetch()
        return conversation_id

    async def create_group(self, name: str, participant_ids: Iterable[Any], *, image_url: Optional[str] = None) -> Optional[str]:
        try:
            conversation_id = await self._api.create_group(name, participant_ids, image_url=image_url)
        except ChatApiError as exc:
            logger.warning("Failed to create group: %s", exc.detail)
            return None
        await self.refetch()
        return conversation_id

    async def _remove_optimistically(self, conversation_id: str, action, description: str) -> bool:
        snapshot = self._cache.update_matching(CONVERSATIONS, _without(conversation_id))
        try:
            success = await action()
        except ChatApiError as exc:
            logger.warning("Failed to %s: %s", description, exc.detail)
            success = False
        if not success:
            self._cache.restore(snapshot)
        await self.refetch()
        return success

    async def hide_conversation(self, conversation_id: str) -> bool:
        return await self._remove_optimistically(
            conversation_id,
            lambda: self._api.hide_conversation(conversation_id),
            "hide conversation",
        )

    async def leave_group(self, conversation_id: str) -> bool:
        return await self._remove_optimistically(
            conversation_id,
            lambda: self._api.leave_group(conversation_id),
            "leave group",
        )

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Clear the thread for the current user, then hide it from the list."""

        async def _cascade() -> bool:
            await self._api.clear_messages(conversation_id)
            return await self._api.hide_conversation(conversation_id)

        success = await self._remove_optimistically(conversation_id, _cascade, "delete conversation")
        if success:
            await self._cache.invalidate(("messages", conversation_id))
        return success

    async def toggle_mute(self, conversation_id: str, muted: Optional[bool] = None) -> bool:
        if muted is None:
            row = self.find(conversation_id)
            muted = not (row or {}).get("is_muted", False)
        try:
            await self._api.set_conversation_muted(conversation_id, muted)
        except ChatApiError as exc:
            logger.warning("Failed to update notification settings: %s", exc.detail)
            return False
        await self.refetch()
        await self._cache.invalidate(UNREAD_COUNT)
        return True


__all__ = ["ConversationStore", "conversations_key", "CONVERSATIONS", "UNREAD_COUNT"]
