"""Per-conversation message thread with optimistic mutations."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional

from .api import ChatApiClient, ChatApiError
from .cache import QueryCache
from .conversations import CONVERSATIONS, UNREAD_COUNT
from .realtime import RealtimeChannel, RealtimeClient

logger = logging.getLogger(__name__)

MESSAGES = ("messages",)


def messages_key(conversation_id: str) -> tuple:
    return (*MESSAGES, conversation_id)


def _map_message(message_id: str, change: Callable[[dict], dict]):
    def _update(rows: Any) -> Any:
        if not isinstance(rows, list):
            return rows
        return [change(dict(row)) if row.get("id") == message_id else row for row in rows]

    return _update


class MessageStore:
    """Messages of one conversation, refreshed by change events for that conversation."""

    def __init__(
        self,
        api: ChatApiClient,
        cache: QueryCache,
        realtime: RealtimeClient,
        conversation_id: str,
        *,
        user_id: Optional[str] = None,
    ) -> None:
        self._api = api
        self._cache = cache
        self._realtime = realtime
        self.conversation_id = str(conversation_id)
        self.user_id = str(user_id or api.user_id or "")
        self.key = messages_key(self.conversation_id)
        self._channel: Optional[RealtimeChannel] = None

    @property
    def messages(self) -> list[dict]:
        return self._cache.get(self.key, [])

    async def load(self, *, force: bool = False) -> list[dict]:
        return await self._cache.fetch(
            self.key,
            lambda: self._api.list_messages(self.conversation_id),
            force=force,
        )

    def start(self) -> None:
        if self._channel is not None:
            return
        scope = f"conversation_id=eq.{self.conversation_id}"
        self._channel = (
            self._realtime.channel(f"messages:{self.conversation_id}")
            .on("messages", self._on_change, filter=scope)
            .on("message_reactions", self._on_change, filter=scope)
            .on("message_receipts", self._on_change, filter=scope)
        )

    def stop(self) -> None:
        if self._channel is not None:
            self._realtime.remove_channel(self._channel)
            self._channel = None

    async def _on_change(self, frame: dict) -> None:
        await self._cache.invalidate(self.key)

    async def _mutate(
        self,
        description: str,
        call: Callable[[], Awaitable[Any]],
        update: Optional[Callable[[Any], Any]] = None,
        *,
        also_invalidate: Iterable[tuple] = (),
    ) -> bool:
        snapshot = self._cache.update_matching(self.key, update) if update is not None else []
        try:
            result = await call()
        except ChatApiError as exc:
            logger.warning("Failed to %s: %s", description, exc.detail)
            self._cache.restore(snapshot)
            await self._cache.invalidate(self.key)
            return False
        await self._cache.invalidate(self.key)
        for prefix in also_invalidate:
            await self._cache.invalidate(prefix)
        return result is not False

    async def send_message(
        self,
        content: str,
        *,
        images: Optional[Iterable[str]] = None,
        shared_post: Optional[dict] = None,
    ) -> bool:
        """Append a ``sending`` placeholder, then send; the placeholder turns ``failed`` on error."""

        temp_id = f"temp-{uuid.uuid4()}"
        placeholder = {
            "id": temp_id,
            "conversation_id": self.conversation_id,
            "sender_id": self.user_id,
            "content": content,
            "images": list(images or []),
            "shared_post": shared_post,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "edited_at": None,
            "deleted_at": None,
            "sender": None,
            "reactions": [],
            "status": "sending",
            "is_edited": False,
            "is_deleted": False,
        }
        self._cache.set_data(self.key, lambda rows: [*(rows or []), placeholder])
        try:
            await self._api.send_message(
                self.conversation_id,
                content,
                images=placeholder["images"],
                shared_post=shared_post,
            )
        except ChatApiError as exc:
            logger.warning("Failed to send message: %s", exc.detail)
            self._cache.update_matching(self.key, _map_message(temp_id, lambda row: {**row, "status": "failed"}))
            return False
        await self._cache.invalidate(self.key)
        await self._cache.invalidate(CONVERSATIONS)
        return True

    def discard_failed(self) -> None:
        self._cache.update_matching(
            self.key,
            lambda rows: [row for row in rows or [] if row.get("status") != "failed"],
        )

    async def edit_message(self, message_id: str, content: str) -> bool:
        return await self._mutate(
            "edit message",
            lambda: self._api.edit_message(message_id, content),
            _map_message(message_id, lambda row: {**row, "content": content, "is_edited": True}),
        )

    async def delete_for_me(self, message_id: str) -> bool:
        return await self._mutate(
            "delete message",
            lambda: self._api.delete_message_for_me(message_id),
            lambda rows: [row for row in rows or [] if row.get("id") != message_id],
            also_invalidate=(CONVERSATIONS,),
        )

    async def delete_for_everyone(self, message_id: str) -> bool:
        def _deleted(row: dict) -> dict:
            return {
                **row,
                "content": "",
                "images": [],
                "shared_post": None,
                "reactions": [],
                "is_deleted": True,
                "is_edited": False,
            }

        return await self._mutate(
            "delete message for everyone",
            lambda: self._api.delete_message_for_everyone(message_id),
            _map_message(message_id, _deleted),
            also_invalidate=(CONVERSATIONS,),
        )

    async def add_reaction(self, message_id: str, emoji: str) -> bool:
        def _react(row: dict) -> dict:
            others = [r for r in row.get("reactions") or [] if r.get("user_id") != self.user_id]
            mine = {
                "id": f"temp-{uuid.uuid4()}",
                "message_id": message_id,
                "user_id": self.user_id,
                "emoji": emoji,
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            return {**row, "reactions": [*others, mine]}

        return await self._mutate(
            "add reaction",
            lambda: self._api.set_reaction(message_id, emoji),
            _map_message(message_id, _react),
        )

    async def remove_reaction(self, message_id: str) -> bool:
        def _unreact(row: dict) -> dict:
            return {**row, "reactions": [r for r in row.get("reactions") or [] if r.get("user_id") != self.user_id]}

        return await self._mutate(
            "remove reaction",
            lambda: self._api.remove_reaction(message_id),
            _map_message(message_id, _unreact),
        )

    async def clear_messages(self) -> bool:
        return await self._mutate(
            "clear messages",
            lambda: self._api.clear_messages(self.conversation_id),
            lambda rows: [],
            also_invalidate=(CONVERSATIONS, UNREAD_COUNT),
        )

    async def mark_as_read(self) -> bool:
        try:
            await self._api.mark_read(self.conversation_id)
        except ChatApiError as exc:
            logger.warning("Failed to mark messages as read: %s", exc.detail)
            return False
        await self._cache.invalidate(CONVERSATIONS)
        await self._cache.invalidate(UNREAD_COUNT)
        return True


__all__ = ["MessageStore", "messages_key", "MESSAGES"]
