"""Group details and admin actions for one group conversation."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from .api import ChatApiClient, ChatApiError
from .cache import QueryCache
from .conversations import CONVERSATIONS
from .realtime import RealtimeChannel, RealtimeClient

logger = logging.getLogger(__name__)


def group_key(conversation_id: str) -> tuple:
    return ("group", conversation_id)


class GroupManagementStore:
    """Admin operations are refused locally, without a request, when the user is not an admin."""

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
        self.key = group_key(self.conversation_id)
        self._channel: Optional[RealtimeChannel] = None

    @property
    def details(self) -> Optional[dict]:
        return self._cache.get(self.key)

    @property
    def participants(self) -> list[dict]:
        return (self.details or {}).get("participants", [])

    @property
    def history(self) -> list[dict]:
        return (self.details or {}).get("history", [])

    @property
    def admin_count(self) -> int:
        return sum(1 for participant in self.participants if participant.get("role") == "admin")

    @property
    def is_admin(self) -> bool:
        return any(
            participant.get("user_id") == self.user_id and participant.get("role") == "admin"
            for participant in self.participants
        )

    async def load(self, *, force: bool = False) -> dict:
        return await self._cache.fetch(self.key, lambda: self._api.get_group(self.conversation_id), force=force)

    def start(self) -> None:
        if self._channel is not None:
            return
        scope = f"conversation_id=eq.{self.conversation_id}"
        self._channel = (
            self._realtime.channel(f"group:{self.conversation_id}")
            .on("participants", self._on_change, filter=scope)
            .on("group_history", self._on_change, filter=scope)
        )

    def stop(self) -> None:
        if self._channel is not None:
            self._realtime.remove_channel(self._channel)
            self._channel = None

    async def _on_change(self, frame: dict) -> None:
        await self._cache.invalidate(self.key)

    async def _admin_action(
        self,
        description: str,
        call: Callable[[], Awaitable[Any]],
        *,
        also_invalidate: Iterable[tuple] = (),
    ) -> bool:
        if self.details is None:
            await self.load()
        if not self.is_admin:
            logger.warning("Only group admins can %s", description)
            return False
        try:
            await call()
        except ChatApiError as exc:
            logger.warning("Failed to %s: %s", description, exc.detail)
            return False
        await self._cache.invalidate(self.key)
        for prefix in also_invalidate:
            await self._cache.invalidate(prefix)
        return True

    async def add_participants(self, user_ids: Iterable[Any]) -> bool:
        ids = [str(user_id) for user_id in user_ids]
        if not ids:
            return False
        return await self._admin_action(
            "add participants",
            lambda: self._api.add_participants(self.conversation_id, ids),
            also_invalidate=(CONVERSATIONS,),
        )

    async def remove_participant(self, user_id: Any) -> bool:
        return await self._admin_action(
            "remove participants",
            lambda: self._api.remove_participant(self.conversation_id, user_id),
            also_invalidate=(CONVERSATIONS,),
        )

    async def make_admin(self, user_id: Any) -> bool:
        return await self._admin_action("promote members", lambda: self._api.make_admin(self.conversation_id, user_id))

    async def remove_admin(self, user_id: Any) -> bool:
        if self.details is None:
            await self.load()
        if self.admin_count <= 1:
            logger.warning("A group needs at least one admin")
            return False
        return await self._admin_action("demote admins", lambda: self._api.remove_admin(self.conversation_id, user_id))

    async def update_group_name(self, name: str) -> bool:
        cleaned = (name or "").strip()
        if not cleaned:
            return False
        return await self._admin_action(
            "rename the group",
            lambda: self._api.update_group_name(self.conversation_id, cleaned),
            also_invalidate=(CONVERSATIONS,),
        )


__all__ = ["GroupManagementStore", "group_key"]
