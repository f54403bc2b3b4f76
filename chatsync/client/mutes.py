"""Users muted by the current user."""
from __future__ import annotations

import logging
from typing import Any, Optional

from .api import ChatApiClient, ChatApiError
from .cache import QueryCache
from .conversations import UNREAD_COUNT
from .realtime import RealtimeChannel, RealtimeClient

logger = logging.getLogger(__name__)

MUTED_USERS = ("muted-users",)


class MutedUsersStore:
    def __init__(self, api: ChatApiClient, cache: QueryCache, realtime: RealtimeClient) -> None:
        self._api = api
        self._cache = cache
        self._realtime = realtime
        self._channel: Optional[RealtimeChannel] = None

    @property
    def muted_users(self) -> list[dict]:
        return self._cache.get(MUTED_USERS, [])

    @property
    def muted_user_ids(self) -> set[str]:
        return {entry["muted_user_id"] for entry in self.muted_users}

    def is_user_muted(self, user_id: Any) -> bool:
        return str(user_id) in self.muted_user_ids

    async def load(self, *, force: bool = False) -> list[dict]:
        return await self._cache.fetch(MUTED_USERS, self._api.list_muted_users, force=force)

    def start(self) -> None:
        if self._channel is None:
            self._channel = self._realtime.channel("muted-users").on("muted_users", self._on_change)

    def stop(self) -> None:
        if self._channel is not None:
            self._realtime.remove_channel(self._channel)
            self._channel = None

    async def _on_change(self, frame: dict) -> None:
        await self._cache.invalidate(MUTED_USERS)

    async def _refresh(self) -> None:
        await self._cache.invalidate(MUTED_USERS)
        await self._cache.invalidate(UNREAD_COUNT)

    async def mute_user(self, user_id: Any) -> bool:
        try:
            await self._api.mute_user(user_id)
        except ChatApiError as exc:
            logger.warning("Failed to mute user: %s", exc.detail)
            return False
        await self._refresh()
        return True

    async def unmute_user(self, user_id: Any) -> bool:
        try:
            await self._api.unmute_user(user_id)
        except ChatApiError as exc:
            logger.warning("Failed to unmute user: %s", exc.detail)
            return False
        await self._refresh()
        return True

    async def toggle_mute(self, user_id: Any) -> bool:
        if self.is_user_muted(user_id):
            return await self.unmute_user(user_id)
        return await self.mute_user(user_id)


__all__ = ["MutedUsersStore", "MUTED_USERS"]
