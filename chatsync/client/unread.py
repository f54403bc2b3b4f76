"""Total unread message badge."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..config import ClientSettings, get_client_settings
from .api import ChatApiClient
from .cache import QueryCache
from .conversations import UNREAD_COUNT
from .debounce import Debouncer
from .realtime import RealtimeChannel, RealtimeClient

logger = logging.getLogger(__name__)


class MessageCountStore:
    """Unread total refreshed on message and receipt events, with optional polling."""

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
        self._poller: Optional[asyncio.Task[None]] = None

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    @property
    def count(self) -> int:
        return self._cache.get(UNREAD_COUNT, 0)

    async def load(self, *, force: bool = False) -> int:
        return await self._cache.fetch(UNREAD_COUNT, self._api.unread_count, force=force)

    async def refetch(self) -> None:
        await self._cache.invalidate(UNREAD_COUNT)

    def start(self, *, poll: bool = True) -> None:
        if self._channel is None:
            self._channel = (
                self._realtime.channel("unread-count")
                .on("messages", self._on_change, event="INSERT")
                .on("message_receipts", self._on_change)
            )
        if poll and self._poller is None and self._settings.unread_poll_seconds > 0:
            self._poller = asyncio.create_task(self._poll())
            logger.debug("Polling unread count every %ss", self._settings.unread_poll_seconds)

    async def stop(self) -> None:
        if self._channel is not None:
            self._realtime.remove_channel(self._channel)
            self._channel = None
        self._debouncer.cancel()
        if self._poller is not None:
            self._poller.cancel()
            try:
                await self._poller
            except asyncio.CancelledError:
                pass
            self._poller = None

    def _on_change(self, frame: dict) -> None:
        self._debouncer.trigger()

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._settings.unread_poll_seconds)
            try:
                await self.refetch()
            except Exception:
                logger.exception("Unread count poll failed")


__all__ = ["MessageCountStore"]
