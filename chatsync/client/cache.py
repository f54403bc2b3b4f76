"""Keyed query cache with stale tracking, in-flight de-duplication and prefix invalidation."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

QueryKey = tuple
Fetcher = Callable[[], Awaitable[Any]]
Snapshot = list[tuple[QueryKey, Any]]


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


@dataclass
class _Entry:
    data: Any = None
    has_data: bool = False
    updated_at: Optional[float] = None
    stale: bool = True
    fetcher: Optional[Fetcher] = None
    in_flight: Optional[asyncio.Task] = None


class QueryCache:
    """Hold query results by tuple key, in the spirit of a client-side server-state cache."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[QueryKey, _Entry] = {}
        self._listeners: list[tuple[QueryKey, Callable[[QueryKey, Any], Any]]] = []
        self._clock = clock

    def keys(self, prefix: QueryKey = ()) -> list[QueryKey]:
        return [key for key in self._entries if key_matches(key, prefix)]

    def get(self, key: QueryKey, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None or not entry.has_data:
            return default
        return entry.data

    def is_stale(self, key: QueryKey, stale_time: float = 0.0) -> bool:
        entry = self._entries.get(key)
        if entry is None or not entry.has_data or entry.stale:
            return True
        return self._clock() - (entry.updated_at or 0.0) >= stale_time

    def subscribe(self, prefix: QueryKey, listener: Callable[[QueryKey, Any], Any]) -> Callable[[], None]:
        """Call ``listener(key, data)`` whenever a key under ``prefix`` changes."""

        item = (prefix, listener)
        self._listeners.append(item)

        def _unsubscribe() -> None:
            if item in self._listeners:
                self._listeners.remove(item)

        return _unsubscribe

    def _notify(self, key: QueryKey, data: Any) -> None:
        for prefix, listener in list(self._listeners):
            if key_matches(key, prefix):
                listener(key, data)

    def set_data(self, key: QueryKey, data: Any) -> Any:
        """Store ``data`` for ``key``; a callable receives the current value and returns the new one."""

        entry = self._entries.setdefault(key, _Entry())
        if callable(data):
            data = data(entry.data if entry.has_data else None)
        entry.data = data
        entry.has_data = True
        entry.updated_at = self._clock()
        entry.stale = False
        self._notify(key, data)
        return data

    def update_matching(self, prefix: QueryKey, updater: Callable[[Any], Any]) -> Snapshot:
        """Apply ``updater`` to every cached query under ``prefix``; returns the previous values."""

        snapshot: Snapshot = []
        for key in self.keys(prefix):
            entry = self._entries[key]
            if not entry.has_data:
                continue
            snapshot.append((key, entry.data))
            entry.data = updater(entry.data)
            self._notify(key, entry.data)
        return snapshot

    def restore(self, snapshot: Snapshot) -> None:
        for key, data in snapshot:
            entry = self._entries.setdefault(key, _Entry())
            entry.data = data
            entry.has_data = True
            self._notify(key, data)

    def remove(self, prefix: QueryKey) -> None:
        for key in self.keys(prefix):
            entry = self._entries.pop(key)
            if entry.in_flight is not None:
                entry.in_flight.cancel()

    async def fetch(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        *,
        stale_time: float = 0.0,
        force: bool = False,
    ) -> Any:
        """Return cached data while fresh, otherwise run ``fetcher`` once for all concurrent callers."""

        entry = self._entries.setdefault(key, _Entry())
        entry.fetcher = fetcher
        if not force:
            if entry.in_flight is not None:
                return await asyncio.shield(entry.in_flight)
            if not self.is_stale(key, stale_time):
                return entry.data
        elif entry.in_flight is not None:
            # A forced refetch must not reuse a request that started before the change.
            await asyncio.wait({entry.in_flight})

        if entry.in_flight is None:
            entry.in_flight = asyncio.ensure_future(self._run(key, entry, fetcher))
        return await asyncio.shield(entry.in_flight)

    async def _run(self, key: QueryKey, entry: _Entry, fetcher: Fetcher) -> Any:
        try:
            data = await fetcher()
        finally:
            entry.in_flight = None
        if self._entries.get(key) is entry:
            self.set_data(key, data)
        return data

    async def invalidate(self, prefix: QueryKey = ()) -> None:
        """Mark matching queries stale and refetch those that have a fetcher."""

        refetch = []
        for key in self.keys(prefix):
            entry = self._entries[key]
            entry.stale = True
            if entry.fetcher is not None:
                refetch.append((key, entry.fetcher))
        if not refetch:
            return
        results = await asyncio.gather(
            *(self.fetch(key, fetcher, force=True) for key, fetcher in refetch),
            return_exceptions=True,
        )
        for (key, _), result in zip(refetch, results):
            if isinstance(result, BaseException):
                logger.warning("Refetch of %s failed: %s", key, result)


__all__ = ["QueryCache", "QueryKey", "key_matches"]
