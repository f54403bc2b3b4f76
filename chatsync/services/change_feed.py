"""In-process realtime change feed delivered over WebSocket connections."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Iterable
from uuid import UUID

from fastapi import WebSocket
from sqlalchemy import inspect

from ..schemas import ChangeEvent, ChangeType

logger = logging.getLogger(__name__)

# Columns never pushed to subscribers.
_PRIVATE_COLUMNS = frozenset({"hashed_password"})


class ChangeFeed:
    """Track per-user WebSocket connections and fan out change events to an audience."""

    def __init__(self) -> None:
        self._connections: dict[UUID, set[WebSocket]] = {}
        self._owners: dict[WebSocket, UUID] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: UUID, websocket: WebSocket) -> bool:
        """Register an accepted socket. Returns True for the user's first live connection."""

        async with self._lock:
            group = self._connections.setdefault(user_id, set())
            first = not group
            group.add(websocket)
            self._owners[websocket] = user_id
        return first

    async def disconnect(self, websocket: WebSocket) -> UUID | None:
        """Forget a socket. Returns the owner when it was their last connection."""

        async with self._lock:
            user_id = self._owners.pop(websocket, None)
            if user_id is None:
                return None
            group = self._connections.get(user_id)
            if group is None:
                return None
            group.discard(websocket)
            if group:
                return None
            self._connections.pop(user_id, None)
            return user_id

    def is_connected(self, user_id: UUID) -> bool:
        return bool(self._connections.get(user_id))

    def connection_count(self) -> int:
        return len(self._owners)

    async def publish(self, event: ChangeEvent, audience: Iterable[UUID]) -> int:
        """Send ``event`` to every live connection owned by a user in ``audience``."""

        payload = event.model_dump(mode="json")
        targets: list[WebSocket] = []
        async with self._lock:
            for user_id in set(audience):
                targets.extend(self._connections.get(user_id, ()))
        return await self._send(targets, payload)

    async def broadcast(self, payload: dict[str, Any]) -> int:
        async with self._lock:
            targets = list(self._owners)
        return await self._send(targets, payload)

    async def _send(self, targets: list[WebSocket], payload: dict[str, Any]) -> int:
        serialized = json.dumps(payload, default=str)
        delivered = 0
        for connection in targets:
            try:
                await connection.send_text(serialized)
                delivered += 1
            except Exception:
                logger.info("Dropping realtime connection after failed send")
                await self.disconnect(connection)
        return delivered


change_feed = ChangeFeed()

_pending: set[asyncio.Task[int]] = set()


def row_to_record(row: Any) -> dict[str, Any]:
    """Return the column values of an ORM row as a plain dictionary."""

    mapper = inspect(row).mapper
    return {
        attr.key: getattr(row, attr.key)
        for attr in mapper.column_attrs
        if attr.key not in _PRIVATE_COLUMNS
    }


def schedule_change(
    table: str,
    event: ChangeType,
    row: Any,
    *,
    audience: Iterable[UUID],
    conversation_id: UUID | None = None,
    old_record: dict[str, Any] | None = None,
) -> None:
    """Queue a change notification on the running loop; no-op outside of one."""

    change = ChangeEvent(
        table=table,
        event=event,
        record=row_to_record(row) if row is not None else {},
        old_record=old_record,
        conversation_id=conversation_id,
    )
    recipients = [user_id for user_id in audience if user_id is not None]
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    task = loop.create_task(change_feed.publish(change, recipients))
    _pending.add(task)
    task.add_done_callback(_pending.discard)


__all__ = ["ChangeFeed", "change_feed", "row_to_record", "schedule_change"]
