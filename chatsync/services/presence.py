"""Global online/offline presence tracking for connected realtime sockets."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from uuid import UUID

from ..schemas import PresenceState


class PresenceRegistry:
    """Online users keyed by user id; a user stays online while any socket is open."""

    def __init__(self) -> None:
        self._states: dict[UUID, PresenceState] = {}
        self._lock = asyncio.Lock()

    async def join(self, user_id: UUID) -> PresenceState | None:
        """Mark ``user_id`` online. Returns the new state, or None when already online."""

        async with self._lock:
            if user_id in self._states:
                return None
            state = PresenceState(user_id=user_id, online_at=datetime.now(timezone.utc))
            self._states[user_id] = state
            return state

    async def leave(self, user_id: UUID) -> PresenceState | None:
        async with self._lock:
            return self._states.pop(user_id, None)

    def snapshot(self) -> list[PresenceState]:
        return list(self._states.values())

    def is_online(self, user_id: UUID) -> bool:
        return user_id in self._states


presence_registry = PresenceRegistry()


def presence_frame(event: str, states: list[PresenceState]) -> dict:
    return {
        "type": "presence",
        "event": event,
        "presences": [state.model_dump(mode="json") for state in states],
    }


__all__ = ["PresenceRegistry", "presence_registry", "presence_frame"]
