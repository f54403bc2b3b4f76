"""Online presence derived from realtime presence frames."""
from __future__ import annotations

from typing import Any, Callable, Optional

from .realtime import RealtimeClient


class PresenceStore:
    def __init__(self, realtime: RealtimeClient) -> None:
        self._realtime = realtime
        self._online: dict[str, dict] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._realtime.on_presence(self.apply)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def apply(self, frame: dict) -> None:
        presences = {str(item["user_id"]): item for item in frame.get("presences") or []}
        event = frame.get("event")
        if event == "sync":
            self._online = presences
        elif event == "join":
            self._online.update(presences)
        elif event == "leave":
            for user_id in presences:
                self._online.pop(user_id, None)

    @property
    def online_users(self) -> dict[str, dict]:
        return dict(self._online)

    @property
    def online_count(self) -> int:
        return len(self._online)

    @property
    def is_connected(self) -> bool:
        return self._realtime.connected

    def is_user_online(self, user_id: Any) -> bool:
        return str(user_id) in self._online


__all__ = ["PresenceStore"]
