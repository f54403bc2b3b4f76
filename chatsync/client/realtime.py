"""Websocket subscriber for the backend change feed and presence frames."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed

from ..config import get_client_settings
from .callbacks import Listener, maybe_await

logger = logging.getLogger(__name__)


def _parse_filter(expression: Optional[str]) -> Optional[tuple[str, str]]:
    """Parse ``column=eq.value`` into ``(column, value)``."""

    if not expression:
        return None
    column, _, rest = expression.partition("=")
    operator, _, value = rest.partition(".")
    if not column or operator != "eq" or not value:
        raise ValueError(f"Unsupported realtime filter: {expression!r}")
    return column.strip(), value.strip()


@dataclass
class _Binding:
    table: str
    event: str
    handler: Listener
    match: Optional[tuple[str, str]] = None

    def accepts(self, frame: dict[str, Any]) -> bool:
        if frame.get("table") != self.table:
            return False
        if self.event != "*" and frame.get("event") != self.event:
            return False
        if self.match is None:
            return True
        column, expected = self.match
        for source in (frame.get("record"), frame.get("old_record"), frame):
            if isinstance(source, dict) and source.get(column) is not None:
                return str(source[column]) == expected
        return False


class RealtimeChannel:
    """Named group of table bindings, removed together."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._bindings: list[_Binding] = []

    def on(
        self,
        table: str,
        handler: Listener,
        *,
        event: str = "*",
        filter: Optional[str] = None,
    ) -> "RealtimeChannel":
        self._bindings.append(_Binding(table=table, event=event.upper(), handler=handler, match=_parse_filter(filter)))
        return self

    async def deliver(self, frame: dict[str, Any]) -> int:
        delivered = 0
        for binding in list(self._bindings):
            if not binding.accepts(frame):
                continue
            try:
                await maybe_await(binding.handler(frame))
            except Exception:
                logger.exception("Realtime handler failed on channel %s", self.name)
            delivered += 1
        return delivered


class RealtimeClient:
    """Maintain one websocket and route its frames to channels and presence listeners."""

    def __init__(self, url: Optional[str] = None, *, token: Optional[str] = None) -> None:
        self.url = url or get_client_settings().ws_url
        self.token = token
        self.connected = False
        self._channels: dict[str, RealtimeChannel] = {}
        self._presence_listeners: list[Listener] = []
        self._status_listeners: list[Callable[[bool], Any]] = []
        self._websocket: Any = None
        self._reader: Optional[asyncio.Task[None]] = None

    def channel(self, name: str) -> RealtimeChannel:
        channel = self._channels.get(name)
        if channel is None:
            channel = RealtimeChannel(name)
            self._channels[name] = channel
        return channel

    def remove_channel(self, channel: RealtimeChannel | str) -> None:
        name = channel if isinstance(channel, str) else channel.name
        self._channels.pop(name, None)

    def on_presence(self, listener: Listener) -> Callable[[], None]:
        self._presence_listeners.append(listener)
        return lambda: self._presence_listeners.remove(listener) if listener in self._presence_listeners else None

    def on_status(self, listener: Callable[[bool], Any]) -> Callable[[], None]:
        self._status_listeners.append(listener)
        return lambda: self._status_listeners.remove(listener) if listener in self._status_listeners else None

    def _connect_url(self) -> str:
        if not self.token:
            return self.url
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode({'token': self.token})}"

    async def connect(self) -> None:
        if self._websocket is not None:
            return
        self._websocket = await websockets.connect(self._connect_url())
        self._set_connected(True)
        logger.info("Realtime connection opened to %s", self.url)
        self._reader = asyncio.create_task(self._receive_loop())

    async def close(self) -> None:
        websocket, self._websocket = self._websocket, None
        if websocket is not None:
            await websocket.close()
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        self._set_connected(False)

    async def ping(self) -> None:
        if self._websocket is not None:
            await self._websocket.send("ping")

    async def _receive_loop(self) -> None:
        try:
            async for raw in self._websocket:
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring malformed realtime frame")
                    continue
                await self.dispatch(frame)
        except ConnectionClosed:
            logger.info("Realtime connection closed")
        finally:
            self._websocket = None
            self._set_connected(False)

    def _set_connected(self, value: bool) -> None:
        if self.connected == value:
            return
        self.connected = value
        for listener in list(self._status_listeners):
            listener(value)

    async def dispatch(self, frame: dict[str, Any]) -> None:
        """Route a decoded frame to matching channels or presence listeners."""

        kind = frame.get("type")
        if kind == "change":
            for channel in list(self._channels.values()):
                await channel.deliver(frame)
        elif kind == "presence":
            for listener in list(self._presence_listeners):
                try:
                    await maybe_await(listener(frame))
                except Exception:
                    logger.exception("Presence listener failed")


__all__ = ["RealtimeChannel", "RealtimeClient"]
