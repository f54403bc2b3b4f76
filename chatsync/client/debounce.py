"""Trailing-edge debounce for coalescing bursts of realtime events."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from .callbacks import maybe_await

logger = logging.getLogger(__name__)


class Debouncer:
    """Run ``callback`` once ``delay`` seconds after the last ``trigger()``."""

    def __init__(self, callback: Callable[[], Union[None, Awaitable[Any]]], delay: float = 0.15) -> None:
        self._callback = callback
        self.delay = delay
        self._timer: Optional[asyncio.Task[None]] = None
        self._running: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def trigger(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._wait_then_run())

    async def _wait_then_run(self) -> None:
        await asyncio.sleep(self.delay)
        self._timer = None
        task = asyncio.current_task()
        if task is not None:
            self._running.add(task)
        try:
            await self._invoke()
        finally:
            if task is not None:
                self._running.discard(task)

    async def _invoke(self) -> None:
        try:
            await maybe_await(self._callback())
        except Exception:
            logger.exception("Debounced callback failed")

    async def flush(self) -> None:
        """Run a pending callback now instead of waiting out the delay."""

        if self.pending:
            self.cancel()
            await self._invoke()

    async def wait(self) -> None:
        """Wait for a pending or running callback to finish."""

        while self.pending or self._running:
            tasks = set(self._running)
            if self._timer is not None:
                tasks.add(self._timer)
            await asyncio.wait(tasks)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


__all__ = ["Debouncer"]
