"""Helpers for invoking listeners that may be plain functions or coroutines."""
from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Union

Listener = Callable[..., Union[None, Awaitable[None]]]


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


__all__ = ["Listener", "maybe_await"]
