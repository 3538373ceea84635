"""Small asyncio helpers shared by the store, cache and client layers."""

from __future__ import annotations

import inspect
from typing import Any


async def maybe_await(value: Any) -> Any:
    """Return *value*, awaiting it first if it is awaitable.

    Lets visitors, listeners and hooks be plain functions or coroutines.
    """
    if inspect.isawaitable(value):
        return await value
    return value
