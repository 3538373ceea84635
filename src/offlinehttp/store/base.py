"""Abstract key-value store contract consumed by the request cache.

A store is an asynchronous, durable, iterable mapping of string keys to
values. ``get`` returns ``None`` for an absent key. Implementations report
faults by raising; :class:`~offlinehttp.cache.RequestCache` is responsible
for turning those into cache misses or write outcomes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Union

StoreVisitor = Callable[[str, Any], Union[None, Awaitable[None]]]
"""Called with ``(key, value)`` for each entry; may be a coroutine function."""


class KeyValueStore(ABC):
    """Base class for persistent key-value stores.

    Subclasses must implement every abstract coroutine. Iteration order is
    store-native; callers must not rely on it.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Instance name used in diagnostics."""

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return the value for *key*, or ``None`` when absent."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store *value* under *key*, replacing any previous value."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete *key*. Removing an absent key is not an error."""

    @abstractmethod
    async def iterate(self, visitor: StoreVisitor) -> int:
        """Call *visitor* for every entry and return the number visited.

        Entries removed by the visitor while iterating must not break the
        iteration.
        """

    async def count(self) -> int:
        """Return the number of entries. Default walks the store once."""
        return await self.iterate(lambda _key, _value: None)

    @abstractmethod
    async def clear(self) -> None:
        """Delete every entry in this store instance."""

    async def aclose(self) -> None:
        """Release resources held by the store. Default is a no-op."""
