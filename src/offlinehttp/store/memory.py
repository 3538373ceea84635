"""In-process key-value store.

:class:`MemoryStore` keeps entries in a dict. It is durable only for the
lifetime of the process, which makes it the store of choice for embedding
and for tests. Named instances mirror :class:`~offlinehttp.store.DiskStore`
so code can swap one for the other.
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional

from offlinehttp._aio import maybe_await
from offlinehttp.store.base import KeyValueStore, StoreVisitor


class MemoryStore(KeyValueStore):
    """Dict-backed :class:`~offlinehttp.store.KeyValueStore`.

    Args:
        name: Instance name used in diagnostics.
        initial: Optional entries to pre-populate the store with.
    """

    _instances: ClassVar[dict[str, MemoryStore]] = {}
    _shared: ClassVar[Optional[MemoryStore]] = None

    def __init__(self, name: str = "memory", initial: Optional[dict[str, Any]] = None) -> None:
        self._name = name
        self._data: dict[str, Any] = dict(initial or {})

    @classmethod
    def create_instance(cls, name: str) -> MemoryStore:
        """Return the process-wide store named *name*, creating it on first use."""
        if name not in cls._instances:
            cls._instances[name] = cls(name)
        return cls._instances[name]

    @classmethod
    def shared(cls) -> MemoryStore:
        """Return the process-wide shared store."""
        if cls._shared is None:
            cls._shared = cls("shared")
        return cls._shared

    @classmethod
    def reset_instances(cls) -> None:
        """Forget all named and shared instances."""
        cls._instances = {}
        cls._shared = None

    @property
    def name(self) -> str:
        return self._name

    async def get(self, key: str) -> Any:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def iterate(self, visitor: StoreVisitor) -> int:
        count = 0
        # Snapshot so visitors may remove entries.
        for key, value in list(self._data.items()):
            await maybe_await(visitor(key, value))
            count += 1
        return count

    async def count(self) -> int:
        return len(self._data)

    async def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
