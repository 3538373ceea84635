"""Disk-backed key-value store built on :mod:`diskcache`.

Each :class:`DiskStore` wraps one :class:`diskcache.Cache` directory.
diskcache is synchronous and SQLite-based, so every call is pushed to a
worker thread with :func:`asyncio.to_thread` to keep the event loop free.

Directory layout under :func:`~offlinehttp.config.get_store_dir`::

    shared/               the global store shared by every namespace
    instances/<name>/     one exclusive store per named instance
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any, Optional

import diskcache

from offlinehttp._aio import maybe_await
from offlinehttp.store.base import KeyValueStore, StoreVisitor

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")

_MISSING = object()


def _safe_dirname(name: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("_", name) or "_"


class DiskStore(KeyValueStore):
    """Persistent :class:`~offlinehttp.store.KeyValueStore` in a diskcache directory.

    Values are pickled by diskcache, so ``str``, ``bytes`` and the pydantic
    models in :mod:`offlinehttp.models` round-trip unchanged.

    Args:
        directory: The diskcache directory. Created if missing.
        name: Instance name used in diagnostics. Defaults to the directory
            name.
        description: Free-form description kept for diagnostics.

    Example::

        store = DiskStore.create_instance("tiles")
        await store.set("GET__https://example.com/a.png", b"...")
        value = await store.get("GET__https://example.com/a.png")
        await store.aclose()
    """

    def __init__(
        self,
        directory: str | Path,
        name: Optional[str] = None,
        description: str = "",
    ) -> None:
        self._directory = Path(directory)
        self._name = name or self._directory.name
        self.description = description
        self._cache: Optional[diskcache.Cache] = diskcache.Cache(str(self._directory))

    @classmethod
    def create_instance(
        cls,
        name: str,
        description: str = "",
        root: Optional[Path] = None,
    ) -> DiskStore:
        """Open the exclusive store instance called *name*.

        Args:
            name: Instance name; unsafe path characters are replaced.
            description: Free-form description kept for diagnostics.
            root: Store root directory. Defaults to
                :func:`~offlinehttp.config.get_store_dir`.
        """
        base = root if root is not None else _default_root()
        return cls(base / "instances" / _safe_dirname(name), name=name, description=description)

    @classmethod
    def shared(cls, root: Optional[Path] = None) -> DiskStore:
        """Open the global store shared by all non-exclusive namespaces."""
        base = root if root is not None else _default_root()
        return cls(base / "shared", name="shared", description="shared request store")

    @property
    def name(self) -> str:
        return self._name

    @property
    def directory(self) -> Path:
        return self._directory

    def _require_open(self) -> diskcache.Cache:
        if self._cache is None:
            raise RuntimeError(f"Store '{self._name}' is closed")
        return self._cache

    async def get(self, key: str) -> Any:
        cache = self._require_open()
        return await asyncio.to_thread(cache.get, key)

    async def set(self, key: str, value: Any) -> None:
        cache = self._require_open()
        await asyncio.to_thread(cache.set, key, value)

    async def remove(self, key: str) -> None:
        cache = self._require_open()
        await asyncio.to_thread(cache.delete, key)

    async def iterate(self, visitor: StoreVisitor) -> int:
        cache = self._require_open()
        keys = await asyncio.to_thread(lambda: list(cache.iterkeys()))
        count = 0
        for key in keys:
            value = await asyncio.to_thread(cache.get, key, _MISSING)
            if value is _MISSING:
                # Removed by someone else since the key listing.
                continue
            await maybe_await(visitor(key, value))
            count += 1
        return count

    async def count(self) -> int:
        cache = self._require_open()
        return await asyncio.to_thread(len, cache)

    async def clear(self) -> None:
        cache = self._require_open()
        await asyncio.to_thread(cache.clear)

    async def aclose(self) -> None:
        if self._cache is not None:
            self._cache.close()
            self._cache = None

    def __len__(self) -> int:
        return len(self._require_open())


def _default_root() -> Path:
    from offlinehttp.config import get_store_dir

    return get_store_dir()
