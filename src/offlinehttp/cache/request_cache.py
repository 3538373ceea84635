"""Namespaced request cache over a persistent key-value store.

:class:`RequestCache` owns a logical namespace inside a
:class:`~offlinehttp.store.KeyValueStore`. Keys are composed from the
request method and a (possibly mangled) URL::

    <key_prefix><METHOD>__<url>

The namespace is either an *exclusive* store instance (``instance_name``
set in :class:`~offlinehttp.models.CacheConfig`) or the keys of a shared
store that this cache wrote itself or that start with ``key_prefix``.

The cache keeps an in-memory *ownership index* of the keys it believes it
owns, with their payload sizes. The index is advisory: it scopes
:meth:`RequestCache.flush` and :meth:`RequestCache.iterate` and feeds the
memory estimate, but existence is always decided by the store itself. It
goes stale whenever another actor mutates the store.

Store faults never escape this class. A failed read is a cache miss; a
failed write, flush or iteration is reported in the returned
:class:`Outcome`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from offlinehttp._aio import maybe_await
from offlinehttp.exceptions import StoreError, StoreReadError, StoreWriteError
from offlinehttp.models import CacheConfig, CacheStats, payload_size
from offlinehttp.store import DiskStore, KeyValueStore

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "__"
"""Separator between the method and the URL in a composed cache key."""

CacheObserver = Callable[["RequestCache"], Union[None, Awaitable[None]]]
EntryVisitor = Callable[[str, Any], Union[None, Awaitable[None]]]

_DEBUG_FLAGS = ("debug_cache_puts", "debug_cache_hits", "debug_cache_miss", "debug_cache_boot")


@dataclass(frozen=True)
class LookupResult:
    """Result of :meth:`RequestCache.lookup`.

    Attributes:
        key: The composed cache key.
        hit: ``True`` when the store returned a value.
        value: The stored value, verbatim, on a hit; ``None`` on a miss.
    """

    key: str
    hit: bool
    value: Any = None


@dataclass(frozen=True)
class Outcome:
    """Result of a cache write, flush or iteration.

    Attributes:
        key: The composed key for single-entry writes, otherwise ``None``.
        error: The store fault, or ``None`` on success.
        count: Entries removed (flush) or visited (iterate).
    """

    key: Optional[str] = None
    error: Optional[StoreError] = None
    count: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class RequestCache:
    """Keyed persistent cache of HTTP responses with usage statistics.

    Args:
        config: Namespace settings. Defaults to a shared, unprefixed
            namespace.
        store: The key-value store to use. When omitted, a
            :class:`~offlinehttp.store.DiskStore` is opened: the named
            instance if ``config.instance_name`` is set, the shared store
            otherwise. An injected store is treated as exclusive exactly
            when ``config.instance_name`` is set.
        on_status: Observer called with the cache after every lookup, once
            the hit/miss counters are updated.
        on_ready: Called once the initial namespace scan completes.

    Example::

        cache = await RequestCache.open(CacheConfig(instance_name="tiles"))
        await cache.store("GET", "https://example.com/a", "payload")
        result = await cache.lookup("GET", "https://example.com/a")
        assert result.hit and result.value == "payload"
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        store: Optional[KeyValueStore] = None,
        *,
        on_status: Optional[CacheObserver] = None,
        on_ready: Optional[CacheObserver] = None,
    ) -> None:
        # Private copy so set_debug_options() never leaks into shared config.
        self._config = (config or CacheConfig()).model_copy()
        self.own_store = self._config.instance_name is not None
        if store is None:
            if self.own_store:
                store = DiskStore.create_instance(
                    self._config.instance_name,
                    description=self._config.instance_description,
                )
            else:
                store = DiskStore.shared()
        self._store = store
        self.key_prefix = self._config.key_prefix
        self._on_status = on_status
        self._on_ready = on_ready

        self._known: dict[str, int] = {}
        # Keys dropped after a read fault; their size stays in memory.
        self._detached: dict[str, int] = {}
        self._stats = CacheStats()
        self.ready = False
        self._ready_event = asyncio.Event()
        self._scanning = False

    @classmethod
    async def open(
        cls,
        config: Optional[CacheConfig] = None,
        store: Optional[KeyValueStore] = None,
        **kwargs: Any,
    ) -> RequestCache:
        """Construct a cache and wait for its initial namespace scan."""
        cache = cls(config, store, **kwargs)
        await cache.initialize()
        return cache

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def store_backend(self) -> KeyValueStore:
        """The underlying key-value store."""
        return self._store

    # ------------------------------------------------------------------ #
    # Startup
    # ------------------------------------------------------------------ #

    async def initialize(self) -> None:
        """Scan the store once and build the ownership index and memory estimate.

        Every key that belongs to the namespace (all keys of an exclusive
        store, or prefixed keys of a shared one) is indexed with its payload
        size. A scan fault is logged and leaves whatever was counted; the
        cache becomes ready either way. Calling this again after the scan
        has completed is a no-op.
        """
        if self.ready or self._scanning:
            await self._ready_event.wait()
            return
        self._scanning = True

        def _visit(key: str, value: Any) -> None:
            if self.own_store or self.key_is_prefixed(key):
                size = payload_size(value)
                self._record(key, size)
                if self._config.debug_cache_boot:
                    logger.debug(
                        "found key: %s, memory: %d/%d, %s",
                        key, size, self._stats.memory, type(value).__name__,
                    )

        try:
            await self._store.iterate(_visit)
        except Exception:
            logger.warning(
                "Namespace scan of store '%s' failed; statistics may be incomplete",
                self._store.name,
                exc_info=True,
            )
        finally:
            self._scanning = False

        logger.info("found keys: %d", len(self._known))
        logger.info("found memory: %d", self._stats.memory)
        self.ready = True
        self._ready_event.set()
        if self._on_ready is not None:
            await self._notify(self._on_ready, "on_ready")

    async def wait_ready(self) -> None:
        """Wait until the initial namespace scan has completed."""
        await self._ready_event.wait()

    # ------------------------------------------------------------------ #
    # Keys
    # ------------------------------------------------------------------ #

    def compose_key(self, method: str, url: str) -> str:
        """Return the cache key for *method* and *url*.

        Identical method/url pairs always share one slot; callers that need
        per-variant entries must fold the variant into *url* (see the key
        mangler hook of :class:`~offlinehttp.client.CacheHooks`).
        """
        return f"{self.key_prefix}{method}{KEY_SEPARATOR}{url}"

    def key_is_prefixed(self, key: str) -> bool:
        """Return True if a prefix is configured and *key* starts with it."""
        if self.key_prefix:
            return key.startswith(self.key_prefix)
        return False

    def _owns(self, key: str) -> bool:
        return self.own_store or key in self._known or self.key_is_prefixed(key)

    # ------------------------------------------------------------------ #
    # Ownership index
    # ------------------------------------------------------------------ #

    def _record(self, key: str, size: int) -> None:
        previous = self._known.get(key)
        if previous is None:
            previous = self._detached.pop(key, 0)
        self._stats.memory += size - previous
        self._known[key] = size

    def _forget(self, key: str) -> None:
        size = self._known.pop(key, None)
        if size is None:
            size = self._detached.pop(key, None)
        if size is not None:
            self._stats.memory -= size

    def _detach(self, key: str) -> None:
        size = self._known.pop(key, None)
        if size is not None:
            self._detached[key] = size

    def _reset_index(self) -> None:
        self._known = {}
        self._detached = {}
        self._stats.memory = 0

    def weak_len(self) -> int:
        """Number of keys in the ownership index.

        Wrong if another actor cleared or filled the store in the meantime.
        """
        return len(self._known)

    def weak_has(self, method: str, url: str) -> bool:
        """Check the ownership index only, without asking the store.

        A ``True`` here does not guarantee that :meth:`lookup` will hit.
        """
        return self.compose_key(method, url) in self._known

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def lookup(self, method: str, url: str) -> LookupResult:
        """Look up the entry for *method* and *url* in the store.

        A store read fault is logged and treated like an absent key: the
        miss counter is incremented and the key is dropped from the
        ownership index. The memory estimate keeps the key's size after a
        fault, since the entry most likely still exists; it is released
        once a later lookup confirms the key absent, or replaced by the
        next write.
        """
        key = self.compose_key(method, url)
        faulted = False
        try:
            value = await self._store.get(key)
        except Exception as exc:
            err = StoreReadError(f"proxy-cache-match error {exc}", key=key)
            logger.error("%s", err, exc_info=exc)
            value = None
            faulted = True

        if value is None:
            if faulted:
                self._detach(key)
            else:
                self._forget(key)
            self._stats.misses += 1
            if self._config.debug_cache_miss:
                logger.debug("proxy-miss %s", key)
            await self._notify_status()
            return LookupResult(key=key, hit=False)

        if key not in self._known:
            self._record(key, payload_size(value))
        self._stats.hits += 1
        if self._config.debug_cache_hits:
            logger.debug("proxy-hit %s", key)
        await self._notify_status()
        return LookupResult(key=key, hit=True, value=value)

    async def store(self, method: str, url: str, value: Any) -> Outcome:
        """Write *value* for *method* and *url* through to the store.

        On success the key joins the ownership index and its size replaces
        any size previously recorded for it. On failure the index and the
        memory estimate are unchanged and the fault is returned.
        """
        key = self.compose_key(method, url)
        if self._config.debug_cache_puts:
            logger.debug("proxy-cache-put %s", key)
        try:
            await self._store.set(key, value)
        except Exception as exc:
            err = StoreWriteError(f"proxy-cache-put error {exc}", key=key)
            err.__cause__ = exc
            logger.error("%s", err)
            return Outcome(key=key, error=err)
        self._record(key, payload_size(value))
        return Outcome(key=key, count=1)

    async def flush(self) -> Outcome:
        """Remove every entry of this namespace from the store.

        An exclusive store is cleared wholesale and the reported count is
        the number of entries the store held. A shared store is walked
        and only keys in the ownership index or carrying the prefix are
        removed, so other namespaces keep their data.
        """
        removed = 0
        try:
            if self.own_store:
                removed = await self._store.count()
                await self._store.clear()
            else:
                async def _visit(key: str, _value: Any) -> None:
                    nonlocal removed
                    if key in self._known or self.key_is_prefixed(key):
                        await self._store.remove(key)
                        removed += 1

                await self._store.iterate(_visit)
        except Exception as exc:
            err = StoreWriteError(f"proxy-flush error {exc}")
            err.__cause__ = exc
            logger.error("%s", err)
            return Outcome(error=err, count=removed)

        self._reset_index()
        logger.info("proxy-flush")
        return Outcome(count=removed)

    async def force_clear(self) -> Outcome:
        """Clear the whole underlying store, including entries of other namespaces."""
        try:
            await self._store.clear()
        except Exception as exc:
            err = StoreWriteError(f"proxy-force-clear error {exc}")
            err.__cause__ = exc
            logger.error("%s", err)
            return Outcome(error=err)
        self._reset_index()
        return Outcome()

    async def iterate(self, visitor: EntryVisitor) -> Outcome:
        """Call *visitor* with ``(key, value)`` for every entry of this namespace.

        Order is whatever the store yields. Exceptions raised by *visitor*
        propagate; store faults are returned in the outcome.
        """
        visited = 0
        visitor_errors: list[BaseException] = []

        async def _visit(key: str, value: Any) -> None:
            nonlocal visited
            if not self._owns(key):
                return
            try:
                await maybe_await(visitor(key, value))
            except Exception as exc:
                visitor_errors.append(exc)
                raise
            visited += 1

        try:
            await self._store.iterate(_visit)
        except Exception as exc:
            if visitor_errors and exc is visitor_errors[0]:
                raise
            err = StoreReadError(f"proxy-iterate error {exc}")
            err.__cause__ = exc
            logger.error("%s", err)
            return Outcome(error=err, count=visited)
        return Outcome(count=visited)

    # ------------------------------------------------------------------ #
    # Statistics and options
    # ------------------------------------------------------------------ #

    def stats_snapshot(self) -> CacheStats:
        """Return a copy of the current hit/miss/memory counters."""
        return self._stats.model_copy()

    def reset_counters(self) -> None:
        """Zero the hit and miss counters. Memory usage is kept."""
        self._stats.hits = 0
        self._stats.misses = 0

    def set_debug_options(self, **flags: bool) -> None:
        """Toggle diagnostic logging, e.g. ``set_debug_options(debug_cache_hits=True)``.

        Raises:
            ValueError: For an unknown flag name.
        """
        for name, enabled in flags.items():
            if name not in _DEBUG_FLAGS:
                raise ValueError(f"Unknown debug option: {name}")
            setattr(self._config, name, bool(enabled))

    async def aclose(self) -> None:
        """Close the underlying store."""
        await self._store.aclose()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _notify_status(self) -> None:
        if self._on_status is not None:
            await self._notify(self._on_status, "on_status")

    async def _notify(self, observer: CacheObserver, label: str) -> None:
        try:
            await maybe_await(observer(self))
        except Exception:
            logger.warning("Cache %s observer failed", label, exc_info=True)
