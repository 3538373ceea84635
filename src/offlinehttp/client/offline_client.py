"""High-level client bundling an HTTP client, a request cache and hooks."""

from __future__ import annotations

import logging
from typing import Optional, Union

import httpx

from offlinehttp.cache import RequestCache
from offlinehttp.client.hooks import CacheHooks, cache_methods
from offlinehttp.client.request import CachingRequest
from offlinehttp.models import GlobalConfig
from offlinehttp.store import KeyValueStore

logger = logging.getLogger(__name__)


class OfflineClient:
    """Async context manager producing cache-backed requests.

    The client owns an :class:`httpx.AsyncClient` and, unless one is passed
    in, a :class:`~offlinehttp.cache.RequestCache` built from
    ``config.cache``. Both are closed on exit; an injected cache is left
    open for its owner.

    Args:
        config: Effective configuration. Defaults to :class:`GlobalConfig`.
        cache: An existing request cache to share.
        hooks: Cache hooks. Defaults to caching the methods listed in
            ``config.request.cacheable_methods``.
        store: Key-value store for a self-created cache.
        base_url: Prefix for relative request URLs.

    Example::

        async with OfflineClient(resolve_config()) as client:
            request = await client.fetch("GET", "https://example.com/data.json")
            print(request.status, request.from_cache, request.decode())
    """

    def __init__(
        self,
        config: Optional[GlobalConfig] = None,
        *,
        cache: Optional[RequestCache] = None,
        hooks: Optional[CacheHooks] = None,
        store: Optional[KeyValueStore] = None,
        base_url: str = "",
    ) -> None:
        self.config = config or GlobalConfig()
        self._cache = cache
        self._owns_cache = cache is None
        self._store = store
        self.hooks = hooks or CacheHooks(
            should_cache=cache_methods(self.config.request.cacheable_methods)
        )
        self.base_url = base_url
        self._http: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> OfflineClient:
        request_config = self.config.request
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            verify=request_config.verify_ssl,
            follow_redirects=request_config.follow_redirects,
        )
        if self._cache is None:
            self._cache = await RequestCache.open(self.config.cache, self._store)
        else:
            await self._cache.initialize()
        logger.debug("OfflineClient ready (store=%s)", self._cache.store_backend.name)
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        if self._owns_cache and self._cache is not None:
            await self._cache.aclose()
            self._cache = None

    @property
    def cache(self) -> RequestCache:
        if self._cache is None:
            raise RuntimeError("Client not started. Use 'async with OfflineClient(...) as c:'")
        return self._cache

    def new_request(self) -> CachingRequest:
        """Return an unopened request sharing this client's cache and connection pool."""
        if self._http is None:
            raise RuntimeError("Client not started. Use 'async with OfflineClient(...) as c:'")
        return CachingRequest(
            self.cache,
            hooks=self.hooks,
            client=self._http,
            config=self.config.request,
        )

    async def fetch(
        self,
        method: str,
        url: str,
        body: Optional[Union[str, bytes]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> CachingRequest:
        """Open and send one request, returning it once it has completed.

        Inspect ``status``, ``error`` and ``from_cache`` on the result; a
        network failure does not raise.
        """
        request = self.new_request()
        request.open(method, url)
        for name, value in (headers or {}).items():
            request.set_request_header(name, value)
        await request.send(body)
        return request
