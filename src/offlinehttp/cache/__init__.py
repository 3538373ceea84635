"""Namespaced, persistent request cache for offlinehttp.

This package provides :class:`RequestCache`, which maps ``(method, url)``
pairs to stored responses inside a
:class:`~offlinehttp.store.KeyValueStore`, keeps hit/miss/memory
statistics, and scopes flushes to its own namespace.

The cache is consumed by :class:`~offlinehttp.client.CachingRequest` and
is configured by :class:`~offlinehttp.models.CacheConfig`.
"""

from offlinehttp.cache.request_cache import KEY_SEPARATOR, LookupResult, Outcome, RequestCache

__all__ = ["RequestCache", "LookupResult", "Outcome", "KEY_SEPARATOR"]
