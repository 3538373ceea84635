"""Process-wide default request cache.

Requests built without an explicit cache use the default instance, which
must be created up front::

    await init_default_cache()            # at startup
    request = CachingRequest(hooks=hooks)  # uses the default cache
    ...
    await teardown_default_cache()        # at shutdown

There is no lazy construction: :func:`get_default_cache` raises
:class:`~offlinehttp.exceptions.ConfigError` until :func:`init_default_cache`
or :func:`set_default_cache` has run.
"""

from __future__ import annotations

import logging
from typing import Optional

from offlinehttp.cache import RequestCache
from offlinehttp.exceptions import ConfigError
from offlinehttp.models import CacheConfig
from offlinehttp.store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_INSTANCE_NAME = "offlinehttp"
"""Exclusive store instance used by :func:`init_default_cache` without a config."""

_default_cache: Optional[RequestCache] = None


async def init_default_cache(
    config: Optional[CacheConfig] = None,
    store: Optional[KeyValueStore] = None,
) -> RequestCache:
    """Create, scan and install the default cache.

    Args:
        config: Namespace settings. Defaults to the exclusive
            ``offlinehttp`` instance.
        store: Optional store to use instead of the disk store.

    Returns:
        The installed :class:`~offlinehttp.cache.RequestCache`. A previously
        installed default is replaced but not closed.
    """
    global _default_cache
    if config is None:
        config = CacheConfig(instance_name=DEFAULT_INSTANCE_NAME)
    if _default_cache is not None:
        logger.info("Replacing the default request cache")
    _default_cache = await RequestCache.open(config, store)
    return _default_cache


def get_default_cache() -> RequestCache:
    """Return the default cache.

    Raises:
        ConfigError: If no default cache has been installed.
    """
    if _default_cache is None:
        raise ConfigError(
            "No default request cache; call init_default_cache() or pass a cache explicitly"
        )
    return _default_cache


def set_default_cache(cache: Optional[RequestCache]) -> None:
    """Install *cache* as the default, or uninstall it with ``None``."""
    global _default_cache
    _default_cache = cache


async def teardown_default_cache() -> None:
    """Close and uninstall the default cache. Safe to call when none is installed."""
    global _default_cache
    cache, _default_cache = _default_cache, None
    if cache is not None:
        await cache.aclose()
