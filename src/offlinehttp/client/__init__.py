"""Request handles for offlinehttp.

* :class:`TransportHandle` -- event-emitting network request handle over
  :class:`httpx.AsyncClient`.
* :class:`CachingRequest` -- the same surface, answering eligible requests
  from a :class:`~offlinehttp.cache.RequestCache`.
* :class:`OfflineClient` -- async context manager that wires an HTTP client,
  a cache and :class:`CacheHooks` together and hands out requests.
* :mod:`~offlinehttp.client.defaults` -- the explicit process-wide default
  cache used by requests built without one.
"""

from offlinehttp.client.defaults import (
    DEFAULT_INSTANCE_NAME,
    get_default_cache,
    init_default_cache,
    set_default_cache,
    teardown_default_cache,
)
from offlinehttp.client.events import (
    DONE,
    EVENT_TYPES,
    HEADERS_RECEIVED,
    LOADING,
    OPENED,
    UNSENT,
    Event,
    EventEmitter,
)
from offlinehttp.client.hooks import CacheHooks, cache_methods
from offlinehttp.client.offline_client import OfflineClient
from offlinehttp.client.request import CachingRequest, Phase
from offlinehttp.client.transport import TransportHandle

__all__ = [
    "CacheHooks",
    "CachingRequest",
    "DEFAULT_INSTANCE_NAME",
    "DONE",
    "EVENT_TYPES",
    "Event",
    "EventEmitter",
    "HEADERS_RECEIVED",
    "LOADING",
    "OPENED",
    "OfflineClient",
    "Phase",
    "TransportHandle",
    "UNSENT",
    "cache_methods",
    "get_default_cache",
    "init_default_cache",
    "set_default_cache",
    "teardown_default_cache",
]
