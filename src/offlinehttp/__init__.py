"""offlinehttp -- keep HTTP-backed applications working while offline.

Requests made through :class:`~offlinehttp.client.CachingRequest` look and
behave like ordinary network request handles. Eligible requests are answered
from a persistent local cache when possible; otherwise they go to the
network and a successful response is stored for next time.

Typical usage::

    async with OfflineClient(resolve_config()) as client:
        request = await client.fetch("GET", "https://example.com/data.json")

Modules:
    store: Asynchronous key-value stores (diskcache-backed and in-memory).
    cache: The namespaced :class:`~offlinehttp.cache.RequestCache`.
    client: Transport handle, caching facade, hooks and the high-level client.
    models: Pydantic models for configuration and cached values.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    app: Typer CLI for inspecting and maintaining caches.
"""

__version__ = "0.1.0"
