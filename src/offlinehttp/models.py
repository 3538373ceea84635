"""Canonical Pydantic models shared across all offlinehttp modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CacheConfig`, :class:`RequestConfig` and :class:`GlobalConfig`.

**Value models** -- produced and consumed at runtime:
    :class:`CachedResponse` (a cached payload with its content type),
    :class:`SyntheticResponse` (a hook-provided substitute response) and
    :class:`CacheStats` (hit/miss/memory counters).

All models use Pydantic v2.
"""

from __future__ import annotations

import json
import time
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from offlinehttp.exceptions import DecodeError

Payload = Union[str, bytes]
"""A response body as held by the cache: text or binary."""


# --- Configuration ---


class CacheConfig(BaseModel):
    """Request cache namespace settings.

    ``instance_name`` selects an exclusive store instance; when it is
    ``None`` the cache shares the global store and only owns the keys it
    writes itself or that start with ``key_prefix``. The ``debug_*`` flags
    only control log verbosity and never change behaviour.
    """

    instance_name: Optional[str] = Field(
        default=None, description="Exclusive store instance name; None shares the global store"
    )
    instance_description: str = Field(default="offlinehttp request cache")
    key_prefix: str = Field(
        default="", description="Scopes key ownership inside a shared store"
    )
    refresh_on_hit: bool = Field(
        default=False, description="Rewrite an entry's capture time on every hit"
    )
    debug_cache_puts: bool = False
    debug_cache_hits: bool = False
    debug_cache_miss: bool = False
    debug_cache_boot: bool = False


class RequestConfig(BaseModel):
    """Transport and facade settings applied to every request."""

    timeout: float = Field(default=0, description="Request timeout in seconds; 0 disables it")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    follow_redirects: bool = True
    cacheable_methods: list[str] = Field(
        default_factory=lambda: ["GET"],
        description="Methods the default cache-eligibility predicate accepts",
    )
    debug_methods: bool = False
    debug_cache: bool = False
    debug_events: bool = False


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/offlinehttp/config.json``.

    Loaded and saved by :func:`~offlinehttp.config.load_global_config` and
    :func:`~offlinehttp.config.save_global_config`. See
    :func:`~offlinehttp.config.resolve_config` for the precedence chain.
    """

    cache: CacheConfig = Field(default_factory=CacheConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)


# --- Runtime values ---


def payload_size(value: Any) -> int:
    """Return the accounting size of a cached value.

    Text counts characters, binary counts bytes, a :class:`CachedResponse`
    counts its ``raw`` payload. Anything else counts as zero.
    """
    if isinstance(value, CachedResponse):
        value = value.raw
    if isinstance(value, (str, bytes, bytearray, memoryview)):
        return len(value)
    return 0


class CachedResponse(BaseModel):
    """A response body captured for reuse, with the metadata to interpret it.

    ``raw`` is stored verbatim. Interpretation is explicit: call
    :meth:`decode` to parse it according to ``content_type``.
    """

    model_config = ConfigDict(frozen=True)

    raw: Payload
    content_type: str = ""
    status: int = 200
    captured_at: float = Field(default_factory=time.time)

    def touched(self) -> CachedResponse:
        """Return a copy with ``captured_at`` set to now."""
        return self.model_copy(update={"captured_at": time.time()})

    def decode(self) -> Any:
        """Decode :attr:`raw` according to :attr:`content_type`.

        Returns:
            The parsed JSON value for ``application/json`` (and ``+json``)
            content types, otherwise the payload as text.

        Raises:
            DecodeError: If the payload is not valid UTF-8 text or not
                valid JSON for a JSON content type.
        """
        return decode_payload(self.raw, self.content_type)


class SyntheticResponse(BaseModel):
    """A response substituted by a hook instead of a cache entry or network result.

    Attributes:
        raw: The payload handed to the caller.
        content_type: Content type reported to the caller.
        status: Status reported to the caller.
        status_text: Status text reported to the caller.
        cache: When ``True`` on a miss-hook response, the payload is also
            written to the request cache. Ignored for error-hook responses.
    """

    raw: Payload = ""
    content_type: str = ""
    status: int = 200
    status_text: str = "200 OK"
    cache: bool = False


class CacheStats(BaseModel):
    """Snapshot of request cache counters.

    ``hits`` and ``misses`` describe request history and can be reset;
    ``memory`` describes store contents and only changes with them.
    """

    hits: int = 0
    misses: int = 0
    memory: int = 0


def _is_json(content_type: str) -> bool:
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime == "application/json" or mime.endswith("+json")


def decode_payload(raw: Payload, content_type: str) -> Any:
    """Decode *raw* as JSON or text depending on *content_type*.

    Raises:
        DecodeError: On invalid UTF-8 or invalid JSON.
    """
    if isinstance(raw, bytes):
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Payload is not UTF-8 text: {exc}") from exc
    else:
        text = raw
    if not _is_json(content_type):
        return text
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Invalid JSON payload ({content_type}): {exc}") from exc
