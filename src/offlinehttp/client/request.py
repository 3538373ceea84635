"""Caching request facade.

:class:`CachingRequest` has the same surface as
:class:`~offlinehttp.client.transport.TransportHandle` (``open``,
``send``, request/response headers, ``abort``, browser-style events) and
decides per request whether to answer from a
:class:`~offlinehttp.cache.RequestCache`.

A session starts at :meth:`CachingRequest.open` and ends at exactly one
terminal event: ``load``, ``error``, ``timeout`` or ``abort``, each followed
by ``loadend``. It reaches ``load`` on one of four paths:

1. **Cache hit** -- the cached payload is served with status 200 and the
   network is never touched.
2. **Miss, network success** -- the request goes to the transport; a 2xx
   response with a body is written to the cache *before* ``load`` fires.
3. **Network failure, error hook substitute** -- the ``on_error`` hook
   returns a :class:`~offlinehttp.models.SyntheticResponse`, served like a
   hit and never cached.
4. **Miss, miss hook substitute** -- the ``on_miss`` hook answers instead of
   the network; cached only when the substitute sets ``cache=True``.

The facade listens on the transport first, does its cache bookkeeping, and
only then dispatches to the caller's handlers. Transport events from an
earlier session, or arriving after the terminal event, are dropped.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Optional, Union

import httpx

from offlinehttp.cache import LookupResult, RequestCache
from offlinehttp.client.defaults import get_default_cache
from offlinehttp.client.events import (
    DONE,
    OPENED,
    UNSENT,
    Event,
    EventEmitter,
    Listener,
    handler_slot,
)
from offlinehttp.client.hooks import CacheHooks
from offlinehttp.client.transport import TransportHandle
from offlinehttp.exceptions import InvalidStateError
from offlinehttp.models import CachedResponse, Payload, RequestConfig, SyntheticResponse, decode_payload

logger = logging.getLogger(__name__)

CACHE_HIT_STATUS = 200
CACHE_HIT_STATUS_TEXT = "200 OK"


class Phase(str, enum.Enum):
    """Internal session phase of a :class:`CachingRequest`."""

    IDLE = "idle"
    OPENED = "opened"
    CACHE_CHECKING = "cache_checking"
    SENDING = "sending"
    COMPLETED = "completed"


class CachingRequest:
    """Drop-in request handle that serves eligible requests from a cache.

    Args:
        cache: The request cache. Defaults to
            :func:`~offlinehttp.client.defaults.get_default_cache`.
        hooks: Eligibility, key-mangling and substitution hooks. Without
            hooks nothing is cached and every request goes to the network.
        client: :class:`httpx.AsyncClient` for the underlying transport.
        config: Transport settings and diagnostic flags.
        transport: A ready-made transport handle; overrides *client*.

    Example::

        request = CachingRequest(cache, hooks=CacheHooks(should_cache=cache_methods(["GET"])))
        request.onload = lambda event: print(event.target.status, event.target.response)
        request.open("GET", "https://example.com/tiles/1/2/3.png")
        await request.send()
    """

    onreadystatechange = handler_slot("readystatechange")
    onloadstart = handler_slot("loadstart")
    onprogress = handler_slot("progress")
    onload = handler_slot("load")
    onerror = handler_slot("error")
    ontimeout = handler_slot("timeout")
    onabort = handler_slot("abort")
    onloadend = handler_slot("loadend")

    def __init__(
        self,
        cache: Optional[RequestCache] = None,
        *,
        hooks: Optional[CacheHooks] = None,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[RequestConfig] = None,
        transport: Optional[TransportHandle] = None,
    ) -> None:
        self._cache = cache if cache is not None else get_default_cache()
        self._hooks = hooks or CacheHooks()
        self._config = config or RequestConfig()
        self._transport = transport or TransportHandle(
            client,
            timeout=self._config.timeout,
            verify_ssl=self._config.verify_ssl,
            follow_redirects=self._config.follow_redirects,
        )
        self.events = EventEmitter()

        # Caller-visible outcome of the current session.
        self.status = 0
        self.status_text = ""
        self.response: Payload = ""
        self.content_type = ""
        self.response_url = ""
        self.ready_state = UNSENT
        self.error: Optional[BaseException] = None

        self._method: Optional[str] = None
        self._url: Optional[str] = None
        self._phase = Phase.IDLE
        self._session = 0
        self._transport_session = -1
        self._terminal = False
        self._abort_requested: Optional[int] = None
        self._cache_eligible: Optional[bool] = None
        self._pending_cache_write = False
        self._from_cache = False
        self._background: set[asyncio.Task] = set()

        # Registered before any caller listener can reach the transport.
        transport_events = self._transport.events
        transport_events.add_listener("readystatechange", self._on_transport_readystatechange)
        transport_events.add_listener("loadstart", self._forward_transport_event)
        transport_events.add_listener("progress", self._forward_transport_event)
        transport_events.add_listener("load", self._on_transport_load)
        transport_events.add_listener("error", self._on_transport_failure)
        transport_events.add_listener("timeout", self._on_transport_failure)
        transport_events.add_listener("abort", self._on_transport_abort)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def proxy_method(self) -> Optional[str]:
        """Method passed to the last :meth:`open`."""
        return self._method

    @property
    def proxy_url(self) -> Optional[str]:
        """URL passed to the last :meth:`open`."""
        return self._url

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def cache(self) -> RequestCache:
        return self._cache

    @property
    def hooks(self) -> CacheHooks:
        return self._hooks

    @property
    def transport(self) -> TransportHandle:
        return self._transport

    @property
    def cache_eligible(self) -> Optional[bool]:
        """Eligibility decided at :meth:`send`; ``None`` before that."""
        return self._cache_eligible

    @property
    def pending_cache_write(self) -> bool:
        """True while a network response of this session is due to be cached."""
        return self._pending_cache_write

    @property
    def from_cache(self) -> bool:
        """True when the current session was answered from the cache."""
        return self._from_cache

    def decode(self) -> Any:
        """Decode :attr:`response` according to :attr:`content_type`.

        Raises:
            DecodeError: If the payload does not parse.
        """
        return decode_payload(self.response, self.content_type)

    # ------------------------------------------------------------------ #
    # Pass-through surface
    # ------------------------------------------------------------------ #

    @property
    def timeout(self) -> float:
        return self._transport.timeout

    @timeout.setter
    def timeout(self, value: float) -> None:
        self._transport.timeout = value

    @property
    def response_type(self) -> str:
        return self._transport.response_type

    @response_type.setter
    def response_type(self, value: str) -> None:
        self._transport.response_type = value

    @property
    def with_credentials(self) -> bool:
        return self._transport.with_credentials

    @with_credentials.setter
    def with_credentials(self, value: bool) -> None:
        self._transport.with_credentials = value

    @property
    def response_headers(self) -> httpx.Headers:
        return self._transport.response_headers

    def set_request_header(self, name: str, value: str) -> None:
        self._transport.set_request_header(name, value)

    def get_response_header(self, name: str) -> Optional[str]:
        return self._transport.get_response_header(name)

    def get_all_response_headers(self) -> str:
        return self._transport.get_all_response_headers()

    def override_mime_type(self, mime: str) -> None:
        self._transport.override_mime_type(mime)

    def add_event_listener(self, event_type: str, listener: Listener) -> None:
        self.events.add_listener(event_type, listener)

    def remove_event_listener(self, event_type: str, listener: Listener) -> None:
        self.events.remove_listener(event_type, listener)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def open(self, method: str, url: str) -> None:
        """Start a fresh session on the same underlying transport handle."""
        if self._config.debug_methods:
            logger.debug("proxy-xhr-open %s %s", method, url)
        self._session += 1
        self._method = method.upper()
        self._url = url
        self._cache_eligible = None
        self._pending_cache_write = False
        self._from_cache = False
        self._terminal = False
        self._abort_requested = None
        self._set_outcome(0, "", self._empty_payload(), "", "")
        self.error = None
        self._transport.open(self._method, url)
        self.ready_state = OPENED
        self._phase = Phase.OPENED

    async def send(self, body: Optional[Union[str, bytes]] = None) -> None:
        """Send the opened request, answering it from the cache when possible.

        Returns once the session reached its terminal event (or was
        superseded by another :meth:`open`).

        Raises:
            InvalidStateError: If the request was not opened, or was
                already sent in this session.
        """
        if self._phase is not Phase.OPENED:
            raise InvalidStateError("Request state must be OPENED")
        session = self._session
        method, url = self._method, self._url
        if self._config.debug_methods:
            logger.debug("proxy-xhr-send %s %s", method, url)

        self._phase = Phase.CACHE_CHECKING
        self._cache_eligible = await self._hooks.is_cacheable(method, url)
        if await self._abandoned(session):
            return
        if not self._cache_eligible:
            await self._send_to_network(session, body)
            return

        if self._config.debug_cache:
            logger.debug("proxy-try-cache %s %s", method, url)
        key_url = await self._hooks.mangle(url)
        result = await self._cache.lookup(method, key_url)
        if await self._abandoned(session):
            return
        if result.hit:
            await self._complete_from_cache(session, key_url, result)
            return

        substitute = await self._hooks.substitute_miss(result.key, self)
        if await self._abandoned(session):
            return
        if substitute is not None:
            if substitute.cache:
                await self._cache.store(method, key_url, _to_cached(substitute))
                if await self._abandoned(session):
                    return
            await self._complete_synthetic(session, substitute)
            return

        self._pending_cache_write = True
        await self._send_to_network(session, body)

    def abort(self) -> None:
        """Abort the current session.

        While the request is on the network this cancels the transport,
        which then reports ``abort``. While the cache is being consulted the
        session ends with ``abort`` as soon as the lookup returns. A cache
        write already in progress is not retracted.
        """
        if self._phase is Phase.SENDING:
            self._transport.abort()
        elif self._phase is Phase.CACHE_CHECKING:
            self._abort_requested = self._session
        else:
            self._transport.abort()
            if self._phase is Phase.OPENED:
                self.ready_state = UNSENT
                self._phase = Phase.IDLE

    async def aclose(self) -> None:
        """Close the transport and wait for background cache refreshes."""
        await self._transport.aclose()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def __aenter__(self) -> CachingRequest:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Completion paths
    # ------------------------------------------------------------------ #

    async def _send_to_network(self, session: int, body: Optional[Union[str, bytes]]) -> None:
        self._phase = Phase.SENDING
        self._transport_session = session
        await self._transport.send(body)

    async def _complete_from_cache(self, session: int, key_url: str, result: LookupResult) -> None:
        value = result.value
        if isinstance(value, CachedResponse):
            raw, content_type = value.raw, value.content_type
        else:
            raw, content_type = value, ""
        if self._cache.config.refresh_on_hit:
            self._refresh_entry(key_url, value)
        self._from_cache = True
        await self._finish(
            session, "load", CACHE_HIT_STATUS, CACHE_HIT_STATUS_TEXT, raw, content_type, self._url or ""
        )

    async def _complete_synthetic(self, session: int, substitute: SyntheticResponse) -> None:
        await self._finish(
            session,
            "load",
            substitute.status,
            substitute.status_text,
            substitute.raw,
            substitute.content_type,
            self._url or "",
        )

    async def _finish(
        self,
        session: int,
        event_type: str,
        status: int,
        status_text: str,
        raw: Any,
        content_type: str,
        response_url: str,
        error: Optional[BaseException] = None,
    ) -> None:
        """Publish the effective outcome and dispatch the terminal events, once."""
        if not self._is_current(session):
            return
        self._terminal = True
        self._phase = Phase.COMPLETED
        self._pending_cache_write = False
        self._set_outcome(status, status_text, raw, content_type, response_url)
        self.error = error
        self.ready_state = DONE

        if event_type == "load":
            await self._hooks.after_load(self)
        for name in ("readystatechange", event_type, "loadend"):
            if self._session != session:
                return
            await self.events.emit(Event(name, self, error=error if name == event_type else None))
        if event_type == "abort" and self._session == session:
            self.ready_state = UNSENT

    # ------------------------------------------------------------------ #
    # Transport listeners
    # ------------------------------------------------------------------ #

    def _owns_transport_event(self) -> bool:
        return (
            self._transport_session == self._session
            and not self._terminal
            and self._phase is Phase.SENDING
        )

    async def _on_transport_readystatechange(self, event: Event) -> None:
        # DONE is published by _finish together with the final payload.
        if not self._owns_transport_event() or self._transport.ready_state == DONE:
            return
        self.status = self._transport.status
        self.status_text = self._transport.status_text
        self.ready_state = self._transport.ready_state
        await self.events.emit(Event("readystatechange", self))

    async def _forward_transport_event(self, event: Event) -> None:
        if not self._owns_transport_event():
            return
        await self.events.emit(Event(event.type, self, loaded=event.loaded, total=event.total))

    async def _on_transport_load(self, event: Event) -> None:
        if not self._owns_transport_event():
            return
        session = self._session
        transport = self._transport
        status, raw, content_type = transport.status, transport.response, transport.content_type
        if self._config.debug_events:
            logger.debug("proxy-xhr-onload %s %s", self._method, self._url)

        if self._pending_cache_write and 200 <= status < 300 and raw:
            self._pending_cache_write = False
            key_url = await self._hooks.mangle(self._url)
            await self._cache.store(
                self._method,
                key_url,
                CachedResponse(raw=raw, content_type=content_type, status=status),
            )
            if not self._is_current(session):
                return

        await self._finish(
            session, "load", status, transport.status_text, raw, content_type, transport.response_url
        )

    async def _on_transport_failure(self, event: Event) -> None:
        if not self._owns_transport_event():
            return
        session = self._session
        if self._config.debug_events:
            logger.debug("proxy-xhr-on%s %s %s", event.type, self._method, self._url)
        error = event.error
        substitute = await self._hooks.substitute_error(error, self)
        if not self._is_current(session):
            return
        if substitute is not None:
            await self._complete_synthetic(session, substitute)
            return
        await self._finish(session, event.type, 0, "", self._empty_payload(), "", "", error=error)

    async def _on_transport_abort(self, event: Event) -> None:
        if not self._owns_transport_event():
            return
        await self._finish(self._session, "abort", 0, "", self._empty_payload(), "", "")

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _is_current(self, session: int) -> bool:
        return session == self._session and not self._terminal

    async def _abandoned(self, session: int) -> bool:
        """Return True if the session must not continue past a suspension point."""
        if not self._is_current(session):
            return True
        if self._abort_requested == session:
            self._transport.abort()
            await self._finish(session, "abort", 0, "", self._empty_payload(), "", "")
            return True
        return False

    def _set_outcome(
        self, status: int, status_text: str, raw: Any, content_type: str, response_url: str
    ) -> None:
        self.status = status
        self.status_text = status_text
        self.response = raw
        self.content_type = content_type
        self.response_url = response_url

    def _empty_payload(self) -> Payload:
        return b"" if self._transport.response_type == "bytes" else ""

    def _refresh_entry(self, key_url: str, value: Any) -> None:
        """Rewrite the entry with a fresh capture time, without waiting for it."""
        refreshed = value.touched() if isinstance(value, CachedResponse) else value
        task = asyncio.ensure_future(self._cache.store(self._method, key_url, refreshed))
        self._background.add(task)
        task.add_done_callback(self._background.discard)


def _to_cached(substitute: SyntheticResponse) -> CachedResponse:
    return CachedResponse(
        raw=substitute.raw,
        content_type=substitute.content_type,
        status=substitute.status,
    )
