"""Event-emitting network request handle over :class:`httpx.AsyncClient`.

:class:`TransportHandle` is the "real transport" that
:class:`~offlinehttp.client.request.CachingRequest` wraps. It follows the
lifecycle of a browser request handle: ``open()``, optional request headers,
``send()``, and a sequence of events while the request runs::

    loadstart
    readystatechange (HEADERS_RECEIVED)
    readystatechange (LOADING)
    progress
    readystatechange (DONE)
    load | error | timeout | abort
    loadend

Any HTTP status, including 4xx and 5xx, completes with ``load``. Only
network-level failures produce ``error`` (or ``timeout``), with status 0.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

import httpx

from offlinehttp.client.events import (
    DONE,
    HEADERS_RECEIVED,
    LOADING,
    OPENED,
    UNSENT,
    Event,
    EventEmitter,
    Listener,
    handler_slot,
)
from offlinehttp.exceptions import InvalidStateError, TransportError

logger = logging.getLogger(__name__)

RESPONSE_TYPES = ("text", "bytes")


class TransportHandle:
    """A reusable network request handle.

    Args:
        client: The :class:`httpx.AsyncClient` used to send requests. When
            ``None`` the handle creates its own on first send and closes it
            in :meth:`aclose`.
        timeout: Request timeout in seconds; ``0`` disables it.
        verify_ssl: Passed to a self-created client.
        follow_redirects: Passed to a self-created client.
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
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout: float = 0,
        verify_ssl: bool = True,
        follow_redirects: bool = True,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._verify_ssl = verify_ssl
        self._follow_redirects = follow_redirects
        self.events = EventEmitter()
        self.timeout = timeout
        self.with_credentials = False
        self._response_type = "text"

        self.method: Optional[str] = None
        self.url: Optional[str] = None
        self.ready_state = UNSENT
        self._request_headers = httpx.Headers()
        self._override_mime: Optional[str] = None
        self._generation = 0
        self._sending = False
        self._task: Optional[asyncio.Future] = None
        self._cancel_reason: Optional[str] = None
        self._reset_response()

    def _reset_response(self) -> None:
        self.status = 0
        self.status_text = ""
        self.response: Union[str, bytes] = b"" if self._response_type == "bytes" else ""
        self.response_headers = httpx.Headers()
        self.response_url = ""

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def response_type(self) -> str:
        """``"text"`` (decoded ``str``) or ``"bytes"`` (raw ``bytes``)."""
        return self._response_type

    @response_type.setter
    def response_type(self, value: str) -> None:
        if value == "":
            value = "text"
        if value not in RESPONSE_TYPES:
            raise ValueError(f"Unsupported response type: {value}")
        if self.ready_state in (LOADING, DONE) and self._sending:
            raise InvalidStateError("Cannot change response_type while loading")
        self._response_type = value

    @property
    def content_type(self) -> str:
        """The overridden MIME type, or the response's ``content-type`` header."""
        if self._override_mime is not None:
            return self._override_mime
        return self.response_headers.get("content-type", "")

    @property
    def sending(self) -> bool:
        return self._sending

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def open(self, method: str, url: str) -> None:
        """Start a new request, silently cancelling one still in flight."""
        self._cancel_inflight("superseded")
        self._generation += 1
        self.method = method.upper()
        self.url = url
        self._request_headers = httpx.Headers()
        self._override_mime = None
        self._sending = False
        self._reset_response()
        self.ready_state = OPENED

    def set_request_header(self, name: str, value: str) -> None:
        """Set a request header; repeated names are combined with ``", "``."""
        if self.ready_state != OPENED or self._sending:
            raise InvalidStateError("Request headers can only be set after open() and before send()")
        existing = self._request_headers.get(name)
        self._request_headers[name] = f"{existing}, {value}" if existing else value

    def get_response_header(self, name: str) -> Optional[str]:
        return self.response_headers.get(name)

    def get_all_response_headers(self) -> str:
        """Return all response headers as ``name: value`` lines joined by CRLF."""
        return "".join(f"{k.lower()}: {v}\r\n" for k, v in self.response_headers.multi_items())

    def override_mime_type(self, mime: str) -> None:
        if self.ready_state in (LOADING, DONE):
            raise InvalidStateError("Cannot override MIME type after loading started")
        self._override_mime = mime

    def add_event_listener(self, event_type: str, listener: Listener) -> None:
        self.events.add_listener(event_type, listener)

    def remove_event_listener(self, event_type: str, listener: Listener) -> None:
        self.events.remove_listener(event_type, listener)

    async def send(self, body: Optional[Union[str, bytes]] = None) -> None:
        """Send the opened request and dispatch its events.

        Returns once the request reached a terminal event, or immediately
        after it was superseded by :meth:`open`.

        Raises:
            InvalidStateError: If the handle is not opened or already sending.
        """
        if self.ready_state != OPENED or self._sending:
            raise InvalidStateError("Request state must be OPENED")
        generation = self._generation
        self._sending = True
        self._cancel_reason = None

        await self._emit(generation, Event("loadstart", self))
        if not self._current(generation):
            return
        if self._cancel_reason == "aborted":
            await self._finish_abort(generation)
            return

        client = self._ensure_client()
        task: Optional[asyncio.Future] = None
        try:
            request = client.build_request(
                self.method,
                self.url,
                headers=self._request_headers,
                content=body,
                timeout=self.timeout or None,
            )
            task = self._task = asyncio.ensure_future(client.send(request))
            response = await task
        except asyncio.CancelledError:
            if not self._current(generation):
                return
            if self._cancel_reason != "aborted":
                raise
            await self._finish_abort(generation)
            return
        except httpx.TimeoutException as exc:
            await self._fail(generation, "timeout", exc)
            return
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            await self._fail(generation, "error", exc)
            return
        finally:
            if self._task is task:
                self._task = None

        if not self._current(generation):
            return
        await self._deliver(generation, response)

    def abort(self) -> None:
        """Cancel the in-flight request.

        The pending :meth:`send` dispatches ``abort`` and ``loadend``. Without
        a request in flight the handle just returns to ``UNSENT``.
        """
        if self._task is not None and not self._task.done():
            self._cancel_inflight("aborted")
            return
        if self._sending:
            self._cancel_reason = "aborted"
        else:
            self._generation += 1
            self.ready_state = UNSENT

    async def aclose(self) -> None:
        """Close the self-created :class:`httpx.AsyncClient`, if any."""
        self._cancel_inflight("superseded")
        self._generation += 1
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=self._verify_ssl,
                follow_redirects=self._follow_redirects,
            )
            self._owns_client = True
        return self._client

    def _current(self, generation: int) -> bool:
        return generation == self._generation

    def _cancel_inflight(self, reason: str) -> None:
        if self._task is not None and not self._task.done():
            self._cancel_reason = reason
            self._task.cancel()

    async def _emit(self, generation: int, event: Event) -> None:
        if self._current(generation):
            await self.events.emit(event)

    async def _set_state(self, generation: int, state: int) -> None:
        self.ready_state = state
        await self._emit(generation, Event("readystatechange", self))

    async def _deliver(self, generation: int, response: httpx.Response) -> None:
        self.status = response.status_code
        self.status_text = response.reason_phrase
        self.response_headers = response.headers
        self.response_url = str(response.url)
        await self._set_state(generation, HEADERS_RECEIVED)
        if await self._halted(generation):
            return
        await self._set_state(generation, LOADING)
        if await self._halted(generation):
            return

        content = response.content
        self.response = content if self._response_type == "bytes" else response.text
        await self._emit(generation, Event("progress", self, loaded=len(content), total=len(content)))
        if await self._halted(generation):
            return
        self._sending = False
        await self._set_state(generation, DONE)
        await self._emit(generation, Event("load", self))
        await self._emit(generation, Event("loadend", self))

    async def _halted(self, generation: int) -> bool:
        """Return True if delivery must stop: superseded, or aborted by a listener."""
        if not self._current(generation):
            return True
        if self._cancel_reason == "aborted":
            await self._finish_abort(generation)
            return True
        return False

    async def _fail(self, generation: int, event_type: str, exc: Exception) -> None:
        if not self._current(generation):
            return
        logger.debug("Transport %s for %s %s: %s", event_type, self.method, self.url, exc)
        error = TransportError(f"{self.method} {self.url} failed: {exc}")
        error.__cause__ = exc
        self._sending = False
        self._reset_response()
        await self._set_state(generation, DONE)
        await self._emit(generation, Event(event_type, self, error=error))
        await self._emit(generation, Event("loadend", self))

    async def _finish_abort(self, generation: int) -> None:
        self._reset_response()
        # Still sending during DONE so a repeated abort() cannot drop the events below.
        await self._set_state(generation, DONE)
        self._sending = False
        await self._emit(generation, Event("abort", self))
        await self._emit(generation, Event("loadend", self))
        if self._current(generation):
            self.ready_state = UNSENT
