"""Caller-supplied decision hooks for the caching request facade.

:class:`CacheHooks` bundles the five extension points of
:class:`~offlinehttp.client.request.CachingRequest`:

* ``should_cache(method, url) -> bool`` -- cache eligibility, evaluated once
  per ``send()``. Without it nothing is cached.
* ``mangle_key(url) -> str`` -- rewrites the URL before every cache key is
  composed, e.g. to drop volatile query parameters or add a version.
* ``on_miss(key, request) -> SyntheticResponse | None`` -- first refusal on a
  genuine cache miss; a returned response is served instead of the network.
* ``on_error(error, request) -> SyntheticResponse | None`` -- inspects a
  network failure and may substitute a successful response.
* ``on_load(request)`` -- observes every successful completion just before
  the caller's ``load`` handlers run.

Any hook may be a coroutine function. A hook that raises or returns the
wrong type is logged as a :class:`~offlinehttp.exceptions.HookError` and
treated as if it had declined: eligibility becomes ``False``, mangling keeps
the raw URL, substitution does not happen.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from offlinehttp._aio import maybe_await
from offlinehttp.exceptions import HookError
from offlinehttp.models import SyntheticResponse

if TYPE_CHECKING:
    from offlinehttp.client.request import CachingRequest

logger = logging.getLogger(__name__)

_DECLINED = object()

CachePredicate = Callable[[str, str], Union[bool, Awaitable[bool]]]
KeyMangler = Callable[[str], Union[str, Awaitable[str]]]
SubstituteResult = Union[SyntheticResponse, dict, None]
ErrorHook = Callable[[BaseException, "CachingRequest"], Union[SubstituteResult, Awaitable[SubstituteResult]]]
MissHook = Callable[[str, "CachingRequest"], Union[SubstituteResult, Awaitable[SubstituteResult]]]
LoadHook = Callable[["CachingRequest"], Union[None, Awaitable[None]]]


@dataclass
class CacheHooks:
    """The set of optional hooks consulted by a caching request.

    Example::

        hooks = CacheHooks(
            should_cache=cache_methods(["GET"], url_prefix="https://"),
            on_error=lambda err, req: SyntheticResponse(raw=PLACEHOLDER_PNG,
                                                        content_type="image/png"),
        )
    """

    should_cache: Optional[CachePredicate] = None
    mangle_key: Optional[KeyMangler] = None
    on_error: Optional[ErrorHook] = None
    on_miss: Optional[MissHook] = None
    on_load: Optional[LoadHook] = None

    async def is_cacheable(self, method: str, url: str) -> bool:
        if self.should_cache is None:
            return False
        result = await self._invoke("should_cache", self.should_cache, method, url)
        if result is _DECLINED:
            return False
        return bool(result)

    async def mangle(self, url: str) -> str:
        if self.mangle_key is None:
            return url
        result = await self._invoke("mangle_key", self.mangle_key, url)
        if result is _DECLINED:
            return url
        if not isinstance(result, str):
            _report(HookError("mangle_key", TypeError(f"expected str, got {type(result).__name__}")))
            return url
        return result

    async def substitute_error(
        self, error: BaseException, request: CachingRequest
    ) -> Optional[SyntheticResponse]:
        if self.on_error is None:
            return None
        return _as_synthetic("on_error", await self._invoke("on_error", self.on_error, error, request))

    async def substitute_miss(self, key: str, request: CachingRequest) -> Optional[SyntheticResponse]:
        if self.on_miss is None:
            return None
        return _as_synthetic("on_miss", await self._invoke("on_miss", self.on_miss, key, request))

    async def after_load(self, request: CachingRequest) -> None:
        if self.on_load is not None:
            await self._invoke("on_load", self.on_load, request)

    @staticmethod
    async def _invoke(name: str, hook: Callable[..., Any], *args: Any) -> Any:
        try:
            return await maybe_await(hook(*args))
        except Exception as exc:
            _report(HookError(name, exc))
            return _DECLINED


def _report(error: HookError) -> None:
    logger.warning("%s", error, exc_info=error.cause)


def _as_synthetic(name: str, result: Any) -> Optional[SyntheticResponse]:
    if result is _DECLINED or result is None:
        return None
    if isinstance(result, SyntheticResponse):
        return result
    if isinstance(result, dict):
        try:
            return SyntheticResponse.model_validate(result)
        except ValidationError as exc:
            _report(HookError(name, exc))
            return None
    _report(HookError(name, TypeError(f"expected SyntheticResponse, got {type(result).__name__}")))
    return None


def cache_methods(methods: Iterable[str], url_prefix: str = "") -> CachePredicate:
    """Build a ``should_cache`` predicate accepting *methods* (case-insensitive).

    Args:
        methods: HTTP methods to cache, e.g. ``["GET"]``.
        url_prefix: When set, only URLs starting with it are cached.
    """
    accepted = frozenset(m.upper() for m in methods)

    def _predicate(method: str, url: str) -> bool:
        return method.upper() in accepted and url.startswith(url_prefix)

    return _predicate
