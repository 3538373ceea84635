"""Exception hierarchy for offlinehttp.

All exceptions inherit from :class:`OfflineHttpError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`offlinehttp.exit_codes`. The library itself never lets a store fault
escape :class:`~offlinehttp.cache.RequestCache`: read faults become cache
misses and write faults are *returned* inside a
:class:`~offlinehttp.cache.Outcome`. The types below are still
exceptions so they can be raised by the CLI and chained with ``from``.

Subclass hierarchy::

    OfflineHttpError (exit 1)
    +-- ConfigError         (exit 1)
    +-- InvalidStateError   (exit 2)
    +-- StoreError          (exit 3)
    |   +-- StoreReadError
    |   +-- StoreWriteError
    +-- DecodeError         (exit 4)
    +-- HookError           (exit 5)
    +-- TransportError      (exit 6)
"""

from offlinehttp.exit_codes import (
    EXIT_DECODE_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_HOOK_ERROR,
    EXIT_INVALID_USAGE,
    EXIT_STORE_ERROR,
    EXIT_TRANSPORT_ERROR,
)


class OfflineHttpError(Exception):
    """Base exception for all offlinehttp errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(OfflineHttpError):
    """Raised for configuration problems (invalid JSON, missing default cache)."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidStateError(OfflineHttpError):
    """Raised when a request method is called in the wrong lifecycle state.

    For example calling :meth:`~offlinehttp.client.CachingRequest.send`
    before :meth:`~offlinehttp.client.CachingRequest.open`.
    """

    exit_code = EXIT_INVALID_USAGE


class StoreError(OfflineHttpError):
    """Base class for key-value store faults."""

    exit_code = EXIT_STORE_ERROR

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class StoreReadError(StoreError):
    """A store read failed. Treated as a cache miss by the request cache."""


class StoreWriteError(StoreError):
    """A store write, removal or clear failed. The cache index is left unchanged."""


class DecodeError(OfflineHttpError):
    """Raised by ``decode()`` when a payload does not parse as its content type."""

    exit_code = EXIT_DECODE_ERROR


class HookError(OfflineHttpError):
    """Wraps an exception raised by a caller-supplied hook.

    The facade logs these and degrades to the uncached behaviour; they are
    only raised to callers that invoke hooks directly through
    :class:`~offlinehttp.client.hooks.CacheHooks`.
    """

    exit_code = EXIT_HOOK_ERROR

    def __init__(self, hook: str, cause: BaseException):
        super().__init__(f"Hook '{hook}' failed: {cause}")
        self.hook = hook
        self.cause = cause


class TransportError(OfflineHttpError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_TRANSPORT_ERROR
