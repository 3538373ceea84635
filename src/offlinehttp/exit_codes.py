"""Numeric process exit codes for the ``offlinehttp`` command line.

Each constant maps to an error category and is referenced by the matching
:class:`~offlinehttp.exceptions.OfflineHttpError` subclass, so shell
wrappers can tell a cache fault from a network fault without parsing stderr.

Example::

    $ offlinehttp cache fetch GET https://unreachable.invalid/
    $ echo $?
    6   # EXIT_TRANSPORT_ERROR -- the request never reached the server
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or in an invalid state."""

EXIT_STORE_ERROR = 3
"""The persistent key-value store could not be read or written."""

EXIT_DECODE_ERROR = 4
"""A response payload could not be decoded as its content type claims."""

EXIT_HOOK_ERROR = 5
"""A caller-supplied hook failed."""

EXIT_TRANSPORT_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""
