"""Cache commands -- inspect, flush and warm request caches.

Every command operates on the namespace selected by the resolved
configuration: ``--instance`` / ``OFFLINEHTTP_INSTANCE`` pick an exclusive
store instance, otherwise the shared store is used and ``--key-prefix``
scopes what belongs to the namespace.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Coroutine, Optional

import typer

from offlinehttp.exceptions import OfflineHttpError, TransportError
from offlinehttp.output import error, get_output, info, success, warning

cache_app = typer.Typer(no_args_is_help=True)


def _resolve(ctx: typer.Context):
    from offlinehttp.config import resolve_config

    obj = ctx.obj or {}
    return resolve_config(obj.get("instance"), obj.get("key_prefix"))


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run *coro* to completion, turning library errors into clean exits."""
    try:
        return asyncio.run(coro)
    except OfflineHttpError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _namespace_label(config) -> str:
    if config.cache.instance_name is not None:
        return f"instance '{config.cache.instance_name}'"
    if config.cache.key_prefix:
        return f"shared store, prefix '{config.cache.key_prefix}'"
    return "shared store"


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show hit/miss counters, key count and memory estimate.

    The counters start from zero on each invocation; key count and memory
    come from the startup scan of the namespace.

    Example::

        offlinehttp cache stats
        offlinehttp --instance tiles --json cache stats
    """
    from offlinehttp.cache import RequestCache

    config = _resolve(ctx)

    async def _stats() -> dict[str, Any]:
        cache = await RequestCache.open(config.cache)
        try:
            stats = cache.stats_snapshot()
            return {
                "namespace": _namespace_label(config),
                "store": cache.store_backend.name,
                "keys": cache.weak_len(),
                "memory": stats.memory,
                "hits": stats.hits,
                "misses": stats.misses,
            }
        finally:
            await cache.aclose()

    get_output().print_record(_run(_stats()))


@cache_app.command("list")
def cache_list(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Show at most N entries."),
) -> None:
    """List the entries of the namespace with their sizes.

    Example::

        offlinehttp cache list --limit 20
    """
    from offlinehttp.cache import RequestCache
    from offlinehttp.models import CachedResponse, payload_size

    config = _resolve(ctx)

    async def _list() -> list[list[str]]:
        rows: list[list[str]] = []
        cache = await RequestCache.open(config.cache)
        try:

            def _visit(key: str, value: Any) -> None:
                if limit is not None and len(rows) >= limit:
                    return
                if isinstance(value, CachedResponse):
                    content_type = value.content_type
                    captured = datetime.fromtimestamp(value.captured_at).isoformat(timespec="seconds")
                else:
                    content_type, captured = "", ""
                rows.append([key, str(payload_size(value)), content_type, captured])

            outcome = await cache.iterate(_visit)
            if not outcome.ok:
                warning(f"Listing may be incomplete: {outcome.error}")
        finally:
            await cache.aclose()
        return rows

    rows = _run(_list())
    if not rows:
        info(f"No entries in {_namespace_label(config)}.")
        return
    get_output().print_table(["Key", "Size", "Content-Type", "Captured"], rows, title="Cache entries")


@cache_app.command("flush")
def cache_flush(
    ctx: typer.Context,
    all_entries: bool = typer.Option(
        False, "--all", help="Clear the whole store, including other namespaces."
    ),
) -> None:
    """Remove the namespace's entries from the store.

    Asks for confirmation unless ``--force`` is active.

    Example::

        offlinehttp --key-prefix myapp: cache flush
        offlinehttp --force cache flush --all
    """
    from offlinehttp.cache import RequestCache

    config = _resolve(ctx)
    label = "the whole store" if all_entries else _namespace_label(config)
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        if not typer.confirm(f"Flush {label}?"):
            info("Cancelled.")
            raise typer.Exit()

    async def _flush():
        cache = await RequestCache.open(config.cache)
        try:
            return await (cache.force_clear() if all_entries else cache.flush())
        finally:
            await cache.aclose()

    outcome = _run(_flush())
    if not outcome.ok:
        error(str(outcome.error))
        raise typer.Exit(code=outcome.error.exit_code)
    if all_entries:
        success(f"Cleared {label}.")
    else:
        success(f"Flushed {outcome.count} entries from {label}.")


@cache_app.command("fetch")
def cache_fetch(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL to request."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Request header as 'Name: value'. Repeatable."
    ),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Request body."),
    show_body: bool = typer.Option(True, "--body/--no-body", help="Print the response body."),
) -> None:
    """Request a URL through the cache, warming it on a miss.

    Methods listed in ``request.cacheable_methods`` are answered from the
    cache when possible; anything else goes straight to the network.

    Example::

        offlinehttp cache fetch https://example.com/data.json
        offlinehttp cache fetch -X POST -d '{"q": 1}' https://example.com/search
    """
    from offlinehttp.client import OfflineClient

    config = _resolve(ctx)
    headers: dict[str, str] = {}
    for item in header or []:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            error(f"Invalid header (expected 'Name: value'): {item}")
            raise typer.Exit(code=2)
        headers[name.strip()] = value.strip()

    async def _fetch():
        async with OfflineClient(config) as client:
            request = await client.fetch(method, url, body=data, headers=headers)
            return request, client.cache.stats_snapshot()

    request, stats = _run(_fetch())
    if request.error is not None:
        exc = request.error
        if not isinstance(exc, OfflineHttpError):
            exc = TransportError(str(exc))
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)

    source = "cache" if request.from_cache else "network"
    info(f"HTTP {request.status} ({source}; hits={stats.hits} misses={stats.misses})")
    if request.status >= 400:
        warning(f"Server answered {request.status}; the response was not cached.")
    if show_body:
        get_output().print_payload(request.response, request.content_type)
