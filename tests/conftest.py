"""Shared test fixtures for offlinehttp.

Provides isolated config/store directories, in-memory stores and caches,
a mock HTTP server built on :class:`httpx.MockTransport`, output state
management, and a CLI runner. Fixtures are discovered automatically by
pytest.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest
import pytest_asyncio

from offlinehttp.cache import RequestCache
from offlinehttp.client import set_default_cache
from offlinehttp.models import CacheConfig
from offlinehttp.output import OutputFormat, OutputManager, reset_output, set_output
from offlinehttp.store import MemoryStore


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_globals_between_tests() -> None:
    """Reset the global OutputManager, default cache, memory stores and
    the CLI log handler.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams per invocation.
    """
    yield
    reset_output()
    set_default_cache(None)
    MemoryStore.reset_instances()
    package_logger = logging.getLogger("offlinehttp")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and disk stores to a temporary directory.

    Points the XDG directories and ``OFFLINEHTTP_STORE_DIR`` at
    subdirectories of tmp_path, clears namespace environment variables and
    changes the working directory to tmp_path.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("OFFLINEHTTP_STORE_DIR", str(tmp_path / "stores"))
    for var in ["OFFLINEHTTP_INSTANCE", "OFFLINEHTTP_KEY_PREFIX"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Stores and caches
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_store() -> MemoryStore:
    """An empty, unregistered in-memory store."""
    return MemoryStore("test")


@pytest_asyncio.fixture
async def cache(memory_store: MemoryStore) -> RequestCache:
    """A ready RequestCache owning an exclusive in-memory store."""
    c = await RequestCache.open(CacheConfig(instance_name="test"), memory_store)
    yield c
    await c.aclose()


# ---------------------------------------------------------------------------
# Mock network
# ---------------------------------------------------------------------------


class MockServer:
    """Routes requests to canned responses and records what it was asked.

    ``routes`` maps ``(METHOD, url)`` to an :class:`httpx.Response` or to a
    callable returning one (or raising an httpx exception).
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], object] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, response: object) -> None:
        self.routes[(method.upper(), url)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, str(request.url)))
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            return route(request)
        return route

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def server() -> MockServer:
    return MockServer()


@pytest_asyncio.fixture
async def http_client(server: MockServer) -> httpx.AsyncClient:
    """An AsyncClient whose transport is the mock server."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    yield client
    await client.aclose()


# ---------------------------------------------------------------------------
# Event recording
# ---------------------------------------------------------------------------


class EventRecorder:
    """Collects event types dispatched to the listeners it registers."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.snapshots: dict[str, dict] = {}

    def attach(self, target, names: Optional[list[str]] = None, snapshot: Optional[Callable] = None) -> None:
        from offlinehttp.client.events import EVENT_TYPES

        for name in names or EVENT_TYPES:
            target.add_event_listener(name, self._make(name, snapshot))

    def _make(self, name: str, snapshot: Optional[Callable]):
        def _listener(event) -> None:
            self.events.append(name)
            if snapshot is not None:
                self.snapshots[name] = snapshot(event.target)

        return _listener

    def count(self, name: str) -> int:
        return self.events.count(name)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet, PLAIN-format OutputManager."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
