"""CLI tests for the ``offlinehttp`` command, driven through Typer's CliRunner.

Each test runs against stores and config files isolated under tmp_path.
Commands call ``asyncio.run`` themselves, so these tests are synchronous.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from offlinehttp import __version__
from offlinehttp.app import _write_crash_log, app
from offlinehttp.cache import RequestCache
from offlinehttp.config import load_global_config
from offlinehttp.models import CacheConfig, CachedResponse

URL = "https://tiles.example.com/1/2/3.json"


def _seed(instance: str | None, entries: dict[str, object], key_prefix: str = "") -> None:
    """Write entries through a RequestCache on the isolated disk store."""

    async def _write() -> None:
        cache = await RequestCache.open(CacheConfig(instance_name=instance, key_prefix=key_prefix))
        try:
            for url, value in entries.items():
                outcome = await cache.store("GET", url, value)
                assert outcome.ok
        finally:
            await cache.aclose()

    asyncio.run(_write())


def _json_out(result) -> object:
    return json.loads(result.stdout)


class TestRoot:
    def test_version(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, [])
        assert "cache" in result.output
        assert "config" in result.output


class TestCacheStats:
    def test_empty_instance(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "--quiet", "--instance", "tiles", "cache", "stats"])
        assert result.exit_code == 0, result.output
        stats = _json_out(result)
        assert stats["namespace"] == "instance 'tiles'"
        assert stats["keys"] == 0
        assert stats["hits"] == 0

    def test_counts_seeded_entries(self, cli_runner, isolated_config: Path) -> None:
        _seed("tiles", {URL: "abcd", URL + "?v=2": "xy"})
        result = cli_runner.invoke(app, ["--json", "--quiet", "-i", "tiles", "cache", "stats"])
        assert result.exit_code == 0, result.output
        stats = _json_out(result)
        assert stats["keys"] == 2
        assert stats["memory"] == 6

    def test_env_selects_instance(
        self, cli_runner, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _seed("from-env", {URL: "abc"})
        monkeypatch.setenv("OFFLINEHTTP_INSTANCE", "from-env")
        result = cli_runner.invoke(app, ["--json", "--quiet", "cache", "stats"])
        assert _json_out(result)["keys"] == 1

    def test_prefix_scopes_shared_store(self, cli_runner, isolated_config: Path) -> None:
        _seed(None, {URL: "mine"}, key_prefix="app:")
        _seed(None, {URL: "theirs"}, key_prefix="other:")
        result = cli_runner.invoke(app, ["--json", "--quiet", "--key-prefix", "app:", "cache", "stats"])
        stats = _json_out(result)
        assert stats["namespace"] == "shared store, prefix 'app:'"
        assert stats["keys"] == 1
        assert stats["memory"] == 4


class TestCacheList:
    def test_lists_entries_as_json(self, cli_runner, isolated_config: Path) -> None:
        _seed("tiles", {URL: CachedResponse(raw='{"z": 1}', content_type="application/json")})
        result = cli_runner.invoke(app, ["--json", "--quiet", "-i", "tiles", "cache", "list"])
        assert result.exit_code == 0, result.output
        rows = _json_out(result)
        assert len(rows) == 1
        assert rows[0]["Key"] == f"GET__{URL}"
        assert rows[0]["Size"] == "8"
        assert rows[0]["Content-Type"] == "application/json"

    def test_limit(self, cli_runner, isolated_config: Path) -> None:
        _seed("tiles", {f"{URL}?n={n}": "x" for n in range(5)})
        result = cli_runner.invoke(app, ["--json", "--quiet", "-i", "tiles", "cache", "list", "-n", "2"])
        assert len(_json_out(result)) == 2

    def test_empty_namespace_message(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--plain", "-i", "tiles", "cache", "list"])
        assert result.exit_code == 0
        assert "No entries in instance 'tiles'." in result.output


class TestCacheFlush:
    def test_flush_with_force(self, cli_runner, isolated_config: Path) -> None:
        _seed("tiles", {URL: "a", URL + "?b": "b"})
        result = cli_runner.invoke(app, ["--force", "--no-color", "-i", "tiles", "cache", "flush"])
        assert result.exit_code == 0, result.output
        assert "Flushed 2 entries from instance 'tiles'." in result.output

        stats = cli_runner.invoke(app, ["--json", "--quiet", "-i", "tiles", "cache", "stats"])
        assert _json_out(stats)["keys"] == 0

    def test_flush_keeps_other_namespaces(self, cli_runner, isolated_config: Path) -> None:
        _seed(None, {URL: "mine"}, key_prefix="app:")
        _seed(None, {URL: "theirs"}, key_prefix="other:")
        result = cli_runner.invoke(app, ["-f", "--key-prefix", "app:", "cache", "flush"])
        assert result.exit_code == 0, result.output

        other = cli_runner.invoke(
            app, ["--json", "--quiet", "--key-prefix", "other:", "cache", "stats"]
        )
        assert _json_out(other)["keys"] == 1

    def test_flush_all_clears_shared_store(self, cli_runner, isolated_config: Path) -> None:
        _seed(None, {URL: "mine"}, key_prefix="app:")
        _seed(None, {URL: "theirs"}, key_prefix="other:")
        result = cli_runner.invoke(app, ["-f", "--no-color", "cache", "flush", "--all"])
        assert result.exit_code == 0, result.output
        assert "Cleared the whole store." in result.output

        other = cli_runner.invoke(
            app, ["--json", "--quiet", "--key-prefix", "other:", "cache", "stats"]
        )
        assert _json_out(other)["keys"] == 0

    def test_declined_confirmation_keeps_entries(self, cli_runner, isolated_config: Path) -> None:
        _seed("tiles", {URL: "a"})
        result = cli_runner.invoke(app, ["-i", "tiles", "cache", "flush"], input="n\n")
        assert result.exit_code == 0
        assert "Cancelled." in result.output

        stats = cli_runner.invoke(app, ["--json", "--quiet", "-i", "tiles", "cache", "stats"])
        assert _json_out(stats)["keys"] == 1


class TestCacheFetch:
    def test_served_from_seeded_cache(self, cli_runner, isolated_config: Path) -> None:
        _seed("tiles", {URL: CachedResponse(raw="seeded body", content_type="text/plain")})
        result = cli_runner.invoke(app, ["--plain", "--no-color", "-i", "tiles", "cache", "fetch", URL])
        assert result.exit_code == 0, result.output
        assert "seeded body" in result.stdout
        assert "HTTP 200 (cache; hits=1 misses=0)" in result.output

    def test_no_body(self, cli_runner, isolated_config: Path) -> None:
        _seed("tiles", {URL: "seeded"})
        result = cli_runner.invoke(
            app, ["--plain", "--quiet", "-i", "tiles", "cache", "fetch", "--no-body", URL]
        )
        assert result.exit_code == 0, result.output
        assert "seeded" not in result.stdout

    def test_invalid_header_exits_2(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "cache", "fetch", "-H", "novalue", URL])
        assert result.exit_code == 2
        assert "Invalid header" in result.output


class TestConfigCommands:
    def test_show_defaults_as_json(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "--quiet", "config", "show"])
        assert result.exit_code == 0, result.output
        data = _json_out(result)
        assert data["cache"]["instance_name"] is None
        assert data["request"]["cacheable_methods"] == ["GET"]

    def test_show_effective_applies_cli_flags(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["--json", "--quiet", "-i", "tiles", "--key-prefix", "p:", "config", "show", "--effective"]
        )
        data = _json_out(result)
        assert data["cache"]["instance_name"] == "tiles"
        assert data["cache"]["key_prefix"] == "p:"

    def test_set_values_of_each_type(self, cli_runner, isolated_config: Path) -> None:
        for key, value in [
            ("cache.instance_name", "tiles"),
            ("cache.refresh_on_hit", "true"),
            ("request.timeout", "2.5"),
            ("request.cacheable_methods", "GET, HEAD"),
        ]:
            result = cli_runner.invoke(app, ["config", "set", key, value])
            assert result.exit_code == 0, result.output

        cfg = load_global_config()
        assert cfg.cache.instance_name == "tiles"
        assert cfg.cache.refresh_on_hit is True
        assert cfg.request.timeout == 2.5
        assert cfg.request.cacheable_methods == ["GET", "HEAD"]

    def test_set_none_clears_optional(self, cli_runner, isolated_config: Path) -> None:
        cli_runner.invoke(app, ["config", "set", "cache.instance_name", "tiles"])
        result = cli_runner.invoke(app, ["config", "set", "cache.instance_name", "none"])
        assert result.exit_code == 0, result.output
        assert load_global_config().cache.instance_name is None

    def test_set_unknown_key_exits_2(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "cache.nope", "x"])
        assert result.exit_code == 2
        assert "Unknown config key" in result.output

    def test_set_bad_number_exits_2(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "config", "set", "request.timeout", "soon"])
        assert result.exit_code == 2

    def test_reset_with_force(self, cli_runner, isolated_config: Path) -> None:
        cli_runner.invoke(app, ["config", "set", "cache.key_prefix", "x:"])
        result = cli_runner.invoke(app, ["--force", "--no-color", "config", "reset"])
        assert result.exit_code == 0, result.output
        assert "Configuration reset to defaults." in result.output
        assert load_global_config().cache.key_prefix == ""


class TestCrashLog:
    def test_writes_traceback_under_data_dir(self, isolated_config: Path) -> None:
        try:
            raise RuntimeError("kaboom")
        except RuntimeError as exc:
            path = Path(_write_crash_log(exc))
        assert path.parent == isolated_config / "data" / "offlinehttp" / "logs"
        assert "kaboom" in path.read_text()
