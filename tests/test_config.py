"""Tests for offlinehttp.config -- XDG paths, atomic writes, precedence."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from offlinehttp.config import (
    _atomic_write,
    get_cache_dir,
    get_config_dir,
    get_data_dir,
    get_store_dir,
    load_global_config,
    load_project_config,
    resolve_config,
    save_global_config,
)
from offlinehttp.exceptions import ConfigError
from offlinehttp.models import CacheConfig, GlobalConfig, RequestConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPathsLinux:
    """XDG paths on Linux (the default XDG platform)."""

    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("offlinehttp.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".config" / "offlinehttp"
        assert result.is_dir()

    def test_cache_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_cache"
        monkeypatch.setattr("offlinehttp.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CACHE_HOME", str(custom))

        assert get_cache_dir() == custom / "offlinehttp"

    def test_data_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("offlinehttp.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_data_dir() == tmp_path / ".local" / "share" / "offlinehttp"


class TestXDGPathsFallback:
    """Fallback paths on non-XDG platforms (macOS, Windows)."""

    def test_config_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("offlinehttp.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".offlinehttp"

    def test_cache_dir_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("offlinehttp.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_cache_dir() == tmp_path / ".offlinehttp" / "cache"


class TestStoreDir:
    def test_defaults_under_cache_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("offlinehttp.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
        monkeypatch.delenv("OFFLINEHTTP_STORE_DIR", raising=False)

        result = get_store_dir()
        assert result == tmp_path / "offlinehttp" / "stores"
        assert result.is_dir()

    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OFFLINEHTTP_STORE_DIR", str(tmp_path / "elsewhere"))
        assert get_store_dir() == tmp_path / "elsewhere"


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_file_with_content(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        _atomic_write(target, "hello world")
        assert target.read_text(encoding="utf-8") == "hello world"

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        target.write_text("old content", encoding="utf-8")
        _atomic_write(target, "new content")
        assert target.read_text(encoding="utf-8") == "new content"

    def test_no_temp_files_left_on_success(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        _atomic_write(target, "content")
        assert list(tmp_path.iterdir()) == [target]

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        with patch("offlinehttp.config.os.fsync", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                _atomic_write(target, "will fail")
        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    def test_load_returns_defaults_when_missing(self, isolated_config: Path) -> None:
        cfg = load_global_config()
        assert cfg == GlobalConfig()
        assert cfg.cache.instance_name is None
        assert cfg.request.cacheable_methods == ["GET"]
        assert cfg.request.timeout == 0

    def test_save_and_load_roundtrip(self, isolated_config: Path) -> None:
        original = GlobalConfig(
            cache=CacheConfig(instance_name="tiles", key_prefix="app:", refresh_on_hit=True),
            request=RequestConfig(timeout=2.5, cacheable_methods=["GET", "HEAD"]),
        )
        save_global_config(original)
        assert load_global_config() == original

    def test_load_invalid_json_raises_config_error(self, isolated_config: Path) -> None:
        (get_config_dir() / "config.json").write_text("{invalid json!!!", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()

    def test_load_invalid_schema_raises_config_error(self, isolated_config: Path) -> None:
        _write_json(get_config_dir() / "config.json", {"cache": "not-a-dict"})
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()


# ---------------------------------------------------------------------------
# Project config
# ---------------------------------------------------------------------------


class TestProjectConfig:
    def test_load_returns_none_when_missing(self, isolated_config: Path) -> None:
        assert load_project_config() is None

    def test_load_valid_project_config(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "offlinehttp.json", {"cache": {"key_prefix": "proj:"}})
        assert load_project_config() == {"cache": {"key_prefix": "proj:"}}

    def test_load_invalid_json_raises_config_error(self, isolated_config: Path) -> None:
        (isolated_config / "offlinehttp.json").write_text("broken{", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid project config"):
            load_project_config()

    def test_non_object_raises_config_error(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "offlinehttp.json", ["not", "an", "object"])
        with pytest.raises(ConfigError, match="must be a JSON object"):
            load_project_config()


# ---------------------------------------------------------------------------
# Precedence resolution
# ---------------------------------------------------------------------------


class TestResolveConfig:
    """The full precedence chain: CLI > env > project > global > defaults."""

    def test_defaults(self, isolated_config: Path) -> None:
        assert resolve_config() == GlobalConfig()

    def test_global_file(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(cache=CacheConfig(key_prefix="user:")))
        assert resolve_config().cache.key_prefix == "user:"

    def test_project_overrides_global_and_keeps_other_keys(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(cache=CacheConfig(key_prefix="user:", instance_name="u")))
        _write_json(isolated_config / "offlinehttp.json", {"cache": {"key_prefix": "proj:"}})

        cfg = resolve_config()
        assert cfg.cache.key_prefix == "proj:"
        assert cfg.cache.instance_name == "u"

    def test_invalid_project_values_raise(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "offlinehttp.json", {"request": {"timeout": "soon"}})
        with pytest.raises(ConfigError, match="Invalid project config"):
            resolve_config()

    def test_env_overrides_project(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_json(isolated_config / "offlinehttp.json", {"cache": {"instance_name": "proj"}})
        monkeypatch.setenv("OFFLINEHTTP_INSTANCE", "env")
        monkeypatch.setenv("OFFLINEHTTP_KEY_PREFIX", "env:")

        cfg = resolve_config()
        assert cfg.cache.instance_name == "env"
        assert cfg.cache.key_prefix == "env:"

    def test_cli_overrides_env(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OFFLINEHTTP_INSTANCE", "env")
        monkeypatch.setenv("OFFLINEHTTP_KEY_PREFIX", "env:")

        cfg = resolve_config(cli_instance="cli", cli_key_prefix="cli:")
        assert cfg.cache.instance_name == "cli"
        assert cfg.cache.key_prefix == "cli:"

    def test_empty_env_prefix_clears_prefix(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        save_global_config(GlobalConfig(cache=CacheConfig(key_prefix="user:")))
        monkeypatch.setenv("OFFLINEHTTP_KEY_PREFIX", "")
        assert resolve_config().cache.key_prefix == ""
