"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for offlinehttp:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.offlinehttp/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir` and :func:`get_store_dir`.
* **Global config** -- a single :class:`~offlinehttp.models.GlobalConfig`
  JSON file holding cache namespace and request defaults.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from offlinehttp.exceptions import ConfigError
from offlinehttp.models import GlobalConfig

_APP_NAME = "offlinehttp"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "offlinehttp.json"

ENV_INSTANCE = "OFFLINEHTTP_INSTANCE"
ENV_KEY_PREFIX = "OFFLINEHTTP_KEY_PREFIX"
ENV_STORE_DIR = "OFFLINEHTTP_STORE_DIR"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/offlinehttp/`` (default
    ``~/.config/offlinehttp/``). On macOS/Windows: ``~/.offlinehttp/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CACHE_HOME/offlinehttp/`` (default
    ``~/.cache/offlinehttp/``). On macOS/Windows: ``~/.offlinehttp/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary."""
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_store_dir() -> Path:
    """Return the root directory for persistent key-value stores.

    ``$OFFLINEHTTP_STORE_DIR`` overrides the default of
    ``<cache_dir>/stores``. Each named store instance lives in its own
    subdirectory; the shared store lives in ``<store_dir>/shared``.
    """
    override = os.environ.get(ENV_STORE_DIR, "")
    path = Path(override) if override else get_cache_dir() / "stores"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created next to *path* so that ``os.replace`` is
    an atomic rename on POSIX systems.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~offlinehttp.models.GlobalConfig`, or a
        default instance if the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``./offlinehttp.json``.

    The file holds a partial :class:`~offlinehttp.models.GlobalConfig`
    document, e.g. ``{"cache": {"key_prefix": "myapp:"}}``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Project config at {path} must be a JSON object")
    return data


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def resolve_config(
    cli_instance: Optional[str] = None,
    cli_key_prefix: Optional[str] = None,
) -> GlobalConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_instance``, ``cli_key_prefix``)
        2. Environment variables (``OFFLINEHTTP_INSTANCE``,
           ``OFFLINEHTTP_KEY_PREFIX``)
        3. Project config (``./offlinehttp.json``)
        4. User config (``~/.config/offlinehttp/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any config layer is invalid.
    """
    config = load_global_config()

    project = load_project_config()
    if project:
        merged = _deep_merge(config.model_dump(mode="json"), project)
        try:
            config = GlobalConfig.model_validate(merged)
        except ValueError as exc:
            raise ConfigError(f"Invalid project config: {exc}") from exc

    env_instance = os.environ.get(ENV_INSTANCE)
    if env_instance:
        config.cache.instance_name = env_instance
    env_prefix = os.environ.get(ENV_KEY_PREFIX)
    if env_prefix is not None:
        config.cache.key_prefix = env_prefix

    if cli_instance is not None:
        config.cache.instance_name = cli_instance
    if cli_key_prefix is not None:
        config.cache.key_prefix = cli_key_prefix

    return config
