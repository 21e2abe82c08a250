"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for gitpod_auth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.gitpod-auth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Provider config** -- A single :class:`~gitpod_auth.models.ProviderConfig`
  JSON file naming the Gitpod installation, OAuth client, scopes and RPC
  reconnection policy.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables and the config file into the effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from gitpod_auth.exceptions import ConfigError
from gitpod_auth.models import ProviderConfig

_APP_NAME = "gitpod-auth"
_CONFIG_FILENAME = "config.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True on platforms that follow the XDG Base Directory layout (Linux/BSD)."""
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(xdg_var: str, xdg_default: Path, fallback: Path) -> Path:
    if _is_xdg_platform():
        path = Path(os.environ.get(xdg_var) or xdg_default) / _APP_NAME
    else:
        path = fallback
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/gitpod-auth/`` (default ``~/.config/gitpod-auth/``).
    On macOS/Windows: ``~/.gitpod-auth/``.
    """
    home = Path.home()
    return _app_dir("XDG_CONFIG_HOME", home / ".config", home / f".{_APP_NAME}")


def get_data_dir() -> Path:
    """Return the data directory (secrets, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/gitpod-auth/`` (default ``~/.local/share/gitpod-auth/``).
    On macOS/Windows: ``~/.gitpod-auth/data/``.
    """
    home = Path.home()
    return _app_dir(
        "XDG_DATA_HOME", home / ".local" / "share", home / f".{_APP_NAME}" / "data"
    )


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Replace *path* with *data* without ever exposing a half-written file.

    The content goes to a temp file in the same directory, is fsynced, and
    is then renamed over *path*. The temp file is removed if anything fails.

    Args:
        path: Destination file.
        data: Text content to write.
        mode: Permission bits for the new file, applied before any content
            is written (``0o600`` for secrets).
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        if mode is not None:
            os.chmod(tmp_name, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


# --- Provider config ---


def _config_path() -> Path:
    """Path to the provider config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_config() -> ProviderConfig:
    """Load the provider configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~gitpod_auth.models.ProviderConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _config_path()
    if not path.is_file():
        return ProviderConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return ProviderConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: ProviderConfig) -> None:
    """Persist the provider configuration atomically to disk.

    Args:
        config: The configuration to save.
    """
    data = config.model_dump(mode="json")
    atomic_write(_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config(cli_base_url: Optional[str] = None) -> ProviderConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_base_url``)
        2. Environment variables (``GITPOD_AUTH_BASE_URL``, ``GITPOD_AUTH_CLIENT_ID``)
        3. User config (``~/.config/gitpod-auth/config.json``)
        4. Defaults

    Returns:
        The effective :class:`~gitpod_auth.models.ProviderConfig`.
    """
    # 4 + 3. Load base config (fills in defaults automatically)
    config = load_config()

    updates: dict[str, str] = {}
    # 2. Environment variables
    env_base_url = os.environ.get("GITPOD_AUTH_BASE_URL")
    if env_base_url:
        updates["base_url"] = env_base_url
    env_client_id = os.environ.get("GITPOD_AUTH_CLIENT_ID")
    if env_client_id:
        updates["client_id"] = env_client_id
    # 1. CLI flag (highest precedence)
    if cli_base_url is not None:
        updates["base_url"] = cli_base_url

    if updates:
        config = config.model_copy(update=updates)
    return config
