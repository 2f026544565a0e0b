"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for syncauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.syncauth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~syncauth.models.GlobalConfig`
  JSON file holding the OAuth client registration and output defaults.
* **Precedence resolution** -- :func:`resolve_client_settings` merges CLI
  flags, environment variables and the config file into the
  :class:`~syncauth.models.ClientSettings` for one authorization attempt.
* **Credential resolution** -- :func:`resolve_credential` reads secrets
  from env vars, files, or interactive prompts.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Optional

from syncauth.exceptions import ConfigError
from syncauth.models import ClientSettings, GlobalConfig

_APP_NAME = "syncauth"
_CONFIG_FILENAME = "config.json"

ENV_CLIENT_ID = "SYNCAUTH_CLIENT_ID"
ENV_CLIENT_SECRET = "SYNCAUTH_CLIENT_SECRET"
ENV_PORT = "SYNCAUTH_PORT"


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

    On Linux/BSD: ``$XDG_CONFIG_HOME/syncauth/`` (default ``~/.config/syncauth/``).
    On macOS/Windows: ``~/.syncauth/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (credentials, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/syncauth/`` (default ``~/.local/share/syncauth/``).
    On macOS/Windows: ``~/.syncauth/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write *data* to *path* atomically using a temp file + rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX. When *mode* is given the
    permissions are applied before any content is written.
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
        if mode is not None:
            os.chmod(tmp_path, mode)
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


def global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~syncauth.models.GlobalConfig`, or a
        default instance if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    atomic_write(global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Credential source resolution ---


def resolve_credential(source: str, allow_prompt: bool = True) -> str:
    """Resolve a secret from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts the user interactively (requires a TTY)

    Args:
        source: The source descriptor.
        allow_prompt: ``False`` under ``--no-input``; a ``prompt`` source
            then fails instead of blocking on the terminal.

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not allow_prompt:
            raise ConfigError(
                "Cannot prompt for the client secret with --no-input (source: prompt)"
            )
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for the client secret: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Client secret: ")

    raise ConfigError(f"Unknown credential source format: {source}")


# --- Precedence resolution ---


def resolve_client_settings(
    cli_client_id: Optional[str] = None,
    cli_client_secret: Optional[str] = None,
    cli_port: Optional[int] = None,
    config: Optional[GlobalConfig] = None,
    allow_prompt: bool = True,
) -> ClientSettings:
    """Resolve the client registration for one authorization attempt.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``SYNCAUTH_CLIENT_ID``,
           ``SYNCAUTH_CLIENT_SECRET``, ``SYNCAUTH_PORT``)
        3. User config (``~/.config/syncauth/config.json``); the client
           secret comes from ``provider.client_secret_source``
        4. Defaults

    ``allow_prompt=False`` turns a ``prompt`` secret source into an error.

    Raises:
        ConfigError: If the client ID or secret is missing, or the port is
            not a valid unprivileged port.
    """
    global_cfg = config if config is not None else load_global_config()
    provider = global_cfg.provider

    client_id = cli_client_id or os.environ.get(ENV_CLIENT_ID) or provider.client_id

    client_secret = cli_client_secret or os.environ.get(ENV_CLIENT_SECRET)
    if not client_secret and provider.client_secret_source:
        client_secret = resolve_credential(
            provider.client_secret_source, allow_prompt=allow_prompt
        )

    if not client_id or not client_secret:
        raise ConfigError(
            "Enter the Client ID and Client Secret first "
            f"(--client-id/--client-secret, {ENV_CLIENT_ID}/{ENV_CLIENT_SECRET}, "
            "or 'syncauth config set provider.client_id ...')"
        )

    port = provider.port
    env_port = os.environ.get(ENV_PORT)
    if cli_port is not None:
        port = cli_port
    elif env_port:
        try:
            port = int(env_port)
        except ValueError:
            raise ConfigError(f"{ENV_PORT} must be an integer, got: {env_port}") from None

    if not 1024 <= port <= 65535:
        raise ConfigError(f"Port must be between 1024 and 65535, got: {port}")

    return ClientSettings(
        client_id=client_id,
        client_secret=client_secret,
        port=port,
        provider=provider,
    )
