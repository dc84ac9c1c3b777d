"""Configuration management with XDG paths, atomic writes, and environment settings.

This module handles all persistent configuration for tokenflow:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.tokenflow/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_profiles_dir`.
* **Settings** -- :func:`load_settings` builds a
  :class:`~tokenflow.models.ClientSettings` from ``TOKENFLOW_*``
  environment variables.
* **Token stores** -- :func:`create_store` turns settings into a
  :class:`~tokenflow.store.KeyValueStore`.
* **Profiles** -- one JSON file per named flow configuration. Managed via
  :func:`load_profile`, :func:`save_profile`, :func:`delete_profile`.
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
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import urlsplit

from pydantic import ValidationError

from tokenflow.exceptions import ConfigurationError
from tokenflow.models import ClientSettings, FlowConfig, parse_flow_config

if TYPE_CHECKING:
    from tokenflow.store.base import KeyValueStore

_APP_NAME = "tokenflow"
_TOKENS_FILENAME = "tokens.json"
_ENV_PREFIX = "TOKENFLOW_"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
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

    On Linux/BSD: ``$XDG_CONFIG_HOME/tokenflow/`` (default ``~/.config/tokenflow/``).
    On macOS/Windows: ``~/.tokenflow/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory holding the token file, creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/tokenflow/`` (default ``~/.local/share/tokenflow/``).
    On macOS/Windows: ``~/.tokenflow/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_profiles_dir() -> Path:
    """Return the profiles directory (``<config_dir>/profiles/``), creating it if necessary."""
    path = get_config_dir() / "profiles"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On success the temp file is renamed over *path*; on any failure the temp
    file is cleaned up.

    Args:
        path: Destination file.
        data: Text content to write (UTF-8).
        mode: Optional permission bits applied to the temp file before any
            content is written, e.g. ``0o600`` for secrets.
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
        fd = None  # prevent double-close below
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


# --- Settings ---


def validate_proxy_url(url: str) -> str:
    """Check that *url* names an HTTP proxy with an explicit host and port.

    Args:
        url: Proxy URL such as ``http://proxy.example.com:8080``.

    Returns:
        The URL, stripped of surrounding whitespace.

    Raises:
        ConfigurationError: If the scheme, host, or port is missing or the
            port is not a number.
    """
    candidate = url.strip()
    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as exc:
        raise ConfigurationError(f"Invalid proxy URL: {url}") from exc
    if parts.scheme not in ("http", "https") or not parts.hostname or port is None:
        raise ConfigurationError(
            f"Invalid proxy URL: {url} (expected scheme://host:port)"
        )
    return candidate


def load_settings(**overrides: Any) -> ClientSettings:
    """Build :class:`~tokenflow.models.ClientSettings` from the environment.

    Reads ``TOKENFLOW_TIMEOUT``, ``TOKENFLOW_PROXY``,
    ``TOKENFLOW_MIN_VALIDITY``, ``TOKENFLOW_TOKEN_STORE`` and
    ``TOKENFLOW_STORE_PATH``. Keyword arguments whose value is not ``None``
    take precedence over the environment.

    Returns:
        The validated settings.

    Raises:
        ConfigurationError: If a value is out of range or the proxy URL is
            malformed.
    """
    env_map = {
        "timeout": "TIMEOUT",
        "proxy_url": "PROXY",
        "min_validity_seconds": "MIN_VALIDITY",
        "token_store": "TOKEN_STORE",
        "store_path": "STORE_PATH",
    }
    data: dict[str, Any] = {}
    for field, suffix in env_map.items():
        value = os.environ.get(_ENV_PREFIX + suffix)
        if value:
            data[field] = value
    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        settings = ClientSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid tokenflow settings: {exc}") from exc

    if settings.proxy_url:
        validate_proxy_url(settings.proxy_url)
    return settings


def default_store_path() -> Path:
    """Path of the token file used by the file store when none is configured."""
    return get_data_dir() / _TOKENS_FILENAME


def create_store(settings: ClientSettings) -> "KeyValueStore":
    """Instantiate the token store selected by ``settings.token_store``.

    Args:
        settings: Effective client settings.

    Returns:
        A :class:`~tokenflow.store.FileStore`,
        :class:`~tokenflow.store.KeyringStore`, or
        :class:`~tokenflow.store.MemoryStore`.
    """
    from tokenflow.store import FileStore, KeyringStore, MemoryStore

    if settings.token_store == "memory":
        return MemoryStore()
    if settings.token_store == "keyring":
        return KeyringStore(service=_APP_NAME)
    path = Path(settings.store_path).expanduser() if settings.store_path else default_store_path()
    return FileStore(path)


# --- Profiles ---


def _profile_path(name: str) -> Path:
    """Path to a named profile's JSON file."""
    if not name or "/" in name or "\\" in name or name.startswith("."):
        raise ConfigurationError(f"Invalid profile name: '{name}'")
    return get_profiles_dir() / f"{name}.json"


def list_profiles() -> list[str]:
    """Return all profile names found in the profiles directory, sorted alphabetically."""
    return sorted(p.stem for p in get_profiles_dir().glob("*.json") if p.is_file())


def load_profile(name: str) -> FlowConfig:
    """Load and validate a profile from disk.

    Args:
        name: Profile name (corresponds to ``<name>.json`` in the profiles
            directory).

    Returns:
        The deserialised flow configuration.

    Raises:
        ConfigurationError: If the profile file does not exist, contains
            invalid JSON, or fails validation.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigurationError(f"Profile '{name}' not found at {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigurationError(f"Invalid profile '{name}' at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid profile '{name}' at {path}: expected an object")
    return parse_flow_config(data)


def save_profile(name: str, config: FlowConfig) -> Path:
    """Persist a flow configuration atomically as a named profile.

    Callback fields are excluded from the JSON. The file is written with
    ``0o600`` permissions since it may contain a client secret.

    Args:
        name: Profile name.
        config: The configuration to save.

    Returns:
        The path of the written profile file.
    """
    path = _profile_path(name)
    data = config.model_dump(mode="json", exclude_none=True)
    atomic_write(path, json.dumps(data, indent=2) + "\n", mode=0o600)
    return path


def delete_profile(name: str) -> None:
    """Delete a profile's JSON file from disk.

    Raises:
        ConfigurationError: If the profile does not exist.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigurationError(f"Profile '{name}' not found at {path}")
    path.unlink()


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Args:
        source: The source descriptor string.

    Returns:
        The resolved credential string.

    Raises:
        ConfigurationError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigurationError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigurationError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Enter client secret: ")

    raise ConfigurationError(f"Unknown credential source format: {source}")


def resolve_client_secret(config: FlowConfig) -> Optional[str]:
    """Return the client secret of *config*, resolving ``client_secret_source`` if needed."""
    if config.client_secret:
        return config.client_secret
    if config.client_secret_source:
        return resolve_credential(config.client_secret_source)
    return None
