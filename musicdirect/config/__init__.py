"""
Configuration management for MusicDirect.

Settings are read from TOML. The shipped `defaults.toml` is always loaded
first; a user file (``--config``) only needs the keys it changes.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from musicdirect.core.hub import BroadcastScope

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent
DEFAULTS_PATH = CONFIG_DIR / "defaults.toml"


class ConfigError(Exception):
    """Raised when a configuration file is missing, unreadable or invalid."""


@dataclass(frozen=True)
class ServerConfig:
    """Resolved server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    db_path: str = "musicdirect.db"

    code_length: int = 5
    code_alphabet: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
    max_attempts: int = 32
    room_ttl_s: float = 0.0
    reap_interval_s: float = 300.0

    broadcast_scope: BroadcastScope = BroadcastScope.ROOM
    send_timeout_s: float = 5.0
    max_queue: int = 1000

    catalog_base_url: str = "https://api.music.yandex.net"
    catalog_timeout_s: float = 10.0

    def with_overrides(self, **changes: Any) -> ServerConfig:
        """Return a copy with the non-None values in `changes` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _get(data: dict[str, Any], section: str, key: str, kind: type | tuple[type, ...]) -> Any:
    table = data.get(section, {})
    if not isinstance(table, dict):
        raise ConfigError(f"[{section}] must be a table")
    if key not in table:
        raise ConfigError(f"Missing {section}.{key}")
    value = table[key]
    # TOML booleans are ints in Python; never accept them as numbers
    if isinstance(value, bool) or not isinstance(value, kind):
        raise ConfigError(f"{section}.{key} has invalid value {value!r}")
    return value


def parse_config(data: dict[str, Any]) -> ServerConfig:
    """
    Build a ServerConfig from parsed TOML data.

    Args:
        data: Fully merged TOML document (defaults plus user overrides).

    Returns:
        The validated configuration.

    Raises:
        ConfigError: if a key is missing or has an invalid value.
    """
    cors_origins = _get(data, "server", "cors_origins", list)
    if not all(isinstance(origin, str) for origin in cors_origins):
        raise ConfigError("server.cors_origins must be a list of strings")

    port = _get(data, "server", "port", int)
    if not 0 < port < 65536:
        raise ConfigError(f"server.port out of range: {port}")

    code_length = _get(data, "rooms", "code_length", int)
    alphabet = _get(data, "rooms", "code_alphabet", str)
    max_attempts = _get(data, "rooms", "max_attempts", int)
    if code_length < 1:
        raise ConfigError("rooms.code_length must be at least 1")
    if len(set(alphabet)) < 2 or alphabet != alphabet.upper():
        raise ConfigError(
            "rooms.code_alphabet needs two or more distinct characters and no lower-case letters"
        )
    if max_attempts < 1:
        raise ConfigError("rooms.max_attempts must be at least 1")

    ttl = float(_get(data, "rooms", "ttl_seconds", (int, float)))
    reap_interval = float(_get(data, "rooms", "reap_interval_seconds", (int, float)))
    if ttl < 0:
        raise ConfigError("rooms.ttl_seconds must not be negative")
    if reap_interval <= 0:
        raise ConfigError("rooms.reap_interval_seconds must be positive")

    scope_name = _get(data, "broadcast", "scope", str)
    try:
        scope = BroadcastScope(scope_name)
    except ValueError as e:
        raise ConfigError(
            f"broadcast.scope must be 'room' or 'global', got {scope_name!r}"
        ) from e

    send_timeout = float(_get(data, "broadcast", "send_timeout_seconds", (int, float)))
    max_queue = _get(data, "broadcast", "max_queue", int)
    catalog_timeout = float(_get(data, "catalog", "timeout_seconds", (int, float)))
    if send_timeout <= 0 or catalog_timeout <= 0:
        raise ConfigError("Timeouts must be positive")
    if max_queue < 0:
        raise ConfigError("broadcast.max_queue must not be negative")

    return ServerConfig(
        host=_get(data, "server", "host", str),
        port=port,
        cors_origins=list(cors_origins),
        db_path=_get(data, "database", "path", str),
        code_length=code_length,
        code_alphabet=alphabet,
        max_attempts=max_attempts,
        room_ttl_s=ttl,
        reap_interval_s=reap_interval,
        broadcast_scope=scope,
        send_timeout_s=send_timeout,
        max_queue=max_queue,
        catalog_base_url=_get(data, "catalog", "base_url", str),
        catalog_timeout_s=catalog_timeout,
    )


def load_config(config_path: Path | str | None = None) -> ServerConfig:
    """
    Load configuration from TOML.

    Args:
        config_path: Optional user config file, merged over the defaults.

    Returns:
        Loaded ServerConfig instance.
    """
    data = _read_toml(DEFAULTS_PATH)
    if config_path is not None:
        path = Path(config_path)
        logger.debug("Loading config from %s", path)
        data = _merge(data, _read_toml(path))
    return parse_config(data)


__all__ = [
    "CONFIG_DIR",
    "DEFAULTS_PATH",
    "ConfigError",
    "ServerConfig",
    "load_config",
    "parse_config",
]
