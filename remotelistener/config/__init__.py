"""
Configuration management for Remote Listener.

This module loads the listener configuration from TOML files and provides the
`ConfigProvider`, which owns the current configuration value and announces
changes on the event bus. The listener subscribes to those announcements to
rebind when the port changes; the dispatcher reads the auth token per request.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from remotelistener.core.events import ConfigChangedEvent, EventBus, event_bus

logger = logging.getLogger(__name__)

# Path to the config directory (packaged defaults live here)
CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = CONFIG_DIR / "remote.toml"

DEFAULT_PORT = 8484
MIN_PORT = 1024
MAX_PORT = 49151
MAX_AUTH_TOKEN = 0xFFFF


class ConfigError(ValueError):
    """Raised for configuration values outside their allowed range."""


@dataclass(frozen=True)
class ListenerConfig:
    """Process-wide configuration value object."""

    port: int = DEFAULT_PORT
    auth_token: int = 0
    host: str = "0.0.0.0"

    library_db: Path = Path("remotelistener-library.sqlite3")
    cover_dir: Path = Path("cache/covers")
    cache_db: Path = Path("cache/library-compressed.sqlite3")
    music_root: Path | None = None
    cache_max_age: int = 24 * 60 * 60

    replay_threshold_ms: int = 15_000
    override_window: float = 1.0
    max_request_bytes: int = 100 * 1024

    def __post_init__(self) -> None:
        validate(self)


def validate(config: ListenerConfig) -> None:
    """
    Check value ranges.

    Raises:
        ConfigError: If a value is out of range.
    """
    if not MIN_PORT <= config.port <= MAX_PORT:
        raise ConfigError(f"port must be within {MIN_PORT}-{MAX_PORT}, got {config.port}")
    if not 0 <= config.auth_token <= MAX_AUTH_TOKEN:
        raise ConfigError(f"auth_token must be within 0-{MAX_AUTH_TOKEN}, got {config.auth_token}")
    if config.cache_max_age < 0:
        raise ConfigError("cache_max_age must not be negative")
    if config.override_window < 0:
        raise ConfigError("override_window must not be negative")
    if config.max_request_bytes < 3:
        raise ConfigError("max_request_bytes must hold at least a request header")


# TOML table -> (key, converter) mapping for ListenerConfig fields
_TOML_LAYOUT: dict[str, dict[str, Any]] = {
    "listener": {
        "port": int,
        "auth_token": int,
        "host": str,
        "max_request_bytes": int,
    },
    "library": {
        "library_db": Path,
        "cover_dir": Path,
        "cache_db": Path,
        "music_root": Path,
        "cache_max_age": int,
    },
    "playback": {
        "replay_threshold_ms": int,
        "override_window": float,
    },
}


def _parse_toml(data: dict[str, Any]) -> dict[str, Any]:
    """Flatten the TOML tables into ListenerConfig keyword arguments."""
    values: dict[str, Any] = {}
    for table, keys in _TOML_LAYOUT.items():
        section = data.get(table, {})
        if not isinstance(section, dict):
            raise ConfigError(f"[{table}] must be a table")
        for key, convert in keys.items():
            if key in section:
                try:
                    values[key] = convert(section[key])
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"invalid value for {table}.{key}: {section[key]!r}") from e
    return values


def load_config(
    config_path: Path | None = None,
    *,
    overrides: dict[str, Any] | None = None,
) -> ListenerConfig:
    """
    Load configuration from TOML.

    The packaged defaults are read first, then `config_path` (if given), then
    `overrides` (e.g. from the command line; None values are ignored).

    Raises:
        ConfigError: If a value is invalid.
        FileNotFoundError: If `config_path` does not exist.
    """
    values: dict[str, Any] = {}

    paths = [DEFAULT_CONFIG_PATH]
    if config_path is not None:
        paths.append(config_path)

    for path in paths:
        if path == DEFAULT_CONFIG_PATH and not path.exists():
            continue
        logger.debug("Loading config from %s", path)
        with path.open("rb") as f:
            values.update(_parse_toml(tomllib.load(f)))

    if overrides:
        known = {f.name for f in fields(ListenerConfig)}
        for key, value in overrides.items():
            if value is None:
                continue
            if key not in known:
                raise ConfigError(f"unknown configuration key: {key}")
            values[key] = value

    return ListenerConfig(**values)


class ConfigProvider:
    """
    Owner of the current configuration.

    Components never mutate configuration directly; they call `update()` or
    `reload()`, and interested parties subscribe to "config.changed" on the
    event bus.
    """

    def __init__(
        self,
        config: ListenerConfig | None = None,
        *,
        config_path: Path | None = None,
        overrides: dict[str, Any] | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._config = config if config is not None else ListenerConfig()
        self._config_path = config_path
        # Command-line values keep winning over the file on reload
        self._overrides = dict(overrides or {})
        self._bus = bus if bus is not None else event_bus

    @property
    def current(self) -> ListenerConfig:
        return self._config

    @property
    def port(self) -> int:
        return self._config.port

    @property
    def auth_token(self) -> int:
        return self._config.auth_token

    @property
    def bus(self) -> EventBus:
        return self._bus

    async def update(self, **changes: Any) -> list[str]:
        """
        Apply changes and announce every key whose value actually changed.

        Returns:
            The changed keys.

        Raises:
            ConfigError: If the resulting configuration is invalid. The current
                configuration stays untouched in that case.
        """
        try:
            new_config = replace(self._config, **changes)
        except TypeError as e:
            raise ConfigError(str(e)) from e
        return await self._swap(new_config)

    async def reload(self) -> list[str]:
        """Re-read the configuration file and announce differences."""
        new_config = load_config(self._config_path, overrides=self._overrides)
        return await self._swap(new_config)

    async def _swap(self, new_config: ListenerConfig) -> list[str]:
        old_config = self._config
        self._config = new_config

        changed: list[str] = []
        for f in fields(ListenerConfig):
            old_value = getattr(old_config, f.name)
            new_value = getattr(new_config, f.name)
            if old_value != new_value:
                changed.append(f.name)
                if f.name == "auth_token":
                    logger.info("Config auth_token changed")
                else:
                    logger.info("Config %s changed: %r -> %r", f.name, old_value, new_value)
                await self._bus.publish(
                    ConfigChangedEvent(key=f.name, old_value=old_value, new_value=new_value)
                )
        return changed
