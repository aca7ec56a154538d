"""
Tests for configuration loading and change notification.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from remotelistener.config import (
    DEFAULT_PORT,
    ConfigError,
    ConfigProvider,
    ListenerConfig,
    load_config,
)
from remotelistener.core.events import ConfigChangedEvent, EventBus


def write_toml(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestListenerConfig:
    def test_defaults(self) -> None:
        config = ListenerConfig()
        assert config.port == DEFAULT_PORT
        assert config.auth_token == 0
        assert config.replay_threshold_ms == 15_000
        assert config.override_window == 1.0

    @pytest.mark.parametrize("port", [0, 1023, 49152, 70000])
    def test_port_out_of_range(self, port: int) -> None:
        with pytest.raises(ConfigError):
            ListenerConfig(port=port)

    @pytest.mark.parametrize("token", [-1, 65536])
    def test_token_out_of_range(self, token: int) -> None:
        with pytest.raises(ConfigError):
            ListenerConfig(auth_token=token)

    def test_boundaries_accepted(self) -> None:
        assert ListenerConfig(port=1024, auth_token=65535).port == 1024
        assert ListenerConfig(port=49151).port == 49151


class TestLoadConfig:
    def test_packaged_defaults(self) -> None:
        config = load_config()
        assert config.port == 8484
        assert config.cache_max_age == 86400

    def test_user_file_overrides_defaults(self, tmp_path: Path) -> None:
        path = write_toml(
            tmp_path / "remote.toml",
            """
            [listener]
            port = 9000
            auth_token = 31337

            [library]
            music_root = "/srv/music"

            [playback]
            override_window = 0.5
            """,
        )

        config = load_config(path)

        assert config.port == 9000
        assert config.auth_token == 31337
        assert config.music_root == Path("/srv/music")
        assert config.override_window == 0.5

    def test_overrides_win(self, tmp_path: Path) -> None:
        path = write_toml(tmp_path / "remote.toml", "[listener]\nport = 9000\n")

        config = load_config(path, overrides={"port": 9100, "host": None})

        assert config.port == 9100
        assert config.host == "0.0.0.0"

    def test_unknown_override(self) -> None:
        with pytest.raises(ConfigError):
            load_config(overrides={"colour": "blue"})

    def test_invalid_value(self, tmp_path: Path) -> None:
        path = write_toml(tmp_path / "remote.toml", '[listener]\nport = "high"\n')
        with pytest.raises(ConfigError):
            load_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")


class TestConfigProvider:
    async def test_update_publishes_changed_keys(self, bus: EventBus) -> None:
        events: list[ConfigChangedEvent] = []

        async def on_change(event: ConfigChangedEvent) -> None:
            events.append(event)

        await bus.subscribe("config.changed", on_change)
        provider = ConfigProvider(ListenerConfig(), bus=bus)

        changed = await provider.update(port=9001, auth_token=0)

        assert changed == ["port"]
        assert provider.port == 9001
        assert [(e.key, e.old_value, e.new_value) for e in events] == [("port", 8484, 9001)]

    async def test_invalid_update_keeps_current(self, bus: EventBus) -> None:
        provider = ConfigProvider(ListenerConfig(), bus=bus)

        with pytest.raises(ConfigError):
            await provider.update(port=80)
        with pytest.raises(ConfigError):
            await provider.update(no_such_key=1)

        assert provider.port == 8484

    async def test_wildcard_subscription(self, bus: EventBus) -> None:
        seen: list[str] = []

        async def on_any(event: ConfigChangedEvent) -> None:
            seen.append(event.key)

        await bus.subscribe("config.*", on_any)
        provider = ConfigProvider(ListenerConfig(), bus=bus)

        await provider.update(auth_token=5)

        assert seen == ["auth_token"]
        assert provider.auth_token == 5

    async def test_reload_keeps_overrides(self, tmp_path: Path, bus: EventBus) -> None:
        path = write_toml(tmp_path / "remote.toml", "[listener]\nport = 9000\nauth_token = 1\n")
        overrides = {"port": 9500}
        provider = ConfigProvider(
            load_config(path, overrides=overrides),
            config_path=path,
            overrides=overrides,
            bus=bus,
        )

        write_toml(path, "[listener]\nport = 9000\nauth_token = 2\n")
        changed = await provider.reload()

        assert changed == ["auth_token"]
        assert provider.port == 9500
        assert provider.auth_token == 2
