"""
Tests for the remote client decoders and an end-to-end run against the server.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from remotelistener.client import (
    RemoteClient,
    RemoteClientError,
    decode_player_status,
    decode_playlists,
    decode_song_info,
    decode_track_listing,
)
from remotelistener.config import ConfigProvider, ListenerConfig
from remotelistener.core.events import EventBus
from remotelistener.protocol.codec import write_string, write_u16, write_u32
from remotelistener.server import RemoteListenerServer

from conftest import free_port

TOKEN = 2024


class TestDecoders:
    def test_player_status(self) -> None:
        data = bytes((0x40 | 0x30 | 0x02, 70)) + write_u32(1234) + write_u16(9) + write_u32(42)

        status = decode_player_status(data)

        assert status.playing and not status.paused
        assert (status.repeat, status.shuffle, status.volume) == (3, 2, 70)
        assert (status.position_ms, status.change_flag, status.track_id) == (1234, 9, 42)

    def test_player_status_too_short(self) -> None:
        with pytest.raises(RemoteClientError):
            decode_player_status(b"\x00" * 11)

    def test_song_info(self) -> None:
        data = (
            write_u32(1000)
            + write_string("T")
            + write_string("Ar")
            + write_string("")
            + write_string("G")
            + write_u16(2020)
            + write_string("album-1")
        )

        info = decode_song_info(data)

        assert (info.duration_ms, info.title, info.artist, info.album, info.genre) == (
            1000,
            "T",
            "Ar",
            "",
            "G",
        )
        assert (info.year, info.cover_id) == (2020, "album-1")

    def test_song_info_malformed(self) -> None:
        with pytest.raises(RemoteClientError):
            decode_song_info(b"\x01\x02")

    def test_playlists(self) -> None:
        data = (
            write_u16(7)
            + write_u16(2)
            + write_u32(3)
            + write_u16(7)
            + write_string("Mix")
            + write_u32(0)
            + write_u16(1)
            + write_string("Remote Control")
        )

        listing = decode_playlists(data)

        assert listing.active_id == 7
        assert [(p.track_count, p.id, p.name) for p in listing.playlists] == [
            (3, 7, "Mix"),
            (0, 1, "Remote Control"),
        ]

    def test_track_listing(self) -> None:
        data = write_u32(10) + write_u32(2) + write_u32(4) + write_u32(5) + write_u32(0)

        listing = decode_track_listing(data)

        assert (listing.count, listing.start, listing.track_ids) == (10, 4, [5, 0])

    def test_track_listing_truncated(self) -> None:
        with pytest.raises(RemoteClientError):
            decode_track_listing(write_u32(10) + write_u32(2) + write_u32(0) + write_u32(5))


class TestEndToEnd:
    @pytest.fixture
    async def server(self, tmp_path: Path, bus: EventBus):
        config = ListenerConfig(
            port=free_port(),
            host="127.0.0.1",
            auth_token=TOKEN,
            library_db=tmp_path / "library.sqlite3",
            cover_dir=tmp_path / "covers",
            cache_db=tmp_path / "cache" / "compressed.sqlite3",
        )
        server = RemoteListenerServer(ConfigProvider(config, bus=bus))
        await server.start()
        yield server
        await server.stop()

    @pytest.fixture
    def client(self, server: RemoteListenerServer) -> RemoteClient:
        return RemoteClient("127.0.0.1", server.port, TOKEN)

    async def test_session(self, server: RemoteListenerServer, client: RemoteClient) -> None:
        assert server.is_running
        assert await client.test()

        status = await client.player_status(volume=103)
        assert status.volume == 60
        assert not status.playing

        info = await client.song_info()
        assert info.title == "" and info.duration_ms == 0

        listing = await client.playlists()
        assert [p.name for p in listing.playlists] == ["Remote Control"]

        assert await client.cover() is None
        assert not await client.add_track(1, 1)
        assert await client.play_track(1, 1) == 0

    async def test_database_sync(self, client: RemoteClient) -> None:
        timestamp = await client.sync_timestamp()
        assert timestamp > 0

        data = await client.fetch_database()
        assert data is not None and data.startswith(b"SQLite format 3")

        assert await client.rebuild_database()

    async def test_stop_is_idempotent(self, server: RemoteListenerServer) -> None:
        await server.stop()
        await server.stop()
        assert not server.is_running
