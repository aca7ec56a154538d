"""
Remote client for the Remote Listener protocol.

Opens one connection per request, sends `[opcode][token u16][payload]` and
reads the reply until the server closes the connection. The decoders turn the
binary replies back into small value objects; they are used by the `ping`
command and by the integration tests.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from remotelistener.protocol.codec import read_string, read_u16, read_u32, write_string, write_u16, write_u32
from remotelistener.protocol.frames import Opcode
from remotelistener.protocol.handlers.playlist import (
    ADD_TRACK,
    LIST_PLAYLISTS,
    LIST_TRACKS,
    PLAY_TRACK,
    REMOVE_TRACK,
)
from remotelistener.protocol.handlers.status import PAUSED_BIT, PLAYING_BIT, REPEAT_MASK
from remotelistener.protocol.handlers.sync import SYNC_FETCH, SYNC_REBUILD, SYNC_TIMESTAMP

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
STATUS_SIZE = 12


class RemoteClientError(Exception):
    """Raised when a reply cannot be decoded."""


@dataclass(frozen=True)
class PlayerStatusReply:
    """Decoded 12-byte player status."""

    playing: bool
    paused: bool
    repeat: int
    shuffle: int
    volume: int
    position_ms: int
    change_flag: int
    track_id: int


@dataclass(frozen=True)
class SongInfoReply:
    duration_ms: int
    title: str
    artist: str
    album: str
    genre: str
    year: int
    cover_id: str


@dataclass(frozen=True)
class PlaylistEntry:
    track_count: int
    id: int
    name: str


@dataclass(frozen=True)
class PlaylistListing:
    active_id: int
    playlists: list[PlaylistEntry] = field(default_factory=list)


@dataclass(frozen=True)
class TrackListing:
    count: int
    start: int
    track_ids: list[int] = field(default_factory=list)


def decode_player_status(data: bytes) -> PlayerStatusReply:
    if len(data) < STATUS_SIZE:
        raise RemoteClientError(f"status reply too short ({len(data)} bytes)")
    flags = data[0]
    return PlayerStatusReply(
        playing=bool(flags & PLAYING_BIT),
        paused=bool(flags & PAUSED_BIT),
        repeat=(flags & REPEAT_MASK) >> 4,
        shuffle=flags & 0x0F,
        volume=data[1],
        position_ms=read_u32(data, 2),
        change_flag=read_u16(data, 6),
        track_id=read_u32(data, 8),
    )


def decode_song_info(data: bytes) -> SongInfoReply:
    try:
        duration = read_u32(data, 0)
        pos = 4
        texts: list[str] = []
        for _ in range(4):
            text, consumed = read_string(data, pos)
            texts.append(text)
            pos += consumed
        year = read_u16(data, pos)
        cover_id, _ = read_string(data, pos + 2)
    except Exception as e:
        raise RemoteClientError(f"malformed song info: {e}") from e

    title, artist, album, genre = texts
    return SongInfoReply(
        duration_ms=duration,
        title=title,
        artist=artist,
        album=album,
        genre=genre,
        year=year,
        cover_id=cover_id,
    )


def decode_playlists(data: bytes) -> PlaylistListing:
    try:
        active_id = read_u16(data, 0)
        count = read_u16(data, 2)
        pos = 4
        playlists: list[PlaylistEntry] = []
        for _ in range(count):
            track_count = read_u32(data, pos)
            playlist_id = read_u16(data, pos + 4)
            name, consumed = read_string(data, pos + 6)
            pos += 6 + consumed
            playlists.append(PlaylistEntry(track_count=track_count, id=playlist_id, name=name))
    except Exception as e:
        raise RemoteClientError(f"malformed playlist listing: {e}") from e
    return PlaylistListing(active_id=active_id, playlists=playlists)


def decode_track_listing(data: bytes) -> TrackListing:
    if len(data) < 12:
        raise RemoteClientError(f"track listing too short ({len(data)} bytes)")
    count = read_u32(data, 0)
    returned = read_u32(data, 4)
    start = read_u32(data, 8)
    if len(data) < 12 + 4 * returned:
        raise RemoteClientError("track listing truncated")
    ids = [read_u32(data, 12 + 4 * i) for i in range(returned)]
    return TrackListing(count=count, start=start, track_ids=ids)


class RemoteClient:
    """
    Asynchronous client; every call is a separate connection.

    Example:
        client = RemoteClient("127.0.0.1", 8484, token=1234)
        if await client.test():
            status = await client.player_status()
    """

    def __init__(
        self,
        host: str,
        port: int,
        token: int = 0,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.token = token
        self.timeout = timeout

    async def request(self, opcode: int, payload: bytes = b"") -> bytes:
        """
        Send one request and return the complete reply (b"" for no reply).

        Raises:
            OSError: If the connection fails.
            asyncio.TimeoutError: If the server does not answer in time.
        """
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(self.host, self.port),
            timeout=self.timeout,
        )
        try:
            writer.write(bytes((opcode & 0xFF,)) + write_u16(self.token) + payload)
            await writer.drain()
            data = await asyncio.wait_for(reader.read(), timeout=self.timeout)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

        logger.debug("Opcode %d: %d reply bytes", opcode, len(data))
        return data

    async def test(self) -> bool:
        """True if the server accepted the token."""
        return await self.request(Opcode.TEST) == b"\x01"

    async def player_status(
        self,
        *,
        play: int = 0,
        repeat: int = 0,
        shuffle: int = 0,
        volume: int = 0,
        seek_ms: int = 0,
    ) -> PlayerStatusReply:
        """
        Apply controls and read the status.

        Only as many control bytes as needed are sent; trailing zero controls
        are omitted.
        """
        fields_ = [
            bytes((((play & 0x0F) << 4) | (repeat & 0x0F),)),
            bytes((shuffle & 0x0F,)),
            bytes((volume & 0xFF,)),
            write_u32(seek_ms),
        ]
        used = 0
        if seek_ms:
            used = 4
        elif volume:
            used = 3
        elif shuffle:
            used = 2
        elif play or repeat:
            used = 1
        return decode_player_status(await self.request(Opcode.PLAYER_STATUS, b"".join(fields_[:used])))

    async def song_info(self) -> SongInfoReply:
        return decode_song_info(await self.request(Opcode.SONG_INFO))

    async def cover(self, cover_id: str = "") -> bytes | None:
        """Cover image bytes, or None when the server has none."""
        data = await self.request(Opcode.COVER, write_string(cover_id))
        if data in (b"", b"\x00"):
            return None
        return data

    async def sync_timestamp(self) -> int:
        data = await self.request(Opcode.SYNC_DATABASE, bytes((SYNC_TIMESTAMP,)))
        if len(data) < 4:
            raise RemoteClientError("timestamp reply too short")
        return read_u32(data, 0)

    async def fetch_database(self) -> bytes | None:
        data = await self.request(Opcode.SYNC_DATABASE, bytes((SYNC_FETCH,)))
        if data in (b"", b"\x00"):
            return None
        return data

    async def rebuild_database(self) -> bool:
        return await self.request(Opcode.SYNC_DATABASE, bytes((SYNC_REBUILD,))) == b"\x01"

    async def playlists(self) -> PlaylistListing:
        return decode_playlists(await self.request(Opcode.PLAYLIST, bytes((LIST_PLAYLISTS,))))

    async def playlist_tracks(
        self,
        playlist_id: int,
        *,
        max_return: int = 0,
        start: int = 0,
    ) -> TrackListing:
        payload = bytes((LIST_TRACKS,)) + write_u16(playlist_id) + write_u32(max_return) + write_u32(start)
        return decode_track_listing(await self.request(Opcode.PLAYLIST, payload))

    async def play_track(self, playlist_id: int, track_id: int) -> int:
        """0 unknown track, 1 played from the library, 2 played in the playlist."""
        payload = bytes((PLAY_TRACK,)) + write_u16(playlist_id) + write_u32(track_id)
        data = await self.request(Opcode.PLAYLIST, payload)
        return data[0] if data else 0

    async def add_track(self, playlist_id: int, track_id: int, *, allow_twice: bool = False) -> bool:
        payload = (
            bytes((ADD_TRACK, 1 if allow_twice else 0))
            + write_u16(playlist_id)
            + write_u32(track_id)
        )
        return await self.request(Opcode.PLAYLIST, payload) == b"\x01"

    async def remove_track(self, playlist_id: int, track_id: int) -> bool:
        payload = bytes((REMOVE_TRACK,)) + write_u16(playlist_id) + write_u32(track_id)
        return await self.request(Opcode.PLAYLIST, payload) == b"\x01"

    async def play(self, track_id: int) -> bool:
        """PlaylistControl: play a track in the active source (or the library)."""
        return await self.request(Opcode.PLAYLIST_CONTROL, b"\x01" + write_u32(track_id)) == b"\x01"
