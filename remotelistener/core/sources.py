"""
Track sources for Remote Listener.

A track source is anything the player can play from and the remote client can
list: the whole library, a user playlist imported from a playlist file, the
remote-control playlist and the play queue.

Design decisions:
- Sources hold ordered track ids, not track objects; the library resolves ids
- The remote-control playlist (id 1) and the play queue (id 2) are in-memory
  singletons and the only sources the remote client may modify
- All other sources get a 16-bit id hashed from name + key, so a client can
  keep using an id across restarts as long as the source keeps its name
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from remotelistener.core import NotFoundError
from remotelistener.core.events import EventBus, PlaylistChangedEvent, event_bus

if TYPE_CHECKING:
    from remotelistener.core.library import MusicLibrary

logger = logging.getLogger(__name__)

REMOTE_PLAYLIST_ID = 1
PLAY_QUEUE_ID = 2
RESERVED_IDS = frozenset({REMOTE_PLAYLIST_ID, PLAY_QUEUE_ID})

REMOTE_PLAYLIST_NAME = "Remote Control"
PLAY_QUEUE_NAME = "Play Queue"
LIBRARY_NAME = "Music"
LIBRARY_KEY = "library"


class SourceKind(Enum):
    """What a track source is backed by."""

    LIBRARY = "library"
    PLAYLIST = "playlist"
    REMOTE = "remote"
    QUEUE = "queue"


def hashed_source_id(name: str, key: str) -> int:
    """
    16-bit id for a non-reserved source: the first two bytes (little-endian)
    of md5(name + key). Values 0-2 are shifted past the reserved ids.
    """
    digest = hashlib.md5((name + key).encode("utf-8")).digest()
    value = digest[0] | (digest[1] << 8)
    if value <= PLAY_QUEUE_ID:
        value += 3
    return value


@dataclass
class TrackSource:
    """
    An ordered list of track ids with a name and a protocol id.

    `key` identifies the source uniquely (the library key, or
    "playlist:<db id>" for user playlists).
    """

    key: str
    name: str
    kind: SourceKind
    track_ids: list[int] = field(default_factory=list)
    id: int = field(init=False)

    def __post_init__(self) -> None:
        if self.kind is SourceKind.REMOTE:
            self.id = REMOTE_PLAYLIST_ID
        elif self.kind is SourceKind.QUEUE:
            self.id = PLAY_QUEUE_ID
        else:
            self.id = hashed_source_id(self.name, self.key)

    def __len__(self) -> int:
        return len(self.track_ids)

    @property
    def count(self) -> int:
        return len(self.track_ids)

    @property
    def is_reserved(self) -> bool:
        return self.id in RESERVED_IDS

    def __contains__(self, track_id: int) -> bool:
        return track_id in self.track_ids

    def index_of(self, track_id: int | None) -> int:
        """Index of the first occurrence of `track_id`, or -1."""
        if track_id is None:
            return -1
        try:
            return self.track_ids.index(track_id)
        except ValueError:
            return -1

    def add(self, track_id: int, *, allow_duplicates: bool = False) -> bool:
        """Append a track. Returns False if it is present and duplicates are not allowed."""
        if not allow_duplicates and track_id in self.track_ids:
            return False
        self.track_ids.append(track_id)
        return True

    def remove(self, track_id: int) -> bool:
        """Remove the first occurrence of `track_id`. Returns False if it is not present."""
        try:
            self.track_ids.remove(track_id)
        except ValueError:
            return False
        return True


class SourceManager:
    """
    Registry of all track sources, addressable by protocol id.

    The reserved playlists are created once and survive library refreshes;
    the library source and user playlists are rebuilt from the database.
    """

    def __init__(self, *, bus: EventBus | None = None) -> None:
        self._bus = bus if bus is not None else event_bus
        self._remote = TrackSource(key="remote", name=REMOTE_PLAYLIST_NAME, kind=SourceKind.REMOTE)
        self._queue = TrackSource(key="queue", name=PLAY_QUEUE_NAME, kind=SourceKind.QUEUE)
        self._library = TrackSource(key=LIBRARY_KEY, name=LIBRARY_NAME, kind=SourceKind.LIBRARY)
        self._playlists: list[TrackSource] = []

    @property
    def remote_playlist(self) -> TrackSource:
        return self._remote

    @property
    def play_queue(self) -> TrackSource:
        return self._queue

    @property
    def library(self) -> TrackSource:
        return self._library

    def all_sources(self) -> list[TrackSource]:
        return [self._library, *self._playlists, self._remote, self._queue]

    def get(self, source_id: int) -> TrackSource | None:
        if source_id == REMOTE_PLAYLIST_ID:
            return self._remote
        if source_id == PLAY_QUEUE_ID:
            return self._queue
        for source in self.all_sources():
            if source.id == source_id:
                return source
        return None

    def require(self, source_id: int) -> TrackSource:
        """
        Look up a source by protocol id.

        Raises:
            NotFoundError: If no source has that id.
        """
        source = self.get(source_id)
        if source is None:
            raise NotFoundError(f"playlist {source_id} not found")
        return source

    async def refresh_from_library(self, library: MusicLibrary) -> None:
        """Rebuild the library source and the user playlists after a scan."""
        self._library = TrackSource(
            key=LIBRARY_KEY,
            name=LIBRARY_NAME,
            kind=SourceKind.LIBRARY,
            track_ids=await library.library_track_ids(),
        )

        playlists: list[TrackSource] = []
        seen: set[int] = {self._library.id}
        for row in await library.playlists():
            source = TrackSource(
                key=f"playlist:{row.id}",
                name=row.name,
                kind=SourceKind.PLAYLIST,
                track_ids=await library.playlist_track_ids(row.id),
            )
            if source.id in seen:
                logger.warning(
                    "Playlist %r collides with another source id (%d); skipping", row.name, source.id
                )
                continue
            seen.add(source.id)
            playlists.append(source)
        self._playlists = playlists

        # Reserved playlists may reference tracks removed by the scan
        for reserved in (self._remote, self._queue):
            reserved.track_ids[:] = [t for t in reserved.track_ids if library.has_track(t)]

        logger.info(
            "Sources refreshed: %d library tracks, %d playlists",
            self._library.count,
            len(self._playlists),
        )

    async def add_track(self, source_id: int, track_id: int, *, allow_duplicates: bool) -> bool:
        """
        Add a track to a reserved playlist. Other sources are read-only.

        Raises:
            NotFoundError: If no source has that id.
        """
        source = self.require(source_id)
        if not source.is_reserved:
            return False
        if not source.add(track_id, allow_duplicates=allow_duplicates):
            return False
        logger.debug("Added track %d to %s (%d tracks)", track_id, source.name, source.count)
        await self._bus.publish(
            PlaylistChangedEvent(
                playlist_id=source.id, action="add", track_id=track_id, count=source.count
            )
        )
        return True

    async def remove_track(self, source_id: int, track_id: int) -> bool:
        """
        Remove a track from a reserved playlist. Other sources are read-only.

        Raises:
            NotFoundError: If no source has that id.
        """
        source = self.require(source_id)
        if not source.is_reserved:
            return False
        if not source.remove(track_id):
            return False
        logger.debug("Removed track %d from %s (%d tracks)", track_id, source.name, source.count)
        await self._bus.publish(
            PlaylistChangedEvent(
                playlist_id=source.id, action="remove", track_id=track_id, count=source.count
            )
        )
        return True
