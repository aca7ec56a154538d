"""
Reduced copy of the library database for client synchronization.

The remote client downloads the whole track database and queries it locally.
To keep the transfer small, `DatabaseCache` writes a separate SQLite file that
holds only the columns the client reads:

    tracks(_id, artistId, albumId, title, trackNumber, duration, year, genre)
    artists(_id, name)
    albums(_id, artistId, title, artId)

The copy is rebuilt on demand when it is older than `max_age` seconds.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

import aiosqlite

from remotelistener.core.events import DatabaseCacheEvent, EventBus, event_bus

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = 24 * 60 * 60

_CACHE_SCHEMA = (
    """
    CREATE TABLE tracks (
        _id INTEGER PRIMARY KEY,
        artistId INTEGER,
        albumId INTEGER,
        title TEXT,
        trackNumber INTEGER,
        duration INTEGER,
        year INTEGER,
        genre TEXT
    )
    """,
    """
    CREATE TABLE artists (
        _id INTEGER PRIMARY KEY,
        name TEXT
    )
    """,
    """
    CREATE TABLE albums (
        _id INTEGER PRIMARY KEY,
        artistId INTEGER,
        title TEXT,
        artId TEXT
    )
    """,
)

_CACHE_COPY = (
    """
    INSERT INTO tracks (_id, artistId, albumId, title, trackNumber, duration, year, genre)
    SELECT id, artist_id, album_id, title, track_no, duration_ms, year, genre
    FROM src.tracks
    """,
    "INSERT INTO artists (_id, name) SELECT id, name FROM src.artists",
    """
    INSERT INTO albums (_id, artistId, title, artId)
    SELECT id, artist_id, title, artwork_id
    FROM src.albums
    """,
)


class DatabaseCache:
    """
    Builds and serves the reduced database copy.

    Builds are serialized; a request arriving during a build waits for it and
    then sees the fresh copy.
    """

    def __init__(
        self,
        source_db: Path,
        cache_db: Path,
        *,
        max_age: int = DEFAULT_MAX_AGE,
        bus: EventBus | None = None,
    ) -> None:
        self._source_db = Path(source_db)
        self._cache_db = Path(cache_db)
        self._max_age = max_age
        self._bus = bus if bus is not None else event_bus
        self._lock = asyncio.Lock()
        self._timestamp = 0
        self._restore_timestamp()

    @property
    def path(self) -> Path:
        return self._cache_db

    @property
    def timestamp(self) -> int:
        """Unix time of the last successful build, 0 if there is no cache file."""
        if not self._cache_db.is_file():
            return 0
        return self._timestamp

    @property
    def max_age(self) -> int:
        return self._max_age

    @max_age.setter
    def max_age(self, value: int) -> None:
        self._max_age = value

    def exists(self) -> bool:
        return self._cache_db.is_file()

    def is_stale(self, now: float | None = None) -> bool:
        if not self.exists():
            return True
        now = time.time() if now is None else now
        return now - self._timestamp >= self._max_age

    def _restore_timestamp(self) -> None:
        """Pick up the build time of a cache file left from a previous run."""
        try:
            self._timestamp = int(self._cache_db.stat().st_mtime)
        except FileNotFoundError:
            self._timestamp = 0

    async def ensure_fresh(self) -> bool:
        """
        Rebuild the copy if it is missing or older than `max_age`.

        Returns:
            True if a usable copy exists afterwards.
        """
        async with self._lock:
            if not self.is_stale():
                return True
            return await self._build()

    async def rebuild(self) -> bool:
        """Rebuild the copy unconditionally."""
        async with self._lock:
            return await self._build()

    async def read(self) -> bytes | None:
        """The raw bytes of the copy, or None if there is none."""
        async with self._lock:
            if not self.exists():
                return None
            try:
                return await asyncio.to_thread(self._cache_db.read_bytes)
            except FileNotFoundError:
                return None

    async def _build(self) -> bool:
        if not self._source_db.is_file():
            logger.warning("Cannot build database cache: %s does not exist", self._source_db)
            await self._bus.publish(DatabaseCacheEvent(status="failed"))
            return False

        self._cache_db.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._cache_db.with_name(self._cache_db.name + ".tmp")
        started = time.monotonic()
        try:
            tmp_path.unlink(missing_ok=True)
            async with aiosqlite.connect(tmp_path) as conn:
                await conn.execute("ATTACH DATABASE ? AS src;", (str(self._source_db),))
                for statement in _CACHE_SCHEMA:
                    await conn.execute(statement)
                for statement in _CACHE_COPY:
                    await conn.execute(statement)
                await conn.commit()
                await conn.execute("DETACH DATABASE src;")
                await conn.execute("VACUUM;")
            tmp_path.replace(self._cache_db)
        except Exception:
            logger.exception("Failed to build database cache from %s", self._source_db)
            tmp_path.unlink(missing_ok=True)
            self._cache_db.unlink(missing_ok=True)
            self._timestamp = 0
            await self._bus.publish(DatabaseCacheEvent(status="failed"))
            return False

        self._timestamp = int(time.time())
        size = self._cache_db.stat().st_size
        logger.info(
            "Database cache rebuilt: %s (%d bytes, %.2fs)",
            self._cache_db,
            size,
            time.monotonic() - started,
        )
        await self._bus.publish(
            DatabaseCacheEvent(status="rebuilt", timestamp=self._timestamp, size=size)
        )
        return True
