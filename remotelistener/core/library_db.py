"""
Music library database schema + access layer.

Goals:
- Small and testable: tracks, artists, albums and imported playlists.
- SQLite + aiosqlite, async/await friendly.
- Schema evolves via `PRAGMA user_version` migrations.

Note:
- Models/DTOs and normalization helpers live in `remotelistener.core.db.models`
- Schema/migrations live in `remotelistener.core.db.schema`
- Query functions live in `remotelistener.core.db.queries_*` modules
- `LibraryDb` remains the public facade used by the rest of the codebase
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

import aiosqlite

from remotelistener.core.db import queries_playlists, queries_tracks
from remotelistener.core.db.models import (
    PlaylistRow,
    TrackRow,
    UpsertTrack,
    normalize_int,
    normalize_text,
)
from remotelistener.core.db.schema import ensure_schema as ensure_schema_sql


class LibraryDb:
    """
    Async access layer for the music library DB.

    Usage:
        db = LibraryDb("remotelistener-library.sqlite3")
        await db.open()
        await db.ensure_schema()
        ... queries ...
        await db.close()

    Notes:
    - The cached database builder attaches this file read-only, so the DB must
      live on disk (":memory:" works for everything except the cache).
    - Connections are not pooled; we keep a single connection.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute("PRAGMA synchronous = NORMAL;")
        await self._conn.execute("PRAGMA temp_store = MEMORY;")

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("LibraryDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create or migrate schema to current version."""
        conn = self._require_conn()
        await ensure_schema_sql(conn)

    async def commit(self) -> None:
        conn = self._require_conn()
        await conn.commit()

    # ===========================================================================
    # Tracks
    # ===========================================================================

    async def upsert_track(self, track: UpsertTrack) -> int:
        """
        Insert or update a track by its path.
        Also creates/links artist and album records as needed.
        Returns the track id.
        """
        conn = self._require_conn()

        path = str(track.path)
        title = normalize_text(track.title)
        artist = normalize_text(track.artist)
        album = normalize_text(track.album)
        genre = normalize_text(track.genre)
        year = normalize_int(track.year)

        artist_id: int | None = None
        if artist:
            artist_id = await self._ensure_artist(artist)

        album_id: int | None = None
        if album:
            album_id = await self._ensure_album(album, artist_id, year, track.artwork_id)

        await conn.execute(
            """
            INSERT INTO tracks(
                path, title, artist_id, album_id, genre,
                track_no, year, duration_ms, file_size, mtime_ns
            ) VALUES (
                :path, :title, :artist_id, :album_id, :genre,
                :track_no, :year, :duration_ms, :file_size, :mtime_ns
            )
            ON CONFLICT(path) DO UPDATE SET
                title       = excluded.title,
                artist_id   = excluded.artist_id,
                album_id    = excluded.album_id,
                genre       = excluded.genre,
                track_no    = excluded.track_no,
                year        = excluded.year,
                duration_ms = excluded.duration_ms,
                file_size   = excluded.file_size,
                mtime_ns    = excluded.mtime_ns
            """,
            {
                "path": path,
                "title": title,
                "artist_id": artist_id,
                "album_id": album_id,
                "genre": genre,
                "track_no": normalize_int(track.track_no),
                "year": year,
                "duration_ms": normalize_int(track.duration_ms),
                "file_size": normalize_int(track.file_size),
                "mtime_ns": normalize_int(track.mtime_ns),
            },
        )

        cursor = await conn.execute("SELECT id FROM tracks WHERE path = ?;", (path,))
        row = await cursor.fetchone()
        if row is None:
            raise RuntimeError("Upsert failed: track row not found after insert/update.")
        return int(row["id"])

    async def _ensure_artist(self, name: str) -> int:
        """Get or create an artist by name, return ID."""
        conn = self._require_conn()
        await conn.execute("INSERT OR IGNORE INTO artists (name) VALUES (?);", (name,))
        cursor = await conn.execute("SELECT id FROM artists WHERE name = ?;", (name,))
        row = await cursor.fetchone()
        return int(row["id"])

    async def _ensure_album(
        self,
        title: str,
        artist_id: int | None,
        year: int | None,
        artwork_id: str | None,
    ) -> int:
        """Get or create an album by title + artist_id, return ID."""
        conn = self._require_conn()
        # UNIQUE(title, artist_id) does not cover NULL artist ids
        if artist_id is not None:
            lookup = ("SELECT id FROM albums WHERE title = ? AND artist_id = ?;", (title, artist_id))
        else:
            lookup = ("SELECT id FROM albums WHERE title = ? AND artist_id IS NULL;", (title,))

        cursor = await conn.execute(*lookup)
        row = await cursor.fetchone()
        if row is not None:
            album_id = int(row["id"])
            if artwork_id:
                await conn.execute(
                    "UPDATE albums SET artwork_id = ? WHERE id = ? AND artwork_id IS NULL;",
                    (artwork_id, album_id),
                )
            return album_id

        await conn.execute(
            "INSERT INTO albums (title, artist_id, year, artwork_id) VALUES (?, ?, ?, ?);",
            (title, artist_id, year, artwork_id),
        )
        cursor = await conn.execute(*lookup)
        row = await cursor.fetchone()
        return int(row["id"])

    async def upsert_tracks(self, tracks: Iterable[UpsertTrack]) -> int:
        """Upsert many tracks and commit once. Returns the number of tracks written."""
        count = 0
        for track in tracks:
            await self.upsert_track(track)
            count += 1
        await self.commit()
        return count

    async def get_track_by_id(self, track_id: int) -> TrackRow | None:
        return await queries_tracks.get_track_by_id(self._require_conn(), track_id)

    async def get_track_by_path(self, path: str) -> TrackRow | None:
        return await queries_tracks.get_track_by_path(self._require_conn(), path)

    async def list_track_ids(self) -> list[int]:
        return await queries_tracks.list_track_ids(self._require_conn())

    async def count_tracks(self) -> int:
        return await queries_tracks.count_tracks(self._require_conn())

    async def delete_tracks_not_in(self, paths: set[str]) -> int:
        return await queries_tracks.delete_tracks_not_in(self._require_conn(), paths)

    async def cleanup_orphans(self) -> dict[str, int]:
        """Remove albums and artists no track refers to any more."""
        conn = self._require_conn()
        cursor = await conn.execute(
            "DELETE FROM albums WHERE id NOT IN (SELECT album_id FROM tracks WHERE album_id IS NOT NULL);"
        )
        albums_deleted = cursor.rowcount
        cursor = await conn.execute(
            """
            DELETE FROM artists
            WHERE id NOT IN (SELECT artist_id FROM tracks WHERE artist_id IS NOT NULL)
              AND id NOT IN (SELECT artist_id FROM albums WHERE artist_id IS NOT NULL);
            """
        )
        artists_deleted = cursor.rowcount
        return {"albums": max(albums_deleted, 0), "artists": max(artists_deleted, 0)}

    # ===========================================================================
    # Playlists
    # ===========================================================================

    async def replace_playlist(self, name: str, track_ids: Sequence[int]) -> int:
        return await queries_playlists.replace_playlist(self._require_conn(), name, track_ids)

    async def list_playlists(self) -> list[PlaylistRow]:
        return await queries_playlists.list_playlists(self._require_conn())

    async def get_playlist_track_ids(self, playlist_id: int) -> list[int]:
        return await queries_playlists.get_playlist_track_ids(self._require_conn(), playlist_id)

    async def delete_playlists_not_in(self, names: set[str]) -> int:
        return await queries_playlists.delete_playlists_not_in(self._require_conn(), names)
