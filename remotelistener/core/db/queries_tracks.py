"""
Track-related DB queries.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized dataclasses.
- These functions assume `conn.row_factory = aiosqlite.Row`.
"""

from __future__ import annotations

import aiosqlite

from remotelistener.core.db.models import TrackRow

# Joined projection shared by all track lookups
_TRACK_SELECT = """
    SELECT
        t.id, t.path, t.title, t.genre, t.track_no, t.year,
        t.duration_ms, t.file_size, t.mtime_ns,
        t.artist_id, t.album_id,
        ar.name AS artist,
        al.title AS album,
        al.artwork_id AS artwork_id
    FROM tracks t
    LEFT JOIN artists ar ON ar.id = t.artist_id
    LEFT JOIN albums al ON al.id = t.album_id
"""

# Library order: artist, album, track number, title
_LIBRARY_ORDER = """
    ORDER BY
        ar.name COLLATE NOCASE,
        al.title COLLATE NOCASE,
        t.track_no,
        t.title COLLATE NOCASE,
        t.id
"""


def _row_to_track(row: aiosqlite.Row) -> TrackRow:
    """Convert an aiosqlite Row to a TrackRow dataclass."""
    return TrackRow(
        id=int(row["id"]),
        path=str(row["path"]),
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        genre=row["genre"],
        track_no=row["track_no"],
        year=row["year"],
        duration_ms=row["duration_ms"],
        file_size=row["file_size"],
        mtime_ns=row["mtime_ns"],
        artist_id=row["artist_id"],
        album_id=row["album_id"],
        artwork_id=row["artwork_id"],
    )


async def get_track_by_id(conn: aiosqlite.Connection, track_id: int) -> TrackRow | None:
    cursor = await conn.execute(_TRACK_SELECT + " WHERE t.id = ?;", (int(track_id),))
    row = await cursor.fetchone()
    return _row_to_track(row) if row is not None else None


async def get_track_by_path(conn: aiosqlite.Connection, path: str) -> TrackRow | None:
    cursor = await conn.execute(_TRACK_SELECT + " WHERE t.path = ?;", (str(path),))
    row = await cursor.fetchone()
    return _row_to_track(row) if row is not None else None


async def list_track_ids(conn: aiosqlite.Connection) -> list[int]:
    """All track ids in library order."""
    cursor = await conn.execute(
        """
        SELECT t.id
        FROM tracks t
        LEFT JOIN artists ar ON ar.id = t.artist_id
        LEFT JOIN albums al ON al.id = t.album_id
        """
        + _LIBRARY_ORDER
        + ";"
    )
    rows = await cursor.fetchall()
    return [int(r["id"]) for r in rows]


async def count_tracks(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM tracks;")
    row = await cursor.fetchone()
    return int(row["c"]) if row is not None else 0


async def delete_tracks_not_in(conn: aiosqlite.Connection, paths: set[str]) -> int:
    """
    Remove tracks whose path is not in `paths` (files that vanished since the last scan).

    Returns:
        Number of deleted tracks.
    """
    cursor = await conn.execute("SELECT id, path FROM tracks;")
    rows = await cursor.fetchall()
    stale = [int(r["id"]) for r in rows if str(r["path"]) not in paths]
    for track_id in stale:
        await conn.execute("DELETE FROM tracks WHERE id = ?;", (track_id,))
    return len(stale)
