"""
Playlist-related DB queries.

User playlists are imported from playlist files during a scan and are read-only
through the remote protocol; only the in-memory reserved playlists are mutable.
"""

from __future__ import annotations

from typing import Sequence

import aiosqlite

from remotelistener.core.db.models import PlaylistRow


async def list_playlists(conn: aiosqlite.Connection) -> list[PlaylistRow]:
    cursor = await conn.execute(
        """
        SELECT p.id, p.name, COUNT(e.track_id) AS track_count
        FROM playlists p
        LEFT JOIN playlist_entries e ON e.playlist_id = p.id
        GROUP BY p.id
        ORDER BY p.name COLLATE NOCASE;
        """
    )
    rows = await cursor.fetchall()
    return [
        PlaylistRow(id=int(r["id"]), name=str(r["name"]), track_count=int(r["track_count"]))
        for r in rows
    ]


async def get_playlist_track_ids(conn: aiosqlite.Connection, playlist_id: int) -> list[int]:
    cursor = await conn.execute(
        """
        SELECT track_id FROM playlist_entries
        WHERE playlist_id = ?
        ORDER BY position;
        """,
        (int(playlist_id),),
    )
    rows = await cursor.fetchall()
    return [int(r["track_id"]) for r in rows]


async def replace_playlist(
    conn: aiosqlite.Connection,
    name: str,
    track_ids: Sequence[int],
) -> int:
    """
    Create the playlist `name` or replace its entries.

    Returns:
        The playlist id.
    """
    await conn.execute("INSERT OR IGNORE INTO playlists (name) VALUES (?);", (name,))
    cursor = await conn.execute("SELECT id FROM playlists WHERE name = ?;", (name,))
    row = await cursor.fetchone()
    if row is None:
        raise RuntimeError(f"Playlist {name!r} not found after insert.")
    playlist_id = int(row["id"])

    await conn.execute("DELETE FROM playlist_entries WHERE playlist_id = ?;", (playlist_id,))
    await conn.executemany(
        "INSERT INTO playlist_entries (playlist_id, position, track_id) VALUES (?, ?, ?);",
        [(playlist_id, position, int(track_id)) for position, track_id in enumerate(track_ids)],
    )
    return playlist_id


async def delete_playlists_not_in(conn: aiosqlite.Connection, names: set[str]) -> int:
    cursor = await conn.execute("SELECT id, name FROM playlists;")
    rows = await cursor.fetchall()
    stale = [int(r["id"]) for r in rows if str(r["name"]) not in names]
    for playlist_id in stale:
        await conn.execute("DELETE FROM playlists WHERE id = ?;", (playlist_id,))
    return len(stale)
