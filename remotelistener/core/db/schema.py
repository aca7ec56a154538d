"""
Database schema + migrations for the library DB.

Design notes:
- We use SQLite `PRAGMA user_version` as the schema version.
- Migrations are forward-only (no downgrade support).
- Keep migrations small and explicit; for huge refactors prefer a new DB.
"""

from __future__ import annotations

from typing import Final

import aiosqlite

# Bump when you change the schema and add a migration in `migrate()`.
SCHEMA_VERSION: Final[int] = 2


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Create or migrate schema to current version.

    This function assumes:
    - `conn` is an open aiosqlite connection
    - foreign_keys pragma is enabled by the caller
    """
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
        )

    if current == SCHEMA_VERSION:
        return

    await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)
    await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    await conn.commit()


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """Perform forward-only migrations."""
    # v0 -> v1: tracks with normalized artists/albums
    if from_version == 0 and to_version >= 1:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS artists (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS albums (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                artist_id INTEGER REFERENCES artists(id) ON DELETE SET NULL,
                year INTEGER,
                artwork_id TEXT,
                UNIQUE(title, artist_id)
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tracks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                path TEXT NOT NULL UNIQUE,

                title TEXT,
                artist_id INTEGER REFERENCES artists(id) ON DELETE SET NULL,
                album_id INTEGER REFERENCES albums(id) ON DELETE SET NULL,
                genre TEXT,

                track_no INTEGER,
                year INTEGER,
                duration_ms INTEGER,

                file_size INTEGER,
                mtime_ns INTEGER
            )
            """
        )

        await conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_artist ON tracks(artist_id);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_album ON tracks(album_id);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_albums_artist ON albums(artist_id);")
        await conn.commit()
        from_version = 1

    # v1 -> v2: user playlists (imported from .m3u files)
    if from_version == 1 and to_version >= 2:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlists (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlist_entries (
                playlist_id INTEGER NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                track_id INTEGER NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
                PRIMARY KEY (playlist_id, position)
            )
            """
        )
        await conn.commit()
        from_version = 2
