"""
DB models (DTOs) and small normalization helpers.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TrackRow:
    """
    Track record joined with its artist and album.

    Notes:
    - `path` is the stable unique identifier for a local file.
    - `artwork_id` comes from the album row.
    """

    id: int
    path: str
    title: str | None
    artist: str | None
    album: str | None
    genre: str | None
    track_no: int | None
    year: int | None
    duration_ms: int | None
    file_size: int | None
    mtime_ns: int | None
    artist_id: int | None = None
    album_id: int | None = None
    artwork_id: str | None = None


@dataclass(frozen=True, slots=True)
class PlaylistRow:
    """User playlist as stored in SQLite."""

    id: int
    name: str
    track_count: int


@dataclass(frozen=True, slots=True)
class UpsertTrack:
    """
    Input record used by the scanner.

    `path` is required and must identify the same file across scans.
    `artwork_id` is stored on the album row.
    """

    path: str
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    track_no: int | None = None
    year: int | None = None
    duration_ms: int | None = None
    file_size: int | None = None
    mtime_ns: int | None = None
    artwork_id: str | None = None


def normalize_text(value: str | None) -> str | None:
    """
    Normalize optional text fields:
    - strip whitespace
    - coerce empty strings to None
    """
    if value is None:
        return None
    v = value.strip()
    return v if v else None


def normalize_int(value: int | None) -> int | None:
    """Normalize optional integer fields (coerce to int, keep None)."""
    if value is None:
        return None
    return int(value)
