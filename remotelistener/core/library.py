from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import NewType, Sequence

from remotelistener.core import CoreError, NotFoundError
from remotelistener.core.artwork import CoverStore, album_cover_id
from remotelistener.core.db.models import PlaylistRow, TrackRow
from remotelistener.core.events import EventBus, LibraryScanEvent, event_bus
from remotelistener.core.library_db import LibraryDb, UpsertTrack
from remotelistener.core.scanner import ScanConfig, scan_music_folder

logger = logging.getLogger(__name__)

TrackId = NewType("TrackId", int)


@dataclass(frozen=True, slots=True)
class Track:
    """A database-backed track as the player and the protocol see it."""

    id: TrackId
    path: str
    title: str
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    year: int | None = None
    track_no: int | None = None
    duration_ms: int | None = None
    file_size: int | None = None
    artwork_id: str | None = None

    @classmethod
    def from_row(cls, row: TrackRow) -> Track:
        return cls(
            id=TrackId(row.id),
            path=row.path,
            title=row.title or Path(row.path).stem,
            artist=row.artist,
            album=row.album,
            genre=row.genre,
            year=row.year,
            track_no=row.track_no,
            duration_ms=row.duration_ms,
            file_size=row.file_size,
            artwork_id=row.artwork_id,
        )


@dataclass(frozen=True, slots=True)
class ScanResult:
    scanned_files: int
    tracks: int
    removed_tracks: int
    playlists: int
    covers: int
    errors: int


class MusicLibraryError(CoreError):
    """Base error for MusicLibrary operations."""


class MusicLibraryNotReadyError(MusicLibraryError):
    """Raised when read operations are attempted before the library is initialized."""


class MusicLibrary:
    """
    High-level facade over the library database.

    Dependencies:
    - `LibraryDb` for persistence
    - `scanner` for tag extraction and playlist files
    - `CoverStore` for embedded artwork (optional)

    The set of known track ids is kept in memory so listing handlers can tell
    resolvable tracks from stale ones without a query per entry.
    """

    def __init__(
        self,
        *,
        db: LibraryDb,
        covers: CoverStore | None = None,
        music_root: Path | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._db = db
        self._covers = covers
        self._music_root = music_root
        self._bus = bus if bus is not None else event_bus
        self._initialized = False
        self._scanning = False
        self._track_ids: frozenset[int] = frozenset()

    async def initialize(self) -> None:
        """
        Prepare the library.

        Contract:
        - `LibraryDb` must already be open.
        - schema/migrations are ensured here for convenience.
        """
        if not self._db.is_open:
            raise MusicLibraryError(
                "LibraryDb is not open. Open it before initializing MusicLibrary."
            )

        await self._db.ensure_schema()
        await self._reload_track_ids()
        self._initialized = True
        logger.info("Music library ready: %d tracks", await self._db.count_tracks())

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise MusicLibraryNotReadyError("MusicLibrary is not initialized.")

    async def _reload_track_ids(self) -> None:
        self._track_ids = frozenset(await self._db.list_track_ids())

    async def scan(self, *, roots: Sequence[Path] | None = None) -> ScanResult:
        """
        Scan music folders and update the library DB.

        Tracks whose files vanished are removed; playlist files replace the
        stored playlist of the same name.
        """
        self._require_initialized()

        scan_roots = (
            list(roots) if roots is not None else ([self._music_root] if self._music_root else [])
        )
        if not scan_roots:
            raise MusicLibraryError("No scan roots provided and no music_root configured.")
        if self._scanning:
            raise MusicLibraryError("A scan is already running.")

        self._scanning = True
        await self._bus.publish(LibraryScanEvent(status="started"))
        try:
            result = await self._scan_roots(scan_roots)
        except Exception as e:
            logger.exception("Library scan failed")
            await self._bus.publish(LibraryScanEvent(status="failed", error=str(e)))
            raise
        finally:
            self._scanning = False

        logger.info(
            "Library scan done: %d tracks, %d playlists, %d covers, %d removed, %d errors",
            result.tracks,
            result.playlists,
            result.covers,
            result.removed_tracks,
            result.errors,
        )
        await self._bus.publish(
            LibraryScanEvent(status="completed", scanned=result.scanned_files, errors=result.errors)
        )
        return result

    async def _scan_roots(self, scan_roots: list[Path]) -> ScanResult:
        scanned_files = 0
        errors = 0
        covers = 0
        seen_paths: set[str] = set()
        playlist_files = []

        for root in scan_roots:
            result = await scan_music_folder(ScanConfig(root=root))

            scanned_files += len(result.tracks) + len(result.playlists) + len(result.issues)
            errors += len(result.issues)
            for issue in result.issues:
                logger.warning("Skipped %s: %s", issue.path, issue.message)

            to_upsert: list[UpsertTrack] = []
            for tm in result.tracks:
                artwork_id: str | None = None
                if tm.has_artwork and tm.album and self._covers is not None:
                    candidate = album_cover_id(tm.artist, tm.album)
                    if await self._covers.store_from_file(candidate, tm.path):
                        artwork_id = candidate
                        covers += 1
                to_upsert.append(
                    UpsertTrack(
                        path=str(tm.path),
                        title=tm.title,
                        artist=tm.artist,
                        album=tm.album,
                        genre=tm.genre,
                        track_no=tm.track_number,
                        year=tm.year,
                        duration_ms=tm.duration_ms,
                        file_size=tm.file_size,
                        mtime_ns=tm.mtime_ns,
                        artwork_id=artwork_id,
                    )
                )
                seen_paths.add(str(tm.path))

            await self._db.upsert_tracks(to_upsert)
            playlist_files.extend(result.playlists)

        removed = await self._db.delete_tracks_not_in(seen_paths)
        await self._db.cleanup_orphans()

        names: set[str] = set()
        for pl in playlist_files:
            track_ids: list[int] = []
            for entry in pl.entries:
                row = await self._db.get_track_by_path(str(entry))
                if row is not None:
                    track_ids.append(row.id)
            await self._db.replace_playlist(pl.name, track_ids)
            names.add(pl.name)
        await self._db.delete_playlists_not_in(names)
        await self._db.commit()

        await self._reload_track_ids()

        return ScanResult(
            scanned_files=scanned_files,
            tracks=len(seen_paths),
            removed_tracks=removed,
            playlists=len(names),
            covers=covers,
            errors=errors,
        )

    # ---- Lookups used by the sources and the protocol handlers ----

    def has_track(self, track_id: int) -> bool:
        return track_id in self._track_ids

    async def get_track(self, track_id: int) -> Track | None:
        self._require_initialized()
        if track_id not in self._track_ids:
            return None
        row = await self._db.get_track_by_id(int(track_id))
        return Track.from_row(row) if row is not None else None

    async def require_track(self, track_id: int) -> Track:
        """
        Like `get_track`, for callers that cannot go on without the track.

        Raises:
            NotFoundError: If the id does not resolve to a database row.
        """
        track = await self.get_track(track_id)
        if track is None:
            raise NotFoundError(f"track {track_id} not found")
        return track

    async def library_track_ids(self) -> list[int]:
        """All track ids in library order (artist, album, track number, title)."""
        self._require_initialized()
        return await self._db.list_track_ids()

    async def playlists(self) -> list[PlaylistRow]:
        self._require_initialized()
        return await self._db.list_playlists()

    async def playlist_track_ids(self, playlist_id: int) -> list[int]:
        self._require_initialized()
        return await self._db.get_playlist_track_ids(playlist_id)
