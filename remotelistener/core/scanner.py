from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mutagen import File as mutagen_file
from mutagen.flac import FLAC
from mutagen.id3 import ID3
from mutagen.mp4 import MP4

logger = logging.getLogger(__name__)


DEFAULT_AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp3",
        ".flac",
        ".ogg",
        ".opus",
        ".m4a",
        ".m4b",
        ".aac",
        ".wav",
        ".aiff",
        ".aif",
        ".wma",
        ".wv",
        ".ape",
        ".mpc",
    }
)

PLAYLIST_EXTENSIONS: frozenset[str] = frozenset({".m3u", ".m3u8"})


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Configuration for scanning a music folder."""

    root: Path
    extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS
    playlist_extensions: frozenset[str] = PLAYLIST_EXTENSIONS
    follow_symlinks: bool = False
    max_concurrency: int = 8


@dataclass(frozen=True, slots=True)
class TrackMetadata:
    """
    Normalized metadata extracted from an audio file.

    Only what the remote protocol reports is kept: the four text fields of the
    song info, track number and year for ordering, and size/duration for the
    player status.
    """

    path: Path
    title: str
    artist: str | None
    album: str | None
    genre: str | None = None
    track_number: int | None = None
    year: int | None = None
    duration_ms: int | None = None
    file_size: int | None = None
    mtime_ns: int | None = None
    has_artwork: bool = False


@dataclass(frozen=True, slots=True)
class PlaylistFile:
    """An `.m3u` playlist found during the scan, entries resolved to absolute paths."""

    path: Path
    name: str
    entries: tuple[Path, ...] = ()


@dataclass(frozen=True, slots=True)
class ScanIssue:
    path: Path
    message: str


@dataclass(frozen=True, slots=True)
class ScanResult:
    tracks: list[TrackMetadata]
    issues: list[ScanIssue]
    playlists: list[PlaylistFile] = field(default_factory=list)


def _clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    s = value.strip()
    return s if s else None


def _first_text(value: Any) -> str | None:
    """
    Mutagen returns different shapes depending on container/tag type:
    - ID3 frames
    - lists of strings
    - plain strings
    - objects with `.text`
    We normalize to a single string (first item if multiple).
    """
    if value is None:
        return None

    if isinstance(value, (list, tuple)):
        if not value:
            return None
        return _first_text(value[0])

    # ID3 frames carry a `.text` list
    text = getattr(value, "text", None)
    if text is not None:
        return _first_text(text)

    val = getattr(value, "value", None)
    if val is not None:
        return _first_text(val)

    # MP4 trkn is a list of (number, total) tuples; the tuple branch above
    # already picked the number
    if isinstance(value, bytes):
        return _clean_str(value.decode("utf-8", errors="replace"))

    return _clean_str(str(value))


def _parse_int_maybe(value: Any) -> int | None:
    """
    Parse things like:
    - "3"
    - "3/12"
    - ["3/12"]
    - mutagen frame objects
    """
    s = _first_text(value)
    if not s:
        return None

    if "/" in s:
        s = s.split("/", 1)[0].strip()

    try:
        return int(s)
    except ValueError:
        return None


def _parse_year_maybe(value: Any) -> int | None:
    """Accept "1999" or "1999-01-01" or "1999/.." formats."""
    s = _first_text(value)
    if not s:
        return None

    for i in range(0, max(0, len(s) - 3)):
        chunk = s[i : i + 4]
        if chunk.isdigit():
            year = int(chunk)
            if 1000 <= year <= 3000:
                return year
    return None


def _tags_get(tags: dict[str, Any] | None, keys: Iterable[str]) -> Any:
    if not tags:
        return None
    for k in keys:
        if k in tags:
            return tags.get(k)
    return None


def _has_artwork(audio: Any, tags: dict[str, Any] | None) -> bool:
    if isinstance(audio, MP4):
        return bool(tags and "covr" in tags)
    if isinstance(audio, FLAC):
        return len(audio.pictures) > 0
    if isinstance(getattr(audio, "tags", None), ID3):
        return len(audio.tags.getall("APIC")) > 0
    return bool(tags and ("metadata_block_picture" in tags or "METADATA_BLOCK_PICTURE" in tags))


def _extract_metadata(path: Path) -> TrackMetadata:
    """
    Extract metadata using mutagen.

    Synchronous; the scanner runs it in a worker thread.
    """
    audio = mutagen_file(path)
    if audio is None:
        raise ValueError("unsupported or unreadable audio file")

    tags: dict[str, Any] | None = None
    if getattr(audio, "tags", None) is not None:
        try:
            tags = dict(audio.tags)
        except Exception:
            tags = audio.tags  # type: ignore[assignment]

    duration_ms: int | None = None
    info = getattr(audio, "info", None)
    if info is not None:
        length = getattr(info, "length", None)
        if isinstance(length, (int, float)) and length > 0:
            duration_ms = int(length * 1000)

    stat = path.stat()

    # Keys: ID3 / Vorbis / MP4
    title = _first_text(_tags_get(tags, ("TIT2", "title", "TITLE", "©nam"))) or path.stem
    artist = _first_text(_tags_get(tags, ("TPE1", "artist", "ARTIST", "©ART")))
    album = _first_text(_tags_get(tags, ("TALB", "album", "ALBUM", "©alb")))
    genre = _first_text(_tags_get(tags, ("TCON", "genre", "GENRE", "©gen")))
    track_number = _parse_int_maybe(_tags_get(tags, ("TRCK", "tracknumber", "TRACKNUMBER", "trkn")))
    year = _parse_year_maybe(_tags_get(tags, ("TDRC", "TYER", "date", "DATE", "YEAR", "©day")))

    return TrackMetadata(
        path=path,
        title=title,
        artist=_clean_str(artist),
        album=_clean_str(album),
        genre=_clean_str(genre),
        track_number=track_number,
        year=year,
        duration_ms=duration_ms,
        file_size=stat.st_size,
        mtime_ns=stat.st_mtime_ns,
        has_artwork=_has_artwork(audio, tags),
    )


def read_m3u(path: Path) -> PlaylistFile:
    """
    Parse an `.m3u`/`.m3u8` file.

    Comment and `#EXT` lines are skipped; relative entries are resolved against
    the playlist's directory. URLs are ignored.
    """
    encoding = "utf-8" if path.suffix.lower() == ".m3u8" else "utf-8-sig"
    text = path.read_text(encoding=encoding, errors="replace")

    entries: list[Path] = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "://" in line:
            continue
        entry = Path(line.replace("\\", "/"))
        if not entry.is_absolute():
            entry = path.parent / entry
        entries.append(entry.resolve())

    return PlaylistFile(path=path, name=path.stem, entries=tuple(entries))


async def iter_music_files(config: ScanConfig) -> AsyncIterator[Path]:
    """
    Asynchronously yields audio and playlist file paths under `config.root`.

    The walk runs in a thread to avoid blocking the event loop on large trees.
    """
    root = config.root
    if not root.exists():
        raise FileNotFoundError(root)
    if not root.is_dir():
        raise NotADirectoryError(root)

    wanted = config.extensions | config.playlist_extensions

    def _walk() -> list[Path]:
        paths: list[Path] = []
        for p in root.rglob("*"):
            try:
                if not config.follow_symlinks and p.is_symlink():
                    continue
                if not p.is_file():
                    continue
                if p.suffix.lower() not in wanted:
                    continue
                paths.append(p)
            except OSError:
                continue
        return paths

    paths = await asyncio.to_thread(_walk)
    for p in paths:
        yield p


async def scan_music_folder(config: ScanConfig) -> ScanResult:
    """
    Scan a folder for audio files and playlists and extract metadata.

    This returns a pure in-memory result; persisting it is the library's job.

    Concurrency:
    - filesystem walk: runs in a thread
    - metadata extraction: bounded concurrency using threads via asyncio.to_thread
    """
    semaphore = asyncio.Semaphore(max(1, config.max_concurrency))

    tracks: list[TrackMetadata] = []
    playlists: list[PlaylistFile] = []
    issues: list[ScanIssue] = []

    async def _process(path: Path) -> None:
        async with semaphore:
            try:
                if path.suffix.lower() in config.playlist_extensions:
                    playlists.append(await asyncio.to_thread(read_m3u, path))
                else:
                    tracks.append(await asyncio.to_thread(_extract_metadata, path))
            except Exception as e:  # noqa: BLE001 - one bad file must not stop the scan
                msg = f"{type(e).__name__}: {e}"
                issues.append(ScanIssue(path=path, message=msg))
                logger.debug("Scan issue for %s: %s", path, msg)

    tasks: list[asyncio.Task[None]] = []
    async for path in iter_music_files(config):
        tasks.append(asyncio.create_task(_process(path)))

    if tasks:
        await asyncio.gather(*tasks)

    tracks.sort(key=lambda t: str(t.path).lower())
    playlists.sort(key=lambda p: p.name.lower())

    return ScanResult(tracks=tracks, issues=issues, playlists=playlists)
