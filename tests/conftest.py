"""
Shared fixtures for the Remote Listener tests.

The library fixture is a real SQLite database in `tmp_path` holding twelve
tracks of one album ("Song 01" .. "Song 12"), so track ids 1..12 are also the
library order.
"""

from __future__ import annotations

import random
import socket
from pathlib import Path

import pytest

from remotelistener.config import MAX_PORT
from remotelistener.core.artwork import CoverStore
from remotelistener.core.db.models import UpsertTrack
from remotelistener.core.events import EventBus
from remotelistener.core.library import MusicLibrary
from remotelistener.core.library_db import LibraryDb
from remotelistener.core.sources import SourceManager
from remotelistener.player.local import LocalPlayer
from remotelistener.protocol.handlers import HandlerContext, PlaybackOverride

TRACK_COUNT = 12
TRACK_DURATION_MS = 200_000


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def free_port() -> int:
    """A currently unused port inside the configurable range."""
    for _ in range(100):
        port = random.randint(20000, MAX_PORT)
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind(("127.0.0.1", port))
            except OSError:
                continue
            return port
    raise RuntimeError("no free port found")


def make_tracks(count: int = TRACK_COUNT) -> list[UpsertTrack]:
    return [
        UpsertTrack(
            path=f"/music/Artist/Album/{i:02d} Song {i:02d}.mp3",
            title=f"Song {i:02d}",
            artist="Artist",
            album="Album",
            genre="Rock",
            track_no=i,
            year=2001,
            duration_ms=TRACK_DURATION_MS,
            file_size=100_000 + i,
        )
        for i in range(1, count + 1)
    ]


@pytest.fixture
def bus() -> EventBus:
    """A fresh event bus per test (the global one is shared)."""
    return EventBus()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def library_path(tmp_path: Path) -> Path:
    return tmp_path / "library.sqlite3"


@pytest.fixture
async def library_db(library_path: Path):
    db = LibraryDb(library_path)
    await db.open()
    await db.ensure_schema()
    await db.upsert_tracks(make_tracks())
    yield db
    await db.close()


@pytest.fixture
def covers(tmp_path: Path) -> CoverStore:
    return CoverStore(cover_dir=tmp_path / "covers")


@pytest.fixture
async def library(library_db: LibraryDb, covers: CoverStore, bus: EventBus) -> MusicLibrary:
    lib = MusicLibrary(db=library_db, covers=covers, bus=bus)
    await lib.initialize()
    return lib


@pytest.fixture
async def sources(library: MusicLibrary, bus: EventBus) -> SourceManager:
    manager = SourceManager(bus=bus)
    await manager.refresh_from_library(library)
    return manager


@pytest.fixture
def player(library: MusicLibrary, sources: SourceManager, bus: EventBus, clock: FakeClock) -> LocalPlayer:
    return LocalPlayer(library=library, sources=sources, bus=bus, clock=clock)


@pytest.fixture
def ctx(
    player: LocalPlayer,
    library: MusicLibrary,
    sources: SourceManager,
    covers: CoverStore,
    clock: FakeClock,
) -> HandlerContext:
    return HandlerContext(
        player=player,
        controller=player,
        library=library,
        sources=sources,
        covers=covers,
        override=PlaybackOverride(window=1.0, clock=clock),
    )
