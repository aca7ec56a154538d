"""
Remote protocol command handlers.

Each module handles one or two opcodes:
- status: PlayerStatus (controls + 12-byte status)
- song: SongInfo, Cover
- sync: SyncDatabase
- playlist: Playlist, PlaylistControl

Handlers are plain coroutines `handler(ctx, payload) -> bytes | None`; they
get every collaborator through `HandlerContext`. Returning None (or b"")
closes the connection without a reply.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from remotelistener.config import ConfigProvider
    from remotelistener.core.artwork import CoverStore
    from remotelistener.core.db_cache import DatabaseCache
    from remotelistener.core.library import MusicLibrary
    from remotelistener.core.sources import SourceManager
    from remotelistener.player.base import PlaybackController, PlayerEngine


class PlaybackOverride:
    """
    Short window after a play/next/previous command during which the status
    reply reports "playing" regardless of what the player says. Players
    commonly report the old state for a moment after such a command.
    """

    def __init__(self, window: float = 1.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self._clock = clock
        self._armed_at: float | None = None

    def arm(self) -> None:
        self._armed_at = self._clock()

    def reset(self) -> None:
        self._armed_at = None

    @property
    def active(self) -> bool:
        if self._armed_at is None:
            return False
        return self._clock() - self._armed_at <= self.window


@dataclass
class HandlerContext:
    """
    Context object passed to all command handlers.

    Contains references to all server components needed to process commands.
    """

    player: PlayerEngine
    """Play state, volume, position and current track."""

    controller: PlaybackController
    """Navigation, repeat/shuffle and the active source."""

    library: MusicLibrary
    """Resolves track ids to tracks."""

    sources: SourceManager
    """Library, user playlists and the two reserved playlists."""

    covers: CoverStore | None = None
    """Cover image lookup; None disables cover replies."""

    db_cache: DatabaseCache | None = None
    """Reduced database copy for SyncDatabase; None disables it."""

    config: ConfigProvider | None = None
    """Current configuration (replay threshold, override window)."""

    override: PlaybackOverride = field(default_factory=PlaybackOverride)
    """Forced-playing window shared by the status and play-track handlers."""

    @property
    def replay_threshold_ms(self) -> int:
        if self.config is None:
            return 15_000
        return self.config.current.replay_threshold_ms


Handler = Callable[[HandlerContext, bytes], Awaitable["bytes | None"]]
