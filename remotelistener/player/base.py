"""
Playback abstractions for Remote Listener.

The protocol handlers talk to playback through two capabilities:

- `PlayerEngine`: play state, volume, position and the current track
- `PlaybackController`: navigation, repeat/shuffle and the active source

`LocalPlayer` implements both; a bridge to a real media player only has to
provide the same methods.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from remotelistener.core.library import Track
    from remotelistener.core.sources import TrackSource


class PlayState(Enum):
    """Play state as reported to the remote client."""

    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


class RepeatMode(IntEnum):
    """Repeat modes; the values are the wire codes."""

    UNKNOWN = 0
    OFF = 1
    SINGLE = 2
    ALL = 3


class ShuffleMode(IntEnum):
    """Shuffle modes; the values are the wire codes."""

    UNKNOWN = 0
    OFF = 1
    SONG = 2
    ARTIST = 3
    ALBUM = 4
    RATING = 5
    SCORE = 6


# Cycle orders used by the "next mode" controls
REPEAT_CYCLE: tuple[RepeatMode, ...] = (RepeatMode.OFF, RepeatMode.SINGLE, RepeatMode.ALL)
SHUFFLE_CYCLE: tuple[ShuffleMode, ...] = (
    ShuffleMode.OFF,
    ShuffleMode.SONG,
    ShuffleMode.ARTIST,
    ShuffleMode.ALBUM,
    ShuffleMode.RATING,
    ShuffleMode.SCORE,
)


@runtime_checkable
class PlayerEngine(Protocol):
    @property
    def state(self) -> PlayState: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    def can_pause(self) -> bool: ...

    @property
    def volume(self) -> int: ...

    def set_volume(self, volume: int) -> None: ...

    @property
    def position_ms(self) -> int: ...

    def set_position_ms(self, position_ms: int) -> None: ...

    @property
    def current_track(self) -> Track | None: ...


@runtime_checkable
class PlaybackController(Protocol):
    async def next(self) -> None: ...

    async def previous(self) -> None: ...

    async def restart_or_previous(self) -> None: ...

    @property
    def repeat_mode(self) -> RepeatMode: ...

    def set_repeat_mode(self, mode: RepeatMode) -> None: ...

    def toggle_repeat(self) -> None: ...

    @property
    def shuffle_mode(self) -> ShuffleMode: ...

    def set_shuffle_mode(self, mode: ShuffleMode) -> None: ...

    def toggle_shuffle(self) -> None: ...

    @property
    def active_source(self) -> TrackSource | None: ...

    async def open_play(self, track: Track, source: TrackSource | None = None) -> None: ...
