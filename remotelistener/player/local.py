"""
In-process reference player.

`LocalPlayer` keeps the playback state a media player would report (play
state, volume, position, current track, repeat and shuffle modes) and walks
the active track source on next/previous. It produces no audio; it exists so
the server can run standalone and so the protocol can be exercised end to end.
"""

from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, Callable

from remotelistener.core.events import EventBus, PlaybackChangedEvent, event_bus
from remotelistener.player.base import PlayState, RepeatMode, ShuffleMode

if TYPE_CHECKING:
    from remotelistener.core.library import MusicLibrary, Track
    from remotelistener.core.sources import SourceManager, TrackSource

logger = logging.getLogger(__name__)

DEFAULT_VOLUME = 50

# restart_or_previous() restarts the current track once it played this long
RESTART_THRESHOLD_MS = 3_000


class LocalPlayer:
    """
    Player engine and playback controller over a `SourceManager`.

    Position advances with `clock` while playing and is frozen otherwise.
    """

    def __init__(
        self,
        *,
        library: MusicLibrary,
        sources: SourceManager,
        bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._library = library
        self._sources = sources
        self._bus = bus if bus is not None else event_bus
        self._clock = clock
        self._rng = rng or random.Random()

        self._state = PlayState.IDLE
        self._volume = DEFAULT_VOLUME
        self._repeat = RepeatMode.OFF
        self._shuffle = ShuffleMode.OFF

        self._track: Track | None = None
        self._source: TrackSource | None = None
        self._index = -1

        # Position bookkeeping: position = base + elapsed since started_at
        self._base_ms = 0
        self._started_at: float | None = None

    def __repr__(self) -> str:
        return (
            f"LocalPlayer(state={self._state.value}, "
            f"track={self._track.id if self._track else None}, volume={self._volume})"
        )

    # =========================================================================
    # Player engine
    # =========================================================================

    @property
    def state(self) -> PlayState:
        return self._state

    @property
    def current_track(self) -> Track | None:
        return self._track

    @property
    def volume(self) -> int:
        return self._volume

    def set_volume(self, volume: int) -> None:
        self._volume = max(0, min(100, int(volume)))
        logger.debug("Volume set to %d", self._volume)

    @property
    def position_ms(self) -> int:
        position = self._base_ms
        if self._started_at is not None:
            position += int((self._clock() - self._started_at) * 1000)
        duration = self._track.duration_ms if self._track else None
        if duration:
            position = min(position, duration)
        return max(0, position)

    def set_position_ms(self, position_ms: int) -> None:
        self._base_ms = max(0, int(position_ms))
        if self._started_at is not None:
            self._started_at = self._clock()
        logger.debug("Position set to %d ms", self._base_ms)

    def can_pause(self) -> bool:
        return self._track is not None

    async def play(self) -> None:
        """Resume the current track, or start the active source from the top."""
        if self._state is PlayState.PLAYING:
            return
        if self._track is None:
            source = self._source or self._sources.library
            if not await self._play_from(source, 0, step=1):
                logger.info("Nothing to play")
            return
        self._started_at = self._clock()
        self._state = PlayState.PLAYING
        await self._announce()

    async def pause(self) -> None:
        if self._state is not PlayState.PLAYING:
            return
        self._base_ms = self.position_ms
        self._started_at = None
        self._state = PlayState.PAUSED
        await self._announce()

    async def stop(self) -> None:
        self._base_ms = 0
        self._started_at = None
        self._state = PlayState.IDLE
        await self._announce()

    # =========================================================================
    # Playback controller
    # =========================================================================

    @property
    def active_source(self) -> TrackSource | None:
        return self._source

    @property
    def repeat_mode(self) -> RepeatMode:
        return self._repeat

    def set_repeat_mode(self, mode: RepeatMode) -> None:
        self._repeat = RepeatMode(mode)
        logger.debug("Repeat mode set to %s", self._repeat.name)

    def toggle_repeat(self) -> None:
        self.set_repeat_mode(RepeatMode.OFF if self._repeat is RepeatMode.ALL else RepeatMode.ALL)

    @property
    def shuffle_mode(self) -> ShuffleMode:
        return self._shuffle

    def set_shuffle_mode(self, mode: ShuffleMode) -> None:
        self._shuffle = ShuffleMode(mode)
        logger.debug("Shuffle mode set to %s", self._shuffle.name)

    def toggle_shuffle(self) -> None:
        self.set_shuffle_mode(
            ShuffleMode.SONG if self._shuffle in (ShuffleMode.OFF, ShuffleMode.UNKNOWN) else ShuffleMode.OFF
        )

    async def open_play(self, track: Track, source: TrackSource | None = None) -> None:
        """Play `track` immediately; `source` (default: the library) becomes the active source."""
        self._source = source if source is not None else self._sources.library
        self._index = self._source.index_of(track.id)
        self._start(track)
        logger.info("Playing track %d (%s) from %s", track.id, track.title, self._source.name)
        await self._announce()

    async def next(self) -> None:
        if self._repeat is RepeatMode.SINGLE and self._track is not None:
            await self._restart(self._track)
            return
        await self._advance(+1)

    async def previous(self) -> None:
        if self._repeat is RepeatMode.SINGLE and self._track is not None:
            await self._restart(self._track)
            return
        await self._advance(-1)

    async def restart_or_previous(self) -> None:
        if self._track is not None and self.position_ms > RESTART_THRESHOLD_MS:
            await self._restart(self._track)
        else:
            await self.previous()

    # =========================================================================
    # Internals
    # =========================================================================

    def _start(self, track: Track) -> None:
        self._track = track
        self._base_ms = 0
        self._started_at = self._clock()
        self._state = PlayState.PLAYING

    async def _restart(self, track: Track) -> None:
        self._start(track)
        await self._announce()

    def _shuffling(self) -> bool:
        return self._shuffle not in (ShuffleMode.OFF, ShuffleMode.UNKNOWN)

    async def _advance(self, step: int) -> None:
        source = self._source or self._sources.library
        count = source.count
        if count == 0:
            await self.stop()
            return

        if self._shuffling() and count > 1:
            choices = [i for i in range(count) if i != self._index]
            await self._play_from(source, self._rng.choice(choices), step=step)
            return

        if self._index < 0:
            start = 0 if step > 0 else count - 1
        else:
            start = self._index + step

        if not 0 <= start < count:
            if self._repeat is not RepeatMode.ALL:
                logger.debug("Reached the end of %s", source.name)
                await self.stop()
                return
            start %= count

        if not await self._play_from(source, start, step=step):
            await self.stop()

    async def _play_from(self, source: TrackSource, index: int, *, step: int) -> bool:
        """Play the first resolvable track at or after `index` in direction `step`."""
        count = source.count
        wrap = self._repeat is RepeatMode.ALL
        for _ in range(count):
            if not 0 <= index < count:
                if not wrap:
                    return False
                index %= count
            track = await self._library.get_track(source.track_ids[index])
            if track is not None:
                self._source = source
                self._index = index
                self._start(track)
                logger.info("Playing track %d (%s) from %s", track.id, track.title, source.name)
                await self._announce()
                return True
            index += step
        return False

    async def _announce(self) -> None:
        await self._bus.publish(
            PlaybackChangedEvent(
                state=self._state.value,
                track_id=int(self._track.id) if self._track else 0,
                source_id=self._source.id if self._source else 0,
            )
        )
