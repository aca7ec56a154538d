"""
Tests for the in-process reference player.
"""

from __future__ import annotations

import random

import pytest

from remotelistener.core.events import EventBus
from remotelistener.core.library import MusicLibrary
from remotelistener.core.sources import SourceManager
from remotelistener.player.base import PlaybackController, PlayerEngine, PlayState, RepeatMode, ShuffleMode
from remotelistener.player.local import LocalPlayer

from conftest import TRACK_DURATION_MS, FakeClock


class TestEngine:
    def test_implements_capabilities(self, player: LocalPlayer) -> None:
        assert isinstance(player, PlayerEngine)
        assert isinstance(player, PlaybackController)

    def test_initial_state(self, player: LocalPlayer) -> None:
        assert player.state is PlayState.IDLE
        assert player.current_track is None
        assert player.volume == 50
        assert player.position_ms == 0
        assert not player.can_pause()

    def test_volume_is_clamped(self, player: LocalPlayer) -> None:
        player.set_volume(150)
        assert player.volume == 100
        player.set_volume(-3)
        assert player.volume == 0

    async def test_position_follows_clock(self, player: LocalPlayer, library: MusicLibrary, clock: FakeClock) -> None:
        await player.open_play(await library.get_track(1))
        clock.advance(3)
        assert player.position_ms == 3000

        await player.pause()
        clock.advance(10)
        assert player.position_ms == 3000

        await player.play()
        clock.advance(1)
        assert player.position_ms == 4000

    async def test_position_capped_at_duration(
        self, player: LocalPlayer, library: MusicLibrary, clock: FakeClock
    ) -> None:
        await player.open_play(await library.get_track(1))
        clock.advance(TRACK_DURATION_MS / 1000 + 60)
        assert player.position_ms == TRACK_DURATION_MS

    async def test_seek_while_playing(self, player: LocalPlayer, library: MusicLibrary, clock: FakeClock) -> None:
        await player.open_play(await library.get_track(1))
        clock.advance(5)
        player.set_position_ms(60_000)
        clock.advance(1)
        assert player.position_ms == 61_000

    async def test_play_from_idle_starts_library(self, player: LocalPlayer) -> None:
        await player.play()
        assert player.state is PlayState.PLAYING
        assert player.current_track.id == 1

    async def test_playback_events(self, player: LocalPlayer, library: MusicLibrary, bus: EventBus) -> None:
        states: list[tuple[str, int]] = []

        async def on_playback(event) -> None:
            states.append((event.state, event.track_id))

        await bus.subscribe("playback.changed", on_playback)

        await player.open_play(await library.get_track(4))
        await player.pause()
        await player.stop()

        assert states == [("playing", 4), ("paused", 4), ("idle", 4)]


class TestNavigation:
    async def test_next_and_previous(self, player: LocalPlayer, library: MusicLibrary) -> None:
        await player.open_play(await library.get_track(5))

        await player.next()
        assert player.current_track.id == 6

        await player.previous()
        await player.previous()
        assert player.current_track.id == 4

    async def test_end_of_source_stops(self, player: LocalPlayer, library: MusicLibrary) -> None:
        await player.open_play(await library.get_track(12))

        await player.next()

        assert player.state is PlayState.IDLE

    async def test_repeat_all_wraps(self, player: LocalPlayer, library: MusicLibrary) -> None:
        player.set_repeat_mode(RepeatMode.ALL)
        await player.open_play(await library.get_track(12))

        await player.next()
        assert player.current_track.id == 1

        await player.previous()
        assert player.current_track.id == 12

    async def test_repeat_single_restarts(
        self, player: LocalPlayer, library: MusicLibrary, clock: FakeClock
    ) -> None:
        player.set_repeat_mode(RepeatMode.SINGLE)
        await player.open_play(await library.get_track(3))
        clock.advance(20)

        await player.next()

        assert player.current_track.id == 3
        assert player.position_ms == 0

    async def test_restart_or_previous(
        self, player: LocalPlayer, library: MusicLibrary, clock: FakeClock
    ) -> None:
        await player.open_play(await library.get_track(3))
        clock.advance(10)
        await player.restart_or_previous()
        assert player.current_track.id == 3

        clock.advance(1)
        await player.restart_or_previous()
        assert player.current_track.id == 2

    async def test_shuffle_picks_another_track(
        self, library: MusicLibrary, sources: SourceManager, bus: EventBus, clock: FakeClock
    ) -> None:
        player = LocalPlayer(library=library, sources=sources, bus=bus, clock=clock, rng=random.Random(7))
        player.set_shuffle_mode(ShuffleMode.SONG)
        await player.open_play(await library.get_track(1))

        for _ in range(10):
            previous = player.current_track.id
            await player.next()
            assert player.current_track.id != previous

    async def test_skips_unresolvable_entries(
        self, player: LocalPlayer, library: MusicLibrary, sources: SourceManager
    ) -> None:
        queue = sources.play_queue
        for track_id in (2, 999, 4):
            queue.add(track_id)
        await player.open_play(await library.get_track(2), queue)

        await player.next()

        assert player.current_track.id == 4
        assert player.active_source is queue

    async def test_open_play_switches_source(
        self, player: LocalPlayer, library: MusicLibrary, sources: SourceManager
    ) -> None:
        await player.open_play(await library.get_track(2))
        assert player.active_source is sources.library

        sources.remote_playlist.add(9)
        await player.open_play(await library.get_track(9), sources.remote_playlist)
        assert player.active_source is sources.remote_playlist


class TestModes:
    @pytest.mark.parametrize(
        ("start", "expected"),
        [(RepeatMode.OFF, RepeatMode.ALL), (RepeatMode.ALL, RepeatMode.OFF), (RepeatMode.SINGLE, RepeatMode.ALL)],
    )
    def test_toggle_repeat(self, player: LocalPlayer, start: RepeatMode, expected: RepeatMode) -> None:
        player.set_repeat_mode(start)
        player.toggle_repeat()
        assert player.repeat_mode is expected

    @pytest.mark.parametrize(
        ("start", "expected"),
        [
            (ShuffleMode.OFF, ShuffleMode.SONG),
            (ShuffleMode.UNKNOWN, ShuffleMode.SONG),
            (ShuffleMode.ALBUM, ShuffleMode.OFF),
        ],
    )
    def test_toggle_shuffle(self, player: LocalPlayer, start: ShuffleMode, expected: ShuffleMode) -> None:
        player.set_shuffle_mode(start)
        player.toggle_shuffle()
        assert player.shuffle_mode is expected
