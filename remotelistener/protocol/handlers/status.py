"""
PlayerStatus handler (opcode 1).

Request payload, every field optional from the end:

    byte 0      high nibble: play control, low nibble: repeat control
    byte 1      low nibble: shuffle control
    byte 2      volume control
    bytes 3-6   seek position (u32 ms, 0 = leave alone)

Response (12 bytes):

    byte 0      bit 7 paused, bit 6 playing, bits 5-4 repeat, bits 2-0 shuffle
    byte 1      volume
    bytes 2-5   position (u32 ms)
    bytes 6-7   change flag (low 16 bits of the current file size)
    bytes 8-11  track id (0 without a database track)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from remotelistener.player.base import (
    REPEAT_CYCLE,
    SHUFFLE_CYCLE,
    PlayState,
    RepeatMode,
    ShuffleMode,
)
from remotelistener.protocol.codec import read_u32, write_u16, write_u32
from remotelistener.protocol.handlers import HandlerContext

logger = logging.getLogger(__name__)

PAUSED_BIT = 0x80
PLAYING_BIT = 0x40
REPEAT_MASK = 0x30

VOLUME_LADDER: tuple[int, ...] = (0, 1, 2, 3, 5, 7, 10, 15, 20, 25, 30, 40, 50, 60, 70, 80, 90, 100)

# Play control nibble
PLAY_TOGGLE = 1
PLAY_PLAY = 2
PLAY_PAUSE = 3
PLAY_NEXT = 4
PLAY_PREVIOUS = 5

# Repeat control nibble (1-3 set directly)
REPEAT_CYCLE_NEXT = 4
REPEAT_TOGGLE = 5

# Shuffle control nibble (1-6 set directly)
SHUFFLE_CYCLE_NEXT = 7
SHUFFLE_TOGGLE = 8

# Volume control byte (1-100 absolute)
VOLUME_MUTE = 101
VOLUME_DOWN = 102
VOLUME_UP = 103


class Change(Enum):
    """Whether a control forced a status flag, and to what."""

    UNCHANGED = "unchanged"
    SET_TRUE = "set_true"
    SET_FALSE = "set_false"

    @classmethod
    def of(cls, value: bool) -> Change:
        return cls.SET_TRUE if value else cls.SET_FALSE


@dataclass
class StatusOverride:
    """
    What the controls of one request imply for the reply.

    The player may still report the previous state right after a command, so
    the reply uses these values instead of the reported ones.
    """

    playing: Change = Change.UNCHANGED
    paused: Change = Change.UNCHANGED
    position_ms: int | None = None

    def set_playing(self, playing: bool) -> None:
        self.playing = Change.of(playing)
        self.paused = Change.of(not playing)


def volume_step_down(current: int) -> int:
    for i in range(1, len(VOLUME_LADDER)):
        if current <= VOLUME_LADDER[i]:
            return VOLUME_LADDER[i - 1]
    return VOLUME_LADDER[-2]


def volume_step_up(current: int) -> int:
    for i in range(len(VOLUME_LADDER) - 2, -1, -1):
        if current >= VOLUME_LADDER[i]:
            return VOLUME_LADDER[i + 1]
    return VOLUME_LADDER[1]


def resolve_volume(code: int, current: int) -> int | None:
    """New volume for a volume control byte, or None for "no change"."""
    if code == 0 or code > VOLUME_UP:
        return None
    if code == VOLUME_MUTE:
        return 0
    if code == VOLUME_DOWN:
        return volume_step_down(current)
    if code == VOLUME_UP:
        return volume_step_up(current)
    return code


async def apply_play_control(ctx: HandlerContext, code: int, override: StatusOverride) -> None:
    player = ctx.player
    controller = ctx.controller
    playing = player.state is PlayState.PLAYING

    if code == PLAY_TOGGLE:
        if playing:
            await player.pause()
            override.set_playing(False)
            ctx.override.reset()
        else:
            await player.play()
            override.set_playing(True)
            ctx.override.arm()
    elif code == PLAY_PLAY:
        if not playing:
            await player.play()
            override.set_playing(True)
            ctx.override.arm()
    elif code == PLAY_PAUSE:
        if playing and player.can_pause():
            await player.pause()
            override.set_playing(False)
            ctx.override.reset()
    elif code == PLAY_NEXT:
        await controller.next()
        override.set_playing(True)
        override.position_ms = 0
        ctx.override.arm()
    elif code == PLAY_PREVIOUS:
        if player.position_ms > ctx.replay_threshold_ms:
            await controller.restart_or_previous()
        else:
            await controller.previous()
        override.set_playing(True)
        override.position_ms = 0
        ctx.override.arm()


def apply_repeat_control(ctx: HandlerContext, code: int) -> None:
    controller = ctx.controller
    if 1 <= code <= 3:
        if controller.shuffle_mode is ShuffleMode.UNKNOWN:
            controller.set_repeat_mode(RepeatMode.OFF)
        else:
            controller.set_repeat_mode(REPEAT_CYCLE[code - 1])
    elif code == REPEAT_CYCLE_NEXT:
        controller.set_repeat_mode(REPEAT_CYCLE[int(controller.repeat_mode) % len(REPEAT_CYCLE)])
    elif code == REPEAT_TOGGLE:
        controller.toggle_repeat()


def apply_shuffle_control(ctx: HandlerContext, code: int) -> None:
    controller = ctx.controller
    if 1 <= code <= 6:
        if controller.shuffle_mode is ShuffleMode.UNKNOWN:
            controller.set_shuffle_mode(ShuffleMode.OFF)
        else:
            controller.set_shuffle_mode(SHUFFLE_CYCLE[code - 1])
    elif code == SHUFFLE_CYCLE_NEXT:
        controller.set_shuffle_mode(
            SHUFFLE_CYCLE[int(controller.shuffle_mode) % len(SHUFFLE_CYCLE)]
        )
    elif code == SHUFFLE_TOGGLE:
        controller.toggle_shuffle()


def apply_seek(ctx: HandlerContext, position_ms: int, override: StatusOverride) -> None:
    if position_ms == 0:
        return
    ctx.player.set_position_ms(position_ms)
    track = ctx.player.current_track
    duration = track.duration_ms if track is not None else None
    # Seeking to or past the end finishes the track; report the restart
    if duration is not None and duration <= position_ms:
        override.position_ms = 0
    else:
        override.position_ms = position_ms


def encode_status(ctx: HandlerContext, override: StatusOverride) -> bytes:
    """Build the 12-byte status from the player state and the overrides."""
    player = ctx.player
    controller = ctx.controller

    state = player.state
    flags = 0
    if state is PlayState.PAUSED:
        flags = PAUSED_BIT
    elif state is PlayState.PLAYING:
        flags = PLAYING_BIT

    forced = ctx.override.active
    if override.paused is not Change.UNCHANGED and not forced:
        flags &= ~PAUSED_BIT
        if override.paused is Change.SET_TRUE:
            flags |= PAUSED_BIT
    if override.playing is not Change.UNCHANGED or forced:
        playing = forced or override.playing is Change.SET_TRUE
        flags &= ~PLAYING_BIT
        if playing:
            flags |= PLAYING_BIT
    if flags & PLAYING_BIT:
        flags &= ~PAUSED_BIT

    flags |= (int(controller.repeat_mode) << 4) & REPEAT_MASK
    flags |= int(controller.shuffle_mode) & 0x0F

    position = player.position_ms if override.position_ms is None else override.position_ms

    track = player.current_track
    change_flag = (track.file_size or 0) if track is not None else 0
    track_id = int(track.id) if track is not None else 0

    return (
        bytes((flags & 0xFF, max(0, min(100, player.volume)) & 0xFF))
        + write_u32(position)
        + write_u16(change_flag)
        + write_u32(track_id)
    )


async def handle_player_status(ctx: HandlerContext, payload: bytes) -> bytes:
    """Apply the controls present in `payload`, then report the status."""
    length = len(payload)
    override = StatusOverride()

    if length > 0:
        await apply_play_control(ctx, (payload[0] >> 4) & 0x0F, override)
        apply_repeat_control(ctx, payload[0] & 0x0F)

    if length > 1:
        apply_shuffle_control(ctx, payload[1] & 0x0F)

    if length > 2:
        volume = resolve_volume(payload[2], ctx.player.volume)
        if volume is not None:
            ctx.player.set_volume(volume)

    if length > 6:
        apply_seek(ctx, read_u32(payload, 3), override)

    return encode_status(ctx, override)
