"""
Playlist (opcode 5) and PlaylistControl (opcode 6) handlers.

Playlist sub-commands (payload byte 0):

- 1 list playlists
    reply: active source id u16, count u16, then per playlist
           track count u32, id u16, name string
- 2 list tracks: [2, playlist id u16, max u32, start u32]
    reply: count u32, returned u32, start u32, then `returned` track ids u32
- 3 play track: [3, playlist id u16, track id u32]
    reply: 0 unknown track, 1 played from the library, 2 played in the playlist
- 4 add track: [4, allow twice u8, playlist id u16, track id u32]
- 5 remove track: [5, playlist id u16, track id u32]
    reply (4, 5): 1 done, 0 rejected

Only the remote-control playlist and the play queue accept 4 and 5.

PlaylistControl sub-command 1: [1, track id u32] plays the track, in the
active source when it is there; reply 1 or 0.
"""

from __future__ import annotations

import logging

from remotelistener.core import NotFoundError
from remotelistener.core.sources import REMOTE_PLAYLIST_ID, TrackSource
from remotelistener.protocol.codec import read_u16, read_u32, write_string, write_u16, write_u32
from remotelistener.protocol.handlers import HandlerContext

logger = logging.getLogger(__name__)

LIST_PLAYLISTS = 1
LIST_TRACKS = 2
PLAY_TRACK = 3
ADD_TRACK = 4
REMOVE_TRACK = 5

CONTROL_PLAY_TRACK = 1

# start position flag: low 31 bits are an offset before the current track
RELATIVE_START = 0x80000000
MAX_RELATIVE_OFFSET = 100

PLAY_NOT_FOUND = 0
PLAY_IN_LIBRARY = 1
PLAY_IN_PLAYLIST = 2

FAILED = b"\x00"
EMPTY_LISTING = b"\x00" * 12


def _encode_playlist(source: TrackSource) -> bytes:
    return write_u32(source.count) + write_u16(source.id) + write_string(source.name)


def list_playlists(ctx: HandlerContext) -> bytes:
    remote = ctx.sources.remote_playlist
    listed = sorted(
        (s for s in ctx.sources.all_sources() if s.count > 0 and s.id != REMOTE_PLAYLIST_ID),
        key=lambda s: s.name.casefold(),
    )

    records: list[bytes] = []
    remote_added = False
    for source in listed:
        if not remote_added and source.name.casefold() >= remote.name.casefold():
            records.append(_encode_playlist(remote))
            remote_added = True
        records.append(_encode_playlist(source))
    if not remote_added:
        records.append(_encode_playlist(remote))

    active = ctx.controller.active_source
    header = write_u16(active.id if active is not None else 0) + write_u16(len(records))
    return header + b"".join(records)


def resolve_start(ctx: HandlerContext, source: TrackSource, start: int) -> int:
    """Turn a relative start position into an absolute index."""
    if not start & RELATIVE_START:
        return start
    offset = start & 0x7FFFFFFF
    track = ctx.player.current_track
    index = source.index_of(int(track.id) if track is not None else None)
    if index < 0 or offset > MAX_RELATIVE_OFFSET:
        return 0
    return max(0, index - offset)


def list_tracks(ctx: HandlerContext, payload: bytes) -> bytes:
    length = len(payload)
    playlist_id = read_u16(payload, 1) if length > 2 else 0
    max_return = read_u32(payload, 3) if length > 6 else 0
    start = read_u32(payload, 7) if length > 10 else 0

    try:
        source = ctx.sources.require(playlist_id)
    except NotFoundError:
        logger.debug("Track listing for unknown playlist %d", playlist_id)
        return EMPTY_LISTING

    count = source.count
    start = resolve_start(ctx, source, start)
    returned = max(0, count - start)
    if max_return != 0 and returned > max_return:
        returned = max_return

    ids = source.track_ids[start : start + returned]
    body = b"".join(
        write_u32(track_id if ctx.library.has_track(track_id) else 0) for track_id in ids
    )
    return write_u32(count) + write_u32(returned) + write_u32(start) + body


async def play_track(ctx: HandlerContext, playlist_id: int, track_id: int) -> int:
    try:
        track = await ctx.library.require_track(track_id)
    except NotFoundError:
        return PLAY_NOT_FOUND

    source = ctx.sources.get(playlist_id)
    if source is not None and track_id in source:
        await ctx.controller.open_play(track, source)
        ctx.override.arm()
        return PLAY_IN_PLAYLIST

    await ctx.controller.open_play(track, ctx.sources.library)
    ctx.override.arm()
    return PLAY_IN_LIBRARY


async def handle_playlist(ctx: HandlerContext, payload: bytes) -> bytes:
    request = payload[0] if payload else 0
    length = len(payload)

    if request == LIST_PLAYLISTS:
        return list_playlists(ctx)

    if request == LIST_TRACKS:
        return list_tracks(ctx, payload)

    if request == PLAY_TRACK and length > 6:
        result = await play_track(ctx, read_u16(payload, 1), read_u32(payload, 3))
        return bytes((result,))

    if request == ADD_TRACK and length > 7:
        allow_twice = payload[1] != 0
        playlist_id = read_u16(payload, 2)
        track_id = read_u32(payload, 4)
        if not ctx.library.has_track(track_id):
            return FAILED
        try:
            added = await ctx.sources.add_track(playlist_id, track_id, allow_duplicates=allow_twice)
        except NotFoundError:
            return FAILED
        return b"\x01" if added else FAILED

    if request == REMOVE_TRACK and length > 6:
        try:
            removed = await ctx.sources.remove_track(read_u16(payload, 1), read_u32(payload, 3))
        except NotFoundError:
            return FAILED
        return b"\x01" if removed else FAILED

    return FAILED


async def handle_playlist_control(ctx: HandlerContext, payload: bytes) -> bytes:
    request = payload[0] if payload else 0

    if request == CONTROL_PLAY_TRACK and len(payload) > 4:
        track_id = read_u32(payload, 1)
        try:
            track = await ctx.library.require_track(track_id)
        except NotFoundError:
            return FAILED
        active = ctx.controller.active_source
        source = active if active is not None and track_id in active else ctx.sources.library
        await ctx.controller.open_play(track, source)
        ctx.override.arm()
        return b"\x01"

    return FAILED
