"""
SongInfo (opcode 2) and Cover (opcode 4) handlers.

SongInfo reply:

    duration u32, title, artist, album, genre (strings), year u16, cover id (string)

The cover id is only sent when the cover store really has the image, so the
client never asks for covers that do not exist.
"""

from __future__ import annotations

import logging

from remotelistener.core import NotFoundError
from remotelistener.protocol.codec import read_string, trim, write_string, write_u16, write_u32
from remotelistener.protocol.handlers import HandlerContext

logger = logging.getLogger(__name__)

NO_COVER = b"\x00"


async def handle_song_info(ctx: HandlerContext, payload: bytes) -> bytes:
    track = ctx.player.current_track
    if track is None:
        return (
            write_u32(0)
            + write_string(None) * 4
            + write_u16(0)
            + write_string(None)
        )

    cover_id = ""
    if track.artwork_id and ctx.covers is not None and ctx.covers.exists(track.artwork_id):
        cover_id = track.artwork_id

    return b"".join(
        (
            write_u32(track.duration_ms or 0),
            write_string(trim(track.title)),
            write_string(trim(track.artist)),
            write_string(trim(track.album)),
            write_string(trim(track.genre)),
            write_u16(track.year or 0),
            write_string(cover_id),
        )
    )


async def handle_cover(ctx: HandlerContext, payload: bytes) -> bytes:
    """Raw image bytes for the requested (or current) cover, else a single zero byte."""
    if ctx.covers is None:
        return NO_COVER

    cover_id = ""
    if len(payload) > 1:
        cover_id, _ = read_string(payload, 0)

    if not cover_id:
        track = ctx.player.current_track
        cover_id = (track.artwork_id or "") if track is not None else ""

    if not cover_id:
        return NO_COVER

    try:
        return await ctx.covers.load(cover_id)
    except NotFoundError:
        logger.debug("No cover for %r", cover_id)
        return NO_COVER
