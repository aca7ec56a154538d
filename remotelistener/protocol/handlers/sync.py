"""
SyncDatabase handler (opcode 3).

Sub-commands (payload byte 0):
- 1: timestamp of the reduced database copy (u32 unix seconds, 0 = none)
- 2: the copy's raw bytes, or a single zero byte
- 3: rebuild the copy now; replies with a single 1
"""

from __future__ import annotations

import logging

from remotelistener.protocol.codec import write_u32
from remotelistener.protocol.handlers import HandlerContext

logger = logging.getLogger(__name__)

SYNC_TIMESTAMP = 1
SYNC_FETCH = 2
SYNC_REBUILD = 3


async def handle_sync_database(ctx: HandlerContext, payload: bytes) -> bytes:
    request = payload[0] if payload else 0
    cache = ctx.db_cache

    if cache is None:
        return write_u32(0) if request == SYNC_TIMESTAMP else b"\x00"

    if request == SYNC_TIMESTAMP:
        await cache.ensure_fresh()
        return write_u32(cache.timestamp)

    if request == SYNC_FETCH:
        data = await cache.read()
        if data is None:
            return b"\x00"
        logger.info("Sending database copy (%d bytes)", len(data))
        return data

    if request == SYNC_REBUILD:
        await cache.rebuild()
        return b"\x01"

    return b"\x00"
