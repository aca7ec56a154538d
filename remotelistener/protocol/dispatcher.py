"""
Command dispatcher for the remote protocol.

Maps an opcode to its handler through a fixed table and enforces the auth
gate before any handler runs:

- token matches: run the table handler (unknown opcodes get no reply)
- token does not match: Test replies with a single zero byte so the client
  can tell "wrong token" from "server unreachable"; everything else is
  dropped without a reply
"""

from __future__ import annotations

import logging
from typing import Callable

from remotelistener.protocol.frames import Opcode, Request
from remotelistener.protocol.handlers import Handler, HandlerContext
from remotelistener.protocol.handlers.playlist import handle_playlist, handle_playlist_control
from remotelistener.protocol.handlers.song import handle_cover, handle_song_info
from remotelistener.protocol.handlers.status import handle_player_status
from remotelistener.protocol.handlers.sync import handle_sync_database

logger = logging.getLogger(__name__)

TEST_ACCEPTED = b"\x01"
TEST_REJECTED = b"\x00"


async def handle_test(ctx: HandlerContext, payload: bytes) -> bytes:
    return TEST_ACCEPTED


class CommandDispatcher:
    """
    Runs one request against the handler table.

    `token_source` is called per request, so a changed auth token applies to
    the next request without rebuilding the dispatcher.
    """

    def __init__(self, ctx: HandlerContext, token_source: Callable[[], int]) -> None:
        self.ctx = ctx
        self._token_source = token_source

        # Handlers indexed by opcode
        self._handlers: dict[int, Handler] = {
            Opcode.TEST: handle_test,
            Opcode.PLAYER_STATUS: handle_player_status,
            Opcode.SONG_INFO: handle_song_info,
            Opcode.SYNC_DATABASE: handle_sync_database,
            Opcode.COVER: handle_cover,
            Opcode.PLAYLIST: handle_playlist,
            Opcode.PLAYLIST_CONTROL: handle_playlist_control,
        }

    @property
    def opcodes(self) -> frozenset[int]:
        return frozenset(int(op) for op in self._handlers)

    async def dispatch(self, request: Request) -> bytes | None:
        """
        Returns:
            The reply bytes, or None when the connection should be closed
            without a reply.
        """
        if not request.token_matches(self._token_source()):
            if request.opcode == Opcode.TEST:
                logger.debug("Test request with wrong token")
                return TEST_REJECTED
            logger.debug("Dropped %s request: wrong token", request.opcode_name)
            return None

        handler = self._handlers.get(request.opcode)
        if handler is None:
            logger.debug("Unknown opcode %d", request.opcode)
            return None

        try:
            response = await handler(self.ctx, request.payload)
        except Exception as e:
            logger.exception("Error handling %s request: %s", request.opcode_name, e)
            return None

        return response or None
