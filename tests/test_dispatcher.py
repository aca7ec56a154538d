"""
Tests for the command dispatcher: the auth gate, the handler table and the
error boundary.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from remotelistener.protocol.dispatcher import CommandDispatcher
from remotelistener.protocol.frames import Opcode, parse_request

TOKEN = 4242


def frame(opcode: int, token: int = TOKEN, payload: bytes = b"") -> bytes:
    return bytes((opcode,)) + token.to_bytes(2, "little") + payload


@pytest.fixture
def dispatcher() -> CommandDispatcher:
    return CommandDispatcher(MagicMock(), token_source=lambda: TOKEN)


class TestAuthGate:
    async def test_test_with_right_token(self, dispatcher: CommandDispatcher) -> None:
        assert await dispatcher.dispatch(parse_request(frame(Opcode.TEST))) == b"\x01"

    async def test_test_with_wrong_token_replies_zero(self, dispatcher: CommandDispatcher) -> None:
        assert await dispatcher.dispatch(parse_request(frame(Opcode.TEST, token=1))) == b"\x00"

    async def test_other_opcodes_with_wrong_token_get_no_reply(
        self, dispatcher: CommandDispatcher
    ) -> None:
        handler = AsyncMock(return_value=b"\x01")
        dispatcher._handlers[Opcode.PLAYER_STATUS] = handler

        result = await dispatcher.dispatch(parse_request(frame(Opcode.PLAYER_STATUS, token=1)))

        assert result is None
        handler.assert_not_awaited()

    async def test_short_frame_is_unauthenticated(self, dispatcher: CommandDispatcher) -> None:
        assert await dispatcher.dispatch(parse_request(b"\x00\x92")) == b"\x00"

    async def test_token_source_is_read_per_request(self) -> None:
        token = {"value": 1}
        dispatcher = CommandDispatcher(MagicMock(), token_source=lambda: token["value"])

        assert await dispatcher.dispatch(parse_request(frame(Opcode.TEST, token=1))) == b"\x01"
        token["value"] = 2
        assert await dispatcher.dispatch(parse_request(frame(Opcode.TEST, token=1))) == b"\x00"


class TestHandlerTable:
    def test_table_covers_every_opcode(self, dispatcher: CommandDispatcher) -> None:
        assert dispatcher.opcodes == frozenset(int(op) for op in Opcode)

    async def test_unknown_opcode_gets_no_reply(self, dispatcher: CommandDispatcher) -> None:
        assert await dispatcher.dispatch(parse_request(frame(42))) is None

    async def test_handler_receives_payload(self, dispatcher: CommandDispatcher) -> None:
        handler = AsyncMock(return_value=b"ok")
        dispatcher._handlers[Opcode.COVER] = handler

        result = await dispatcher.dispatch(parse_request(frame(Opcode.COVER, payload=b"\x01\x02")))

        assert result == b"ok"
        handler.assert_awaited_once_with(dispatcher.ctx, b"\x01\x02")

    async def test_handler_exception_closes_without_reply(
        self, dispatcher: CommandDispatcher
    ) -> None:
        dispatcher._handlers[Opcode.SONG_INFO] = AsyncMock(side_effect=RuntimeError("boom"))

        assert await dispatcher.dispatch(parse_request(frame(Opcode.SONG_INFO))) is None

    async def test_empty_response_means_no_reply(self, dispatcher: CommandDispatcher) -> None:
        dispatcher._handlers[Opcode.SONG_INFO] = AsyncMock(return_value=b"")

        assert await dispatcher.dispatch(parse_request(frame(Opcode.SONG_INFO))) is None
