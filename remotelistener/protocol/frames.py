"""
Request framing for the remote protocol.

A client opens a TCP connection, sends a single request and reads the reply
until the server closes the connection:

    [opcode: 1 byte][auth token: u16 LE][payload: remaining bytes]

A frame shorter than three bytes cannot carry a token; it is parsed with
`token=None`, which never matches the configured token.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from remotelistener.protocol.codec import read_u16

HEADER_SIZE = 3


class ProtocolError(Exception):
    """Invalid protocol data received."""


class Opcode(IntEnum):
    """Request opcodes understood by the dispatcher."""

    TEST = 0
    PLAYER_STATUS = 1
    SONG_INFO = 2
    SYNC_DATABASE = 3
    COVER = 4
    PLAYLIST = 5
    PLAYLIST_CONTROL = 6


@dataclass(frozen=True, slots=True)
class Request:
    """One parsed request; lives for a single connection."""

    opcode: int
    token: int | None
    payload: bytes

    @property
    def length(self) -> int:
        return len(self.payload)

    def token_matches(self, expected: int) -> bool:
        return self.token is not None and self.token == expected

    @property
    def opcode_name(self) -> str:
        try:
            return Opcode(self.opcode).name
        except ValueError:
            return f"UNKNOWN({self.opcode})"


def parse_request(data: bytes) -> Request:
    """
    Split raw bytes into opcode, token and payload.

    Raises:
        ProtocolError: If `data` is empty.
    """
    if not data:
        raise ProtocolError("empty request")

    opcode = data[0]
    if len(data) < HEADER_SIZE:
        return Request(opcode=opcode, token=None, payload=bytes(data[1:]))

    return Request(
        opcode=opcode,
        token=read_u16(data, 1),
        payload=bytes(data[HEADER_SIZE:]),
    )
