"""
Wire codec for the remote protocol.

Every multi-byte integer on the wire is little-endian, and strings are a u16
byte length followed by UTF-8 bytes:

    u16:     [lo][hi]
    u32:     [b0][b1][b2][b3]            (b0 least significant)
    string:  [len: u16][len bytes of UTF-8]

Readers do not check bounds beyond what `struct` enforces; handlers look at
the payload length before touching optional fields.
"""

import struct

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")

MAX_STRING_BYTES = 0xFFFF


def read_u16(buf: bytes, pos: int) -> int:
    return _U16.unpack_from(buf, pos)[0]


def write_u16(value: int) -> bytes:
    """Encode the low 16 bits of `value`."""
    return _U16.pack(value & 0xFFFF)


def read_u32(buf: bytes, pos: int) -> int:
    return _U32.unpack_from(buf, pos)[0]


def write_u32(value: int) -> bytes:
    """Encode the low 32 bits of `value`."""
    return _U32.pack(value & 0xFFFFFFFF)


def read_string(buf: bytes, pos: int) -> tuple[str, int]:
    """
    Decode a length-prefixed string at `pos`.

    Returns:
        (text, bytes consumed including the length prefix)
    """
    length = read_u16(buf, pos)
    start = pos + 2
    raw = bytes(buf[start : start + length])
    return raw.decode("utf-8", errors="replace"), length + 2


def write_string(value: str | None) -> bytes:
    """Encode a string; None and "" both become the two bytes 00 00."""
    if not value:
        return b"\x00\x00"
    data = value.encode("utf-8")
    if len(data) > MAX_STRING_BYTES:
        # Cut on a character boundary so the bytes stay valid UTF-8
        data = data[:MAX_STRING_BYTES].decode("utf-8", "ignore").encode("utf-8")
    return write_u16(len(data)) + data


def trim(value: str | None) -> str:
    """Strip surrounding whitespace, mapping None to ""."""
    return value.strip() if value else ""
