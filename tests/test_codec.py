"""
Tests for the wire codec and request framing.
"""

import pytest

from remotelistener.protocol.codec import (
    read_string,
    read_u16,
    read_u32,
    trim,
    write_string,
    write_u16,
    write_u32,
)
from remotelistener.protocol.frames import Opcode, ProtocolError, parse_request


class TestIntegers:
    def test_u16_is_little_endian(self) -> None:
        assert write_u16(0x1234) == b"\x34\x12"
        assert read_u16(b"\x34\x12", 0) == 0x1234

    def test_u32_is_little_endian(self) -> None:
        assert write_u32(0x80000005) == b"\x05\x00\x00\x80"
        assert read_u32(b"\xff\x05\x00\x00\x80", 1) == 0x80000005

    def test_write_masks_to_width(self) -> None:
        assert write_u16(0x1_0001) == b"\x01\x00"
        assert write_u32(0x1_0000_0002) == b"\x02\x00\x00\x00"


class TestStrings:
    def test_empty_and_none_encode_as_zero_length(self) -> None:
        assert write_string("") == b"\x00\x00"
        assert write_string(None) == b"\x00\x00"

    def test_length_is_utf8_byte_count(self) -> None:
        encoded = write_string("Björk")
        assert encoded[:2] == b"\x06\x00"
        assert encoded[2:] == "Björk".encode("utf-8")

    def test_read_string_reports_consumed_bytes(self) -> None:
        data = write_string("abc") + write_string("de")
        first, consumed = read_string(data, 0)
        second, _ = read_string(data, consumed)
        assert (first, consumed, second) == ("abc", 5, "de")

    def test_long_string_is_cut_to_max_length(self) -> None:
        encoded = write_string("x" * 70000)
        assert encoded[:2] == b"\xff\xff"
        assert len(encoded) == 2 + 0xFFFF

    def test_cut_never_splits_a_character(self) -> None:
        value = "aa" + "é" * 40000

        encoded = write_string(value)
        text, consumed = read_string(encoded, 0)

        assert read_u16(encoded, 0) == 65534
        assert consumed == len(encoded)
        assert text == "aa" + "é" * 32766
        assert write_string(text) == encoded

    def test_trim(self) -> None:
        assert trim("  Title \t") == "Title"
        assert trim(None) == ""


class TestParseRequest:
    def test_full_frame(self) -> None:
        request = parse_request(b"\x01\x39\x30\xaa\xbb")
        assert request.opcode == Opcode.PLAYER_STATUS
        assert request.token == 12345
        assert request.payload == b"\xaa\xbb"
        assert request.length == 2

    def test_header_only_frame_has_empty_payload(self) -> None:
        request = parse_request(b"\x00\x00\x00")
        assert request.token == 0
        assert request.payload == b""
        assert request.token_matches(0)

    def test_short_frame_never_matches_token(self) -> None:
        request = parse_request(b"\x00\x00")
        assert request.token is None
        assert not request.token_matches(0)

    def test_empty_frame_is_rejected(self) -> None:
        with pytest.raises(ProtocolError):
            parse_request(b"")

    def test_unknown_opcode_name(self) -> None:
        assert parse_request(b"\x63\x00\x00").opcode_name == "UNKNOWN(99)"
