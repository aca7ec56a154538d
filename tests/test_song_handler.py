"""
Tests for the SongInfo and Cover handlers and the cover store behind them.
"""

from __future__ import annotations

import io

import pytest
from PIL import Image

from remotelistener.core import NotFoundError
from remotelistener.core.artwork import CoverStore, album_cover_id, is_valid_cover_id
from remotelistener.core.library import Track, TrackId
from remotelistener.protocol.codec import read_string, read_u16, read_u32, write_string
from remotelistener.protocol.handlers import HandlerContext
from remotelistener.protocol.handlers.song import handle_cover, handle_song_info


def png_bytes(color: tuple[int, int, int] = (200, 10, 10)) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (8, 8), color).save(out, format="PNG")
    return out.getvalue()


def decode_song(reply: bytes) -> tuple[int, list[str], int, str]:
    duration = read_u32(reply, 0)
    pos = 4
    texts = []
    for _ in range(4):
        text, consumed = read_string(reply, pos)
        texts.append(text)
        pos += consumed
    year = read_u16(reply, pos)
    cover_id, consumed = read_string(reply, pos + 2)
    assert pos + 2 + consumed == len(reply)
    return duration, texts, year, cover_id


def make_track(artwork_id: str | None = None) -> Track:
    return Track(
        id=TrackId(77),
        path="/music/x.flac",
        title="  Padded Title ",
        artist="Artist",
        album="Album",
        genre=None,
        year=1999,
        duration_ms=123_456,
        file_size=4096,
        artwork_id=artwork_id,
    )


class TestSongInfo:
    async def test_no_track(self, ctx: HandlerContext) -> None:
        reply = await handle_song_info(ctx, b"")
        assert reply == b"\x00" * 16

    async def test_track_fields_are_trimmed(self, ctx: HandlerContext) -> None:
        await ctx.controller.open_play(make_track())

        duration, texts, year, cover_id = decode_song(await handle_song_info(ctx, b""))

        assert duration == 123_456
        assert texts == ["Padded Title", "Artist", "Album", ""]
        assert year == 1999
        assert cover_id == ""

    async def test_cover_id_only_when_stored(self, ctx: HandlerContext, covers: CoverStore) -> None:
        cover_id = album_cover_id("Artist", "Album")
        await ctx.controller.open_play(make_track(artwork_id=cover_id))

        *_, reported = decode_song(await handle_song_info(ctx, b""))
        assert reported == ""

        assert await covers.store(cover_id, png_bytes())
        *_, reported = decode_song(await handle_song_info(ctx, b""))
        assert reported == cover_id


class TestCover:
    async def test_requested_cover(self, ctx: HandlerContext, covers: CoverStore) -> None:
        await covers.store("album-abc", png_bytes())

        reply = await handle_cover(ctx, write_string("album-abc"))

        assert reply.startswith(b"\xff\xd8\xff")

    async def test_empty_id_falls_back_to_current_track(
        self, ctx: HandlerContext, covers: CoverStore
    ) -> None:
        await covers.store("album-current", png_bytes())
        await ctx.controller.open_play(make_track(artwork_id="album-current"))

        reply = await handle_cover(ctx, write_string(""))

        assert reply == await covers.read("album-current")

    async def test_missing_cover(self, ctx: HandlerContext) -> None:
        assert await handle_cover(ctx, write_string("album-missing")) == b"\x00"

    async def test_no_id_and_no_track(self, ctx: HandlerContext) -> None:
        assert await handle_cover(ctx, b"") == b"\x00"

    async def test_path_traversal_is_rejected(self, ctx: HandlerContext) -> None:
        assert await handle_cover(ctx, write_string("../library")) == b"\x00"


class TestCoverStore:
    @pytest.mark.parametrize(
        ("cover_id", "valid"),
        [
            ("album-0123abcd", True),
            ("a.b_c-d", True),
            (".hidden", False),
            ("../x", False),
            ("a/b", False),
            ("", False),
            (None, False),
        ],
    )
    def test_cover_id_validation(self, cover_id: str | None, valid: bool) -> None:
        assert is_valid_cover_id(cover_id) is valid

    def test_album_cover_id_is_stable(self) -> None:
        assert album_cover_id("A", "B") == album_cover_id("A", "B")
        assert album_cover_id("A", "B") != album_cover_id("A", "C")
        assert album_cover_id("A", "B").startswith("album-")

    async def test_store_converts_to_jpeg(self, covers: CoverStore) -> None:
        assert await covers.store("album-png", png_bytes(), "image/png")

        data = await covers.read("album-png")
        assert data is not None
        assert Image.open(io.BytesIO(data)).format == "JPEG"
        assert covers.exists("album-png")

    async def test_store_rejects_invalid_id(self, covers: CoverStore) -> None:
        with pytest.raises(ValueError):
            await covers.store("../evil", png_bytes())

    async def test_store_undecodable_image(self, covers: CoverStore) -> None:
        assert not await covers.store("album-bad", b"not an image", "image/png")
        assert not covers.exists("album-bad")

    async def test_load(self, covers: CoverStore) -> None:
        await covers.store("album-load", png_bytes())

        assert await covers.load("album-load") == await covers.read("album-load")
        with pytest.raises(NotFoundError):
            await covers.load("album-none")
        with pytest.raises(NotFoundError):
            await covers.load("../x")
