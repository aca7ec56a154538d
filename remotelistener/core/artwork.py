import asyncio
import base64
import hashlib
import io
import logging
import re
from pathlib import Path
from typing import Optional

from mutagen import File as mutagen_file
from mutagen.flac import FLAC, Picture
from mutagen.id3 import ID3
from mutagen.mp4 import MP4, MP4Cover
from PIL import Image

from remotelistener.core import NotFoundError

logger = logging.getLogger(__name__)

# Cover ids end up in file names; keep them to a safe alphabet
_COVER_ID_RE = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]*$")

COVER_SUFFIX = ".jpg"
JPEG_QUALITY = 90


def album_cover_id(artist: str | None, album: str | None) -> str:
    """Stable cover id for an album, shared by all its tracks."""
    key = f"{artist or ''}\t{album or ''}"
    return "album-" + hashlib.md5(key.encode("utf-8")).hexdigest()


def is_valid_cover_id(cover_id: str | None) -> bool:
    return bool(cover_id) and _COVER_ID_RE.match(cover_id) is not None


class CoverStore:
    """
    Directory of JPEG cover images keyed by cover id.

    The remote client asks for covers by the id reported in the song info, so
    every stored image is normalized to JPEG (`<cover id>.jpg`). Images are
    extracted from the audio files' embedded artwork during library scans.
    """

    def __init__(self, cover_dir: Path):
        self.cover_dir = cover_dir
        self.cover_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, cover_id: str) -> Optional[Path]:
        """File path for a cover id, or None if the id is not acceptable."""
        if not is_valid_cover_id(cover_id):
            return None
        return self.cover_dir / f"{cover_id}{COVER_SUFFIX}"

    def exists(self, cover_id: str | None) -> bool:
        if cover_id is None:
            return False
        path = self.path_for(cover_id)
        return path is not None and path.is_file()

    async def read(self, cover_id: str | None) -> Optional[bytes]:
        """Raw image bytes, or None if there is no such cover."""
        if cover_id is None:
            return None
        path = self.path_for(cover_id)
        if path is None:
            logger.debug("Rejected cover id %r", cover_id)
            return None
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read cover %s: %s", path, e)
            return None

    async def load(self, cover_id: str) -> bytes:
        """
        Image bytes for `cover_id`.

        Raises:
            NotFoundError: If the id is invalid or no image is stored for it.
        """
        data = await self.read(cover_id)
        if not data:
            raise NotFoundError(f"cover {cover_id!r} not found")
        return data

    async def store(self, cover_id: str, data: bytes, mime: str | None = None) -> bool:
        """
        Store image data under `cover_id`, converting to JPEG if needed.

        Returns:
            True if the cover was written.
        """
        path = self.path_for(cover_id)
        if path is None:
            raise ValueError(f"invalid cover id: {cover_id!r}")
        try:
            jpeg = await asyncio.to_thread(self._to_jpeg, data, mime)
        except Exception as e:
            logger.warning("Cannot decode artwork for %s: %s", cover_id, e)
            return False
        await asyncio.to_thread(self._write_atomic, path, jpeg)
        return True

    async def store_from_file(self, cover_id: str, audio_path: Path) -> bool:
        """Extract embedded artwork from `audio_path` and store it. No-op if already stored."""
        if self.exists(cover_id):
            return True
        result = await asyncio.to_thread(self.extract_from_file, audio_path)
        if result is None:
            return False
        data, mime = result
        return await self.store(cover_id, data, mime)

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

    @classmethod
    def _to_jpeg(cls, data: bytes, mime: str | None) -> bytes:
        if (mime or cls._detect_mime_from_magic(data)) == "image/jpeg" and data.startswith(
            b"\xff\xd8\xff"
        ):
            return data
        img = Image.open(io.BytesIO(data))
        img = img.convert("RGB")
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=JPEG_QUALITY)
        return out.getvalue()

    @classmethod
    def extract_from_file(cls, path: Path) -> Optional[tuple[bytes, str]]:
        """Synchronous extraction of the embedded cover using mutagen."""
        try:
            audio = mutagen_file(path)
            if audio is None:
                return None

            # MP4 (m4a, m4b)
            if isinstance(audio, MP4):
                if audio.tags and "covr" in audio.tags:
                    covers = audio.tags["covr"]
                    if covers:
                        cover = covers[0]
                        data = bytes(cover)
                        if isinstance(cover, MP4Cover) and cover.imageformat == MP4Cover.FORMAT_PNG:
                            return data, "image/png"
                        if isinstance(cover, MP4Cover) and cover.imageformat == MP4Cover.FORMAT_JPEG:
                            return data, "image/jpeg"
                        return data, cls._detect_mime_from_magic(data)

            # FLAC
            elif isinstance(audio, FLAC):
                if audio.pictures:
                    pic = audio.pictures[0]
                    return pic.data, pic.mime

            # ID3 (mp3); prefer the front cover (type 3)
            elif isinstance(getattr(audio, "tags", None), ID3):
                apic_frames = audio.tags.getall("APIC")
                if apic_frames:
                    cover = next((f for f in apic_frames if f.type == 3), apic_frames[0])
                    return cover.data, cover.mime

            # Vorbis (ogg, opus): base64 METADATA_BLOCK_PICTURE
            elif getattr(audio, "tags", None):
                for key in ("metadata_block_picture", "METADATA_BLOCK_PICTURE"):
                    if key in audio.tags:
                        try:
                            pic = Picture(base64.b64decode(audio.tags[key][0]))
                            return pic.data, pic.mime
                        except Exception:
                            continue

        except Exception as e:
            logger.debug("Artwork extraction failed for %s: %s", path, e)

        return None

    @staticmethod
    def _detect_mime_from_magic(data: bytes) -> str:
        """Fallback MIME detection via magic bytes."""
        if data.startswith(b"\xff\xd8\xff"):
            return "image/jpeg"
        elif data.startswith(b"\x89PNG\r\n\x1a\n"):
            return "image/png"
        elif data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
            return "image/gif"
        elif data.startswith(b"RIFF") and data[8:12] == b"WEBP":
            return "image/webp"
        else:
            return "image/jpeg"
