"""音频标签与封面提取（mutagen）。"""

from __future__ import annotations

import hashlib
import io
from dataclasses import dataclass
from typing import Any

import structlog
from mutagen import File as MutagenFile
from mutagen import MutagenError

logger = structlog.get_logger(__name__)


class AudioMetadataError(ValueError):
    """无法解析音频文件。"""


@dataclass
class CoverArt:
    data: bytes
    format: str  # MIME，如 image/jpeg

    @property
    def extension(self) -> str:
        return self.format.split("/")[1] if "/" in self.format else "jpg"


@dataclass
class AudioTags:
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    year: str | None = None
    genre: list[str] | None = None
    duration: float | None = None
    cover: CoverArt | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "year": self.year,
            "genre": self.genre,
            "duration": self.duration,
        }


def file_sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _first(tags: Any, key: str) -> str | None:
    values = tags.get(key) if tags is not None else None
    if not values:
        return None
    return str(values[0])


def _extract_cover(data: bytes) -> CoverArt | None:
    audio = MutagenFile(io.BytesIO(data))
    tags = getattr(audio, "tags", None)
    if tags is None:
        return None
    # ID3 (mp3)
    if hasattr(tags, "getall"):
        for frame in tags.getall("APIC"):
            return CoverArt(data=bytes(frame.data), format=frame.mime or "image/jpeg")
    # FLAC / OGG
    for picture in getattr(audio, "pictures", None) or []:
        return CoverArt(data=bytes(picture.data), format=picture.mime or "image/jpeg")
    return None


def read_audio_tags(data: bytes) -> AudioTags:
    """解析常见标签、时长与第一张封面。

    Raises:
        AudioMetadataError: mutagen 无法识别该文件
    """
    try:
        audio = MutagenFile(io.BytesIO(data), easy=True)
    except MutagenError as exc:
        raise AudioMetadataError(str(exc)) from exc
    if audio is None:
        raise AudioMetadataError("无法识别的音频格式")

    tags = audio.tags
    year = _first(tags, "date")
    genre = list(tags.get("genre") or []) if tags is not None else []
    result = AudioTags(
        title=_first(tags, "title"),
        artist=_first(tags, "artist"),
        album=_first(tags, "album"),
        year=year[:4] if year else None,
        genre=genre or None,
        duration=float(audio.info.length) if audio.info else None,
    )
    try:
        result.cover = _extract_cover(data)
    except MutagenError as exc:
        logger.warning("audio_metadata.cover_failed", error=str(exc))

    logger.info(
        "audio_metadata.parsed",
        title=result.title,
        artist=result.artist,
        duration=result.duration,
        has_cover=result.cover is not None,
    )
    return result
