"""LRC 歌词导入导出

导出格式::

    [ti:标题]
    [ar:歌手]
    [al:专辑]

    [01:15.40]歌词

导入只识别 ``[MM:SS(.xx)]文本`` 行，其余（包括头部标签）全部丢弃。
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import structlog

from lyricstudio.timeline.models import LyricLine
from lyricstudio.timeline.store import LyricLineStore

logger = structlog.get_logger(__name__)

LEGACY_LRC_FILENAME = "lyrics.lrc"

DEFAULT_TITLE = "Untitled Song"
DEFAULT_ARTIST = "Unknown Artist"
DEFAULT_ALBUM = "Unknown Album"

_LRC_LINE = re.compile(r"^\[(\d{2}):(\d{2})(\.\d+)?\](.*)$")


class LrcImportError(ValueError):
    """导入的文本中没有任何合法的时间戳行。"""


@dataclass(frozen=True)
class LrcMetadata:
    title: str = DEFAULT_TITLE
    artist: str = DEFAULT_ARTIST
    album: str = DEFAULT_ALBUM

    @classmethod
    def from_audio_metadata(cls, meta: Mapping[str, Any] | None) -> "LrcMetadata":
        """从音频标签（上传时 mutagen 解析的结果）构造，缺失字段使用默认值。"""
        if not meta:
            return cls()
        return cls(
            title=str(meta.get("title") or DEFAULT_TITLE),
            artist=str(meta.get("artist") or DEFAULT_ARTIST),
            album=str(meta.get("album") or DEFAULT_ALBUM),
        )


def format_lrc_timestamp(seconds: float | None) -> str:
    """秒 -> ``MM:SS.CC``。

    先四舍五入到百分之一秒再拆分，避免出现 ``00:60.00``。

    Example:
        >>> format_lrc_timestamp(75.4)
        '01:15.40'
    """
    if seconds is None or not math.isfinite(seconds):
        seconds = 0.0
    total_cs = max(0, round(seconds * 100))
    minutes, rest = divmod(total_cs, 6000)
    secs, centis = divmod(rest, 100)
    return f"{minutes:02d}:{secs:02d}.{centis:02d}"


def export_lrc(lines: Iterable[LyricLine], metadata: LrcMetadata | None = None) -> str:
    meta = metadata or LrcMetadata()
    # sorted 是稳定排序，时间相同的行保持原有顺序
    ordered = sorted(lines, key=lambda line: line.timestamp or 0.0)

    parts = [f"[ti:{meta.title}]", f"[ar:{meta.artist}]", f"[al:{meta.album}]", ""]
    content = "\n".join(parts) + "\n"
    for line in ordered:
        content += f"[{format_lrc_timestamp(line.timestamp)}]{line.text}\n"
    return content


def lrc_filename(metadata: LrcMetadata | None = None) -> str:
    """``<标题> - <歌手>.lrc``；没有任何音频信息时沿用 ``lyrics.lrc``。"""
    if metadata is None:
        return LEGACY_LRC_FILENAME
    return f"{metadata.title} - {metadata.artist}.lrc"


def parse_lrc(text: str) -> list[LyricLine]:
    if not text:
        return []

    lines: list[LyricLine] = []
    for raw in text.splitlines():
        match = _LRC_LINE.match(raw.strip())
        if not match:
            continue
        minutes, seconds, fraction, body = match.groups()
        timestamp = int(minutes) * 60 + int(seconds) + (float(fraction) if fraction else 0.0)
        lines.append(LyricLine(id=len(lines) + 1, text=body.strip(), timestamp=timestamp))
    return lines


def import_lrc(store: LyricLineStore, text: str) -> int:
    """解析 LRC 并整体替换集合，返回导入的行数。

    Raises:
        LrcImportError: 没有任何一行匹配，此时集合保持不变
    """
    lines = parse_lrc(text)
    if not lines:
        logger.warning("lrc.import_empty", size=len(text or ""))
        raise LrcImportError("未找到有效的 LRC 时间戳行")
    store.replace_all(lines)
    logger.info("lrc.imported", count=len(lines))
    return len(lines)


def split_pasted_lyrics(text: str) -> list[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def import_pasted_lyrics(store: LyricLineStore, text: str) -> int:
    """粘贴纯文本歌词：每个非空行生成一条未打点的歌词行，替换原有集合。"""

    items = split_pasted_lyrics(text)
    store.add_lines_from_text(items)
    logger.info("lrc.pasted", count=len(items))
    return len(items)
