"""字幕生成

把渲染提示（帧坐标）写成 ASS（烧录进视频）和 SRT（随视频一起提供下载）。
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import structlog

from lyricstudio.infra.config.settings import get_settings
from lyricstudio.timeline.models import DEFAULT_FPS, RenderCue

logger = structlog.get_logger(__name__)

_ASS_STYLE_FORMAT = (
    "Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, "
    "Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, "
    "Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding"
)
_ASS_EVENT_FORMAT = "Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"


@dataclass(frozen=True)
class SubtitleStyle:
    """歌词在画面中的样式，默认居中（ASS 对齐方式 5）。"""

    font_name: str = "Arial"
    font_size: int = 48
    primary_color: str = "&H00FFFFFF"
    outline_color: str = "&H00000000"
    outline: int = 2
    alignment: int = 5
    margin: int = 40
    fade_ms: int = 150

    @classmethod
    def from_settings(cls) -> "SubtitleStyle":
        settings = get_settings()
        return cls(font_name=settings.render_font_name, font_size=settings.render_font_size)

    def ass_line(self) -> str:
        return (
            f"Style: Default,{self.font_name},{self.font_size},{self.primary_color},&H000000FF,"
            f"{self.outline_color},&H00000000,-1,0,0,0,100,100,0,0,1,{self.outline},0,"
            f"{self.alignment},{self.margin},{self.margin},{self.margin},1"
        )


def _split_ms(ms: int) -> tuple[int, int, int, int]:
    seconds, millis = divmod(max(0, ms), 1000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    return hours, minutes, seconds, millis


def format_srt_timestamp(ms: int) -> str:
    """毫秒 -> ``HH:MM:SS,mmm``

    Example:
        >>> format_srt_timestamp(1500)
        '00:00:01,500'
    """
    hours, minutes, seconds, millis = _split_ms(ms)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


def format_ass_timestamp(ms: int) -> str:
    """毫秒 -> ``H:MM:SS.cc``（ASS 只精确到百分之一秒）

    Example:
        >>> format_ass_timestamp(1500)
        '0:00:01.50'
    """
    hours, minutes, seconds, millis = _split_ms(ms)
    return f"{hours}:{minutes:02d}:{seconds:02d}.{millis // 10:02d}"


def cue_window_ms(cue: RenderCue, fps: int = DEFAULT_FPS) -> tuple[int, int]:
    """字幕显示区间；end_frame 是最后显示的一帧，结束时间取下一帧的起点。"""
    return cue.start_ms(fps), round((cue.end_frame + 1) * 1000 / fps)


def render_srt(cues: Sequence[RenderCue], *, fps: int = DEFAULT_FPS) -> str:
    blocks = []
    for index, cue in enumerate(cues, start=1):
        start_ms, end_ms = cue_window_ms(cue, fps)
        blocks.append(f"{index}\n{format_srt_timestamp(start_ms)} --> {format_srt_timestamp(end_ms)}\n{cue.text}\n")
    return "\n".join(blocks)


def render_ass(
    cues: Sequence[RenderCue],
    *,
    fps: int = DEFAULT_FPS,
    style: SubtitleStyle | None = None,
    resolution: tuple[int, int] = (1280, 720),
    title: str = "Lyric Video",
) -> str:
    style = style or SubtitleStyle()
    width, height = resolution
    lines = [
        "[Script Info]",
        f"Title: {title}",
        "ScriptType: v4.00+",
        "WrapStyle: 0",
        "ScaledBorderAndShadow: yes",
        f"PlayResX: {width}",
        f"PlayResY: {height}",
        "",
        "[V4+ Styles]",
        f"Format: {_ASS_STYLE_FORMAT}",
        style.ass_line(),
        "",
        "[Events]",
        f"Format: {_ASS_EVENT_FORMAT}",
    ]
    for cue in cues:
        start_ms, end_ms = cue_window_ms(cue, fps)
        # 淡入淡出不超过显示时长的一半
        fade = min(style.fade_ms, (end_ms - start_ms) // 2)
        prefix = f"{{\\fad({fade},{fade})}}" if fade > 0 else ""
        text = cue.text.replace("\n", "\\N")
        lines.append(
            f"Dialogue: 0,{format_ass_timestamp(start_ms)},{format_ass_timestamp(end_ms)},"
            f"Default,,0,0,0,,{prefix}{text}"
        )
    return "\n".join(lines) + "\n"


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def generate_srt(cues: Sequence[RenderCue], output_path: Path, *, fps: int = DEFAULT_FPS) -> Path:
    logger.info("subtitle.generate_srt", cues=len(cues), output=output_path.as_posix())
    return _write(output_path, render_srt(cues, fps=fps))


def generate_ass(
    cues: Sequence[RenderCue],
    output_path: Path,
    *,
    fps: int = DEFAULT_FPS,
    style: SubtitleStyle | None = None,
    resolution: tuple[int, int] = (1280, 720),
    title: str = "Lyric Video",
) -> Path:
    path = _write(output_path, render_ass(cues, fps=fps, style=style, resolution=resolution, title=title))
    logger.info("subtitle.generate_ass", cues=len(cues), output=path.as_posix(), file_size=path.stat().st_size)
    return path
