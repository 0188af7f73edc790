"""渲染提示构建：歌词行 -> 帧坐标的字幕区间。"""

from __future__ import annotations

import math
from enum import Enum
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel, Field

from lyricstudio.timeline.models import DEFAULT_FPS, LyricLine, RenderCue

DEFAULT_TAIL_SECONDS = 5
COMPOSITION_ID = "LyricVideo"


class CompositionSize(str, Enum):
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"

    @property
    def dimensions(self) -> tuple[int, int]:
        if self is CompositionSize.PORTRAIT:
            return (720, 1280)
        return (1280, 720)


def build_render_cues(
    lines: Iterable[LyricLine],
    fps: int = DEFAULT_FPS,
    tail_seconds: int = DEFAULT_TAIL_SECONDS,
) -> list[RenderCue]:
    """过滤掉空文本和未打点的行，按时间排序后计算起止帧。

    每行持续到下一行开始前一帧；最后一行额外保留 ``tail_seconds`` 秒。
    两行落在同一帧时，前一行的 end_frame 取 start_frame，不会小于起点。

    Example:
        >>> lines = [LyricLine(1, "a", 0.0), LyricLine(2, "b", 5.0)]
        >>> [(c.start_frame, c.end_frame) for c in build_render_cues(lines)]
        [(0, 149), (150, 300)]
    """
    valid = sorted(
        (line for line in lines if line.is_valid),
        key=lambda line: line.timestamp,  # type: ignore[arg-type, return-value]
    )
    starts = [math.floor(line.timestamp * fps) for line in valid]  # type: ignore[operator]

    cues: list[RenderCue] = []
    for index, line in enumerate(valid):
        start = starts[index]
        if index + 1 < len(valid):
            end = max(start, starts[index + 1] - 1)
        else:
            end = start + tail_seconds * fps
        cues.append(RenderCue(text=line.text, start_frame=start, end_frame=end))
    return cues


def total_render_frames(
    cues: Sequence[RenderCue],
    audio_duration: Optional[float] = None,
    fps: int = DEFAULT_FPS,
) -> int:
    """视频总帧数：覆盖全部字幕；已知音频时长时再覆盖整首歌并留 1 秒余量。"""

    if not cues:
        return 0
    last_end = cues[-1].end_frame
    if audio_duration and audio_duration > 0 and math.isfinite(audio_duration):
        return max(last_end, math.floor(audio_duration * fps)) + fps
    return last_end


class CuePayload(BaseModel):
    text: str
    start_frame: int = Field(ge=0)
    end_frame: int = Field(ge=0)

    @classmethod
    def from_cue(cls, cue: RenderCue) -> "CuePayload":
        return cls(text=cue.text, start_frame=cue.start_frame, end_frame=cue.end_frame)

    def to_cue(self) -> RenderCue:
        return RenderCue(text=self.text, start_frame=self.start_frame, end_frame=self.end_frame)


class RenderInput(BaseModel):
    """提交给渲染 Worker 的完整参数。"""

    composition_id: str = COMPOSITION_ID
    cues: list[CuePayload]
    total_frames: int = Field(ge=0)
    fps: int = DEFAULT_FPS
    size: CompositionSize = CompositionSize.LANDSCAPE
    title: Optional[str] = None
    artist: Optional[str] = None
    audio_id: Optional[str] = None

    @property
    def width(self) -> int:
        return self.size.dimensions[0]

    @property
    def height(self) -> int:
        return self.size.dimensions[1]

    def render_cues(self) -> list[RenderCue]:
        return [item.to_cue() for item in self.cues]

    @classmethod
    def from_lines(
        cls,
        lines: Iterable[LyricLine],
        *,
        audio_duration: Optional[float] = None,
        size: CompositionSize = CompositionSize.LANDSCAPE,
        fps: int = DEFAULT_FPS,
        title: Optional[str] = None,
        artist: Optional[str] = None,
        audio_id: Optional[str] = None,
    ) -> "RenderInput":
        cues = build_render_cues(lines, fps=fps)
        return cls(
            cues=[CuePayload.from_cue(cue) for cue in cues],
            total_frames=total_render_frames(cues, audio_duration, fps=fps),
            fps=fps,
            size=size,
            title=title,
            artist=artist,
            audio_id=audio_id,
        )
