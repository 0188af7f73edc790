"""时间线数据模型"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any, Iterable, Mapping, Optional

DEFAULT_FPS = 30


@dataclass
class LyricLine:
    """歌词行

    timestamp 以秒为单位；``None`` 表示尚未打点。
    注意 ``0.0`` 是合法的时间戳（歌曲开头），不能当作“未设置”。
    """

    id: int
    text: str = ""
    timestamp: Optional[float] = None

    @property
    def has_timestamp(self) -> bool:
        return self.timestamp is not None

    @property
    def is_valid(self) -> bool:
        """文本非空且已打点，才能用于预览与渲染。"""
        return bool(self.text.strip()) and self.timestamp is not None

    def copy(self, **changes: Any) -> "LyricLine":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LyricLine":
        raw_ts = data.get("timestamp")
        return cls(
            id=int(data["id"]),
            text=str(data.get("text") or ""),
            timestamp=None if raw_ts is None else float(raw_ts),
        )


def lines_from_dicts(items: Iterable[Mapping[str, Any]]) -> list[LyricLine]:
    return [LyricLine.from_dict(item) for item in items]


def lines_to_dicts(lines: Iterable[LyricLine]) -> list[dict[str, Any]]:
    return [line.to_dict() for line in lines]


@dataclass
class PlaybackState:
    """播放器状态，只能由音频事件回调或显式 seek 修改。"""

    position: float = 0.0
    duration: float = 0.0
    is_playing: bool = False
    volume: float = 1.0
    muted: bool = False


@dataclass(frozen=True)
class RenderCue:
    """渲染用的字幕提示（帧坐标）"""

    text: str
    start_frame: int
    end_frame: int

    def start_ms(self, fps: int = DEFAULT_FPS) -> int:
        return round(self.start_frame * 1000 / fps)

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "start_frame": self.start_frame, "end_frame": self.end_frame}
