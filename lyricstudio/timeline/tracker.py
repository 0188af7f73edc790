"""播放位置跟踪：把音频时间映射为当前高亮的歌词行。

音频元素被抽象为 ``AudioPlayback`` 协议，跟踪器通过 ``subscribe`` 注册事件回调，
因此可以在没有真实播放器的情况下单元测试。
"""

from __future__ import annotations

import bisect
import math
from typing import Callable, Iterable, Protocol

import structlog

from lyricstudio.timeline.models import DEFAULT_FPS, LyricLine, PlaybackState
from lyricstudio.timeline.store import LyricLineStore

logger = structlog.get_logger(__name__)

# 快进快退的默认步长（秒）
SKIP_SECONDS = 10.0

AUDIO_EVENTS = ("time_update", "loaded_metadata", "play", "pause", "volume_change", "ended")

Unsubscribe = Callable[[], None]
ActiveLineListener = Callable[["int | None"], None]


class PlaybackError(RuntimeError):
    """播放器拒绝播放（例如浏览器自动播放策略或解码失败）。"""


class AudioPlayback(Protocol):
    current_time: float

    @property
    def duration(self) -> float: ...

    @property
    def volume(self) -> float: ...

    @property
    def muted(self) -> bool: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def subscribe(self, event: str, callback: Callable[[], None]) -> Unsubscribe: ...


class FrameSeeker(Protocol):
    """同步的视频预览播放器，只需要支持按帧跳转。"""

    def seek_to(self, frame: int) -> None: ...


def frame_for_time(seconds: float, fps: int = DEFAULT_FPS) -> int:
    return math.floor(seconds * fps)


def find_active_line(lines: Iterable[LyricLine], current_time: float) -> LyricLine | None:
    """返回时间戳 <= current_time 的最大那一行。

    未打点的行不参与查找；与调用顺序无关，回退 seek 时直接重新计算即可。
    """

    timed = sorted(
        (line for line in lines if line.has_timestamp),
        key=lambda line: line.timestamp,  # type: ignore[arg-type, return-value]
    )
    if not timed:
        return None
    keys = [line.timestamp for line in timed]
    index = bisect.bisect_right(keys, current_time) - 1
    if index < 0:
        return None
    return timed[index]


class PlayerStore:
    """PlaybackState 的唯一持有者。"""

    def __init__(self, state: PlaybackState | None = None) -> None:
        self.state = state or PlaybackState()

    @property
    def position(self) -> float:
        return self.state.position

    def on_time_update(self, position: float) -> None:
        self.state.position = max(0.0, float(position))

    def on_loaded_metadata(self, duration: float) -> None:
        self.state.duration = float(duration) if duration and math.isfinite(duration) else 0.0

    def on_play(self) -> None:
        self.state.is_playing = True

    def on_pause(self) -> None:
        self.state.is_playing = False

    def on_volume_change(self, volume: float, muted: bool) -> None:
        self.state.volume = min(1.0, max(0.0, float(volume)))
        self.state.muted = bool(muted)

    def on_ended(self) -> None:
        self.state.is_playing = False

    def seek(self, position: float) -> None:
        self.state.position = max(0.0, float(position))

    def reset(self) -> None:
        self.state = PlaybackState()


class PlaybackTracker:
    """订阅音频事件，维护当前高亮行并负责“跳到这一行”。"""

    def __init__(
        self,
        store: LyricLineStore,
        player: PlayerStore,
        audio: AudioPlayback | None = None,
        video: FrameSeeker | None = None,
        *,
        fps: int = DEFAULT_FPS,
    ) -> None:
        self.store = store
        self.player = player
        self.video = video
        self.fps = fps
        self.audio: AudioPlayback | None = None
        self._active_line_id: int | None = None
        self._listeners: list[ActiveLineListener] = []
        self._unsubscribers: list[Unsubscribe] = []
        if audio is not None:
            self.attach(audio)

    @property
    def active_line_id(self) -> int | None:
        return self._active_line_id

    def add_listener(self, listener: ActiveLineListener) -> Unsubscribe:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def attach(self, audio: AudioPlayback) -> None:
        self.detach()
        self.audio = audio
        handlers: dict[str, Callable[[], None]] = {
            "time_update": self._handle_time_update,
            "loaded_metadata": self._handle_loaded_metadata,
            "play": self.player.on_play,
            "pause": self.player.on_pause,
            "volume_change": self._handle_volume_change,
            "ended": self.player.on_ended,
        }
        for event in AUDIO_EVENTS:
            self._unsubscribers.append(audio.subscribe(event, handlers[event]))
        logger.debug("playback_tracker.attached")

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.audio = None

    def refresh(self) -> int | None:
        """按当前位置重新计算高亮行，变化时通知监听者。"""

        active = find_active_line(self.store.lines, self.player.position)
        active_id = active.id if active is not None else None
        if active_id != self._active_line_id:
            self._active_line_id = active_id
            for listener in list(self._listeners):
                listener(active_id)
        return active_id

    def jump_to_line(self, line_id: int) -> bool:
        line = self.store.get(line_id)
        if line is None or not line.has_timestamp:
            return False

        timestamp = line.timestamp
        self.player.seek(timestamp)
        if self.audio is not None:
            self.audio.current_time = timestamp
            try:
                self.audio.play()
            except PlaybackError as exc:
                logger.warning("playback_tracker.play_rejected", line_id=line_id, error=str(exc))
        if self.video is not None:
            self.video.seek_to(frame_for_time(timestamp, self.fps))
        self.refresh()
        return True

    def seek(self, position: float) -> int | None:
        self.player.seek(position)
        if self.audio is not None:
            self.audio.current_time = self.player.position
        return self.refresh()

    def toggle_play(self) -> bool:
        """播放中则暂停，否则开始播放；返回是否发起了播放。

        实际状态仍以音频的 play / pause 事件为准。
        """

        if self.audio is None:
            return False
        if self.player.state.is_playing:
            self.audio.pause()
            return False
        try:
            self.audio.play()
        except PlaybackError as exc:
            logger.warning("playback_tracker.play_rejected", error=str(exc))
            return False
        return True

    def skip(self, delta: float = SKIP_SECONDS) -> int | None:
        """相对当前位置前进或后退，结果限制在 [0, duration]，时长未知时只限制下界。"""

        target = max(0.0, self.player.position + delta)
        duration = self.player.state.duration
        if duration > 0:
            target = min(duration, target)
        return self.seek(target)

    # ------------------------------------------------------------------
    def _handle_time_update(self) -> None:
        if self.audio is None:
            return
        self.player.on_time_update(self.audio.current_time)
        self.refresh()

    def _handle_loaded_metadata(self) -> None:
        if self.audio is None:
            return
        self.player.on_loaded_metadata(self.audio.duration)

    def _handle_volume_change(self) -> None:
        if self.audio is None:
            return
        self.player.on_volume_change(self.audio.volume, self.audio.muted)

