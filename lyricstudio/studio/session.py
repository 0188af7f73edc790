"""歌词工作室会话

把歌词存储、播放器状态、高亮跟踪、提示与自动保存组合成一个显式的状态对象，
所有界面操作都通过这里完成。
"""

from __future__ import annotations

from typing import Any

import structlog

from lyricstudio.client.api import ApiClientError, LyricStudioClient
from lyricstudio.infra.config.settings import get_settings
from lyricstudio.studio.autosave import AutoSaveTimer
from lyricstudio.studio.notifications import Notifier
from lyricstudio.timeline.cues import CompositionSize, RenderInput
from lyricstudio.timeline.lrc import (
    LrcImportError,
    LrcMetadata,
    export_lrc,
    import_lrc,
    import_pasted_lyrics,
    lrc_filename,
)
from lyricstudio.timeline.models import LyricLine
from lyricstudio.timeline.store import LyricLineStore
from lyricstudio.timeline.tracker import (
    SKIP_SECONDS,
    AudioPlayback,
    FrameSeeker,
    PlaybackTracker,
    PlayerStore,
)

logger = structlog.get_logger(__name__)


class LyricStudio:
    def __init__(
        self,
        client: LyricStudioClient | None = None,
        *,
        audio: AudioPlayback | None = None,
        video: FrameSeeker | None = None,
        autosave_interval_s: float | None = None,
    ) -> None:
        self.client = client or LyricStudioClient()
        self.notifier = Notifier()
        self.store = LyricLineStore()
        self.player = PlayerStore()
        self.tracker = PlaybackTracker(self.store, self.player, audio=audio, video=video)
        self.project_id: str | None = None
        self.audio_id: str | None = None
        self.audio_metadata: dict[str, Any] | None = None
        self.external_lyrics: str = ""
        self._autosave_interval_s = autosave_interval_s or get_settings().autosave_interval_s
        self._autosave: AutoSaveTimer | None = None

    # ------------------------------------------------------------------
    # 项目
    # ------------------------------------------------------------------
    async def open_project(self, project_id: str) -> bool:
        """加载项目、音频元数据和服务器上的歌词，并启动自动保存。"""

        try:
            project = await self.client.get_project(project_id)
        except ApiClientError as exc:
            self.notifier.error("Failed to load project", str(exc))
            return False

        self.project_id = project_id
        self.audio_id = project.get("audio_id")
        self.audio_metadata = None
        if self.audio_id:
            try:
                self.audio_metadata = await self.client.get_audio_meta(self.audio_id, project_id)
            except ApiClientError as exc:
                logger.warning("studio.audio_meta_failed", project_id=project_id, error=str(exc))
        await self.load_lyrics()
        self.start_autosave()
        return True

    async def close_project(self) -> None:
        self.project_id = None
        await self.stop_autosave()

    def reset(self) -> None:
        self.store.clear()
        self.player.reset()
        self.tracker.refresh()
        self.external_lyrics = ""
        self.audio_metadata = None

    # ------------------------------------------------------------------
    # 编辑
    # ------------------------------------------------------------------
    def add_line(self, after_id: int | None = None) -> LyricLine:
        return self.store.add_line(after_id=after_id, position=self.player.position)

    def update_line(self, line_id: int, **fields: Any) -> bool:
        return self.store.update_line(line_id, **fields)

    def delete_line(self, line_id: int) -> bool:
        return self.store.delete_line(line_id)

    def set_current_time_as_timestamp(self, line_id: int) -> bool:
        return self.store.set_current_time_as_timestamp(line_id, self.player.position)

    def jump_to_line(self, line_id: int) -> bool:
        return self.tracker.jump_to_line(line_id)

    def toggle_play(self) -> bool:
        return self.tracker.toggle_play()

    def skip(self, delta: float = SKIP_SECONDS) -> int | None:
        return self.tracker.skip(delta)

    def set_external_lyrics(self, text: str) -> None:
        self.external_lyrics = text or ""

    # ------------------------------------------------------------------
    # 导入导出
    # ------------------------------------------------------------------
    @property
    def audio_tags(self) -> dict[str, Any]:
        """上传音频的标签在 tags 字段里，YouTube 虚拟音频直接平铺在顶层。"""
        meta = self.audio_metadata or {}
        return dict(meta.get("tags") or meta)

    @property
    def lrc_metadata(self) -> LrcMetadata:
        return LrcMetadata.from_audio_metadata(self.audio_tags)

    def import_lrc(self, text: str) -> bool:
        try:
            count = import_lrc(self.store, text)
        except LrcImportError as exc:
            self.notifier.error("Invalid LRC file", str(exc))
            return False
        self.notifier.success("LRC file imported", f"{count} lines loaded")
        self.tracker.refresh()
        return True

    def import_pasted_lyrics(self, text: str | None = None) -> bool:
        source = self.external_lyrics if text is None else text
        count = import_pasted_lyrics(self.store, source)
        if count == 0:
            self.notifier.warning("No lyrics to convert", "Paste some lyrics first.")
            return False
        self.notifier.success("Lyrics converted", f"{count} lines created")
        self.tracker.refresh()
        return True

    def export_lrc(self) -> tuple[str, str] | None:
        """返回 ``(文件名, 内容)``；没有可用行或还没开始打点时返回 None。"""

        if not self.store.has_at_least_one_valid_line() or self.store.are_all_timestamps_zero():
            self.notifier.warning("Nothing to export", "Add timestamped lyrics before downloading.")
            return None
        meta = self.lrc_metadata
        filename = lrc_filename(meta if self.audio_metadata else None)
        return filename, export_lrc(self.store.lines, meta)

    def render_input(self, size: CompositionSize = CompositionSize.LANDSCAPE) -> RenderInput:
        meta = self.lrc_metadata
        duration = self.player.state.duration or self.audio_tags.get("duration")
        return RenderInput.from_lines(
            self.store.lines,
            audio_duration=duration,
            size=size,
            title=meta.title,
            artist=meta.artist,
            audio_id=self.audio_id,
        )

    # ------------------------------------------------------------------
    # 服务端同步
    # ------------------------------------------------------------------
    async def save_lyrics(self) -> bool:
        if not self.project_id:
            self.notifier.error("No Project Selected", "Please select a project before saving lyrics.")
            return False
        if len(self.store) == 0:
            self.notifier.error("No Lyrics to Save", "Please add some lyrics before saving.")
            return False
        try:
            await self.client.save_lyrics(self.project_id, self.store.lines)
        except ApiClientError as exc:
            self.notifier.error("Failed to save lyrics", str(exc))
            return False
        self.notifier.success("Lyrics saved")
        return True

    async def auto_save(self) -> bool:
        """只保存已打点且有文本的行；失败不提示，等待下一轮。"""

        if not self.project_id or not self.store.has_at_least_one_valid_line():
            return False
        valid = [line for line in self.store.lines if line.is_valid]
        try:
            await self.client.save_lyrics(self.project_id, valid)
        except ApiClientError as exc:
            logger.warning("studio.autosave_failed", project_id=self.project_id, error=str(exc))
            return False
        return True

    async def load_lyrics(self) -> bool:
        """服务器上的歌词与本地不同时替换本地集合，返回是否发生替换。"""

        if not self.project_id:
            return False
        try:
            remote = await self.client.get_lyrics(self.project_id)
        except ApiClientError as exc:
            self.notifier.error("Failed to load lyrics", str(exc))
            return False
        if remote is None or remote == list(self.store.lines):
            return False
        self.store.replace_all(remote)
        self.tracker.refresh()
        return True

    def start_autosave(self) -> None:
        if self._autosave is not None and self._autosave.running:
            return
        self._autosave = AutoSaveTimer(
            self.auto_save,
            self._autosave_interval_s,
            should_save=self.store.has_at_least_one_valid_line,
            is_active=lambda: self.project_id is not None,
        )
        self._autosave.start()

    async def stop_autosave(self) -> None:
        if self._autosave is not None:
            await self._autosave.stop()
            self._autosave = None

    @property
    def autosave(self) -> AutoSaveTimer | None:
        return self._autosave

