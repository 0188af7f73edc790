"""歌词行存储。

集合只能通过这里的具名方法修改；显示顺序即插入顺序，
时间顺序在导出、高亮与渲染时按需计算。
"""

from __future__ import annotations

import math
from typing import Callable, Iterable, Optional

import structlog

from lyricstudio.timeline.models import LyricLine

logger = structlog.get_logger(__name__)

# 自动推算时间戳时与前一行保持的最小间隔（秒）
MIN_GAP_SECONDS = 0.5

_UNSET = object()

MissingCallback = Callable[[int, str], None]


def _coerce_timestamp(value: object) -> float | None:
    """合法时间戳为有限且非负的秒数，其余返回 None。"""
    try:
        seconds = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds


class LyricLineStore:
    """单个编辑会话独占的歌词行集合。

    对不存在的 id 操作一律静默忽略，只记录 ``lyric_store.line_missing``，
    并在提供 ``on_missing`` 时回调，方便上层排查。
    """

    def __init__(
        self,
        lines: Iterable[LyricLine] | None = None,
        *,
        on_missing: MissingCallback | None = None,
    ) -> None:
        self._lines: list[LyricLine] = [line.copy() for line in lines or []]
        self._on_missing = on_missing

    @property
    def lines(self) -> tuple[LyricLine, ...]:
        return tuple(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self):
        return iter(self._lines)

    def get(self, line_id: int) -> LyricLine | None:
        index = self._index_of(line_id)
        return None if index is None else self._lines[index]

    def snapshot(self) -> list[LyricLine]:
        return [line.copy() for line in self._lines]

    def next_id(self) -> int:
        return max([0, *(line.id for line in self._lines)]) + 1

    # ------------------------------------------------------------------
    # 修改
    # ------------------------------------------------------------------
    def add_line(self, after_id: int | None = None, position: float = 0.0) -> LyricLine:
        """新增一行并按当前播放位置推算时间戳。

        指定 ``after_id`` 时插到该行之后，时间戳夹在前后两行之间；
        否则追加到末尾，且不早于最后一行。
        """

        # 非法播放位置按 0 处理
        new_line = LyricLine(id=self.next_id(), text="", timestamp=_coerce_timestamp(position) or 0.0)

        index = self._index_of(after_id) if after_id is not None else None
        if after_id is not None and index is None:
            self._report_missing(after_id, "add_line")

        if index is not None:
            prev_ts = self._lines[index].timestamp or 0.0
            next_ts: Optional[float] = None
            if index + 1 < len(self._lines):
                next_ts = self._lines[index + 1].timestamp

            timestamp = new_line.timestamp or 0.0
            if timestamp <= prev_ts:
                timestamp = prev_ts + MIN_GAP_SECONDS
            if next_ts is not None and timestamp >= next_ts:
                timestamp = (prev_ts + next_ts) / 2
            new_line.timestamp = timestamp
            self._lines.insert(index + 1, new_line)
        else:
            if self._lines:
                last_ts = self._lines[-1].timestamp
                if last_ts is not None and (new_line.timestamp or 0.0) <= last_ts:
                    new_line.timestamp = last_ts + MIN_GAP_SECONDS
            self._lines.append(new_line)

        logger.debug(
            "lyric_store.line_added",
            line_id=new_line.id,
            after_id=after_id,
            timestamp=new_line.timestamp,
        )
        return new_line

    def update_line(self, line_id: int, *, text: object = _UNSET, timestamp: object = _UNSET) -> bool:
        """合并更新 text / timestamp。

        行不存在或时间戳非法（负数、非有限值）时不做任何修改并返回 False。
        """

        index = self._index_of(line_id)
        if index is None:
            self._report_missing(line_id, "update_line")
            return False

        changes: dict[str, object] = {}
        if text is not _UNSET:
            changes["text"] = "" if text is None else str(text)
        if timestamp is not _UNSET:
            if timestamp is None:
                changes["timestamp"] = None
            else:
                value = _coerce_timestamp(timestamp)
                if value is None:
                    # 负数、NaN、inf 一律忽略，集合保持原样
                    logger.warning("lyric_store.invalid_timestamp", line_id=line_id, timestamp=repr(timestamp))
                    return False
                changes["timestamp"] = value
        if not changes:
            return False

        self._lines[index] = self._lines[index].copy(**changes)
        return True

    def delete_line(self, line_id: int) -> bool:
        index = self._index_of(line_id)
        if index is None:
            self._report_missing(line_id, "delete_line")
            return False
        del self._lines[index]
        return True

    def set_current_time_as_timestamp(self, line_id: int, position: float) -> bool:
        return self.update_line(line_id, timestamp=position)

    def replace_all(self, lines: Iterable[LyricLine]) -> None:
        self._lines = [line.copy() for line in lines]
        logger.debug("lyric_store.replaced", count=len(self._lines))

    def add_lines_from_text(self, texts: Iterable[str]) -> list[LyricLine]:
        """批量创建未打点的行并整体替换集合。

        id 从现有最大 id 往后顺延；输入为空时保持原样。
        """

        items = list(texts)
        if not items:
            return []
        base = max([0, *(line.id for line in self._lines)])
        created = [
            LyricLine(id=base + offset + 1, text=text, timestamp=None)
            for offset, text in enumerate(items)
        ]
        self.replace_all(created)
        return self.snapshot()

    def clear(self) -> None:
        self._lines = []

    # ------------------------------------------------------------------
    # 判定
    # ------------------------------------------------------------------
    def are_all_timestamps_zero(self) -> bool:
        """全部行都没有有效时间（未打点或为 0），用于提示用户开始打点。"""
        return all(not line.timestamp for line in self._lines)

    def is_strictly_ascending(self) -> bool:
        """相邻且都已打点的两行必须严格递增。"""
        for current, following in zip(self._lines, self._lines[1:]):
            if not (current.has_timestamp and following.has_timestamp):
                continue
            if current.timestamp >= following.timestamp:
                return False
        return True

    def has_at_least_one_valid_line(self) -> bool:
        return any(line.is_valid for line in self._lines)

    # ------------------------------------------------------------------
    def _index_of(self, line_id: int | None) -> int | None:
        if line_id is None:
            return None
        for index, line in enumerate(self._lines):
            if line.id == line_id:
                return index
        return None

    def _report_missing(self, line_id: int, operation: str) -> None:
        logger.info("lyric_store.line_missing", line_id=line_id, operation=operation)
        if self._on_missing is not None:
            self._on_missing(line_id, operation)
