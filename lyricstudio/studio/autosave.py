"""定时自动保存。"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


class AutoSaveTimer:
    """每隔 ``interval_s`` 秒调用一次保存回调。

    ``should_save`` 返回 False 时跳过本轮；``is_active`` 返回 False（例如项目已关闭）时
    计时器自行停止。保存失败只记录日志，等待下一轮重试。
    """

    def __init__(
        self,
        save: Callable[[], Awaitable[object]],
        interval_s: float,
        *,
        should_save: Callable[[], bool] | None = None,
        is_active: Callable[[], bool] | None = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s 必须大于 0")
        self._save = save
        self._interval_s = interval_s
        self._should_save = should_save or (lambda: True)
        self._is_active = is_active or (lambda: True)
        self._task: asyncio.Task | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        if task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            if not self._is_active():
                logger.info("autosave.stopped", reason="inactive")
                self._task = None
                return
            if not self._should_save():
                continue
            self.ticks += 1
            try:
                await self._save()
            except Exception as exc:  # noqa: BLE001
                logger.warning("autosave.failed", error=str(exc))
