"""用户提示（toast）记录。"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Literal

import structlog

logger = structlog.get_logger(__name__)

Level = Literal["success", "info", "warning", "error"]


@dataclass(frozen=True)
class Notification:
    level: Level
    title: str
    description: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier:
    """保存最近的提示并写日志，界面层通过 subscribe 接收。"""

    def __init__(self, max_items: int = 50) -> None:
        self._items: list[Notification] = []
        self._max_items = max_items
        self._subscribers: list[Callable[[Notification], None]] = []

    @property
    def items(self) -> list[Notification]:
        return list(self._items)

    @property
    def last(self) -> Notification | None:
        return self._items[-1] if self._items else None

    def subscribe(self, callback: Callable[[Notification], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def notify(self, level: Level, title: str, description: str | None = None) -> Notification:
        item = Notification(level=level, title=title, description=description)
        self._items.append(item)
        del self._items[: -self._max_items]
        log = logger.error if level == "error" else logger.info
        log("studio.notification", level=level, title=title, description=description)
        for callback in list(self._subscribers):
            callback(item)
        return item

    def success(self, title: str, description: str | None = None) -> Notification:
        return self.notify("success", title, description)

    def info(self, title: str, description: str | None = None) -> Notification:
        return self.notify("info", title, description)

    def warning(self, title: str, description: str | None = None) -> Notification:
        return self.notify("warning", title, description)

    def error(self, title: str, description: str | None = None) -> Notification:
        return self.notify("error", title, description)

    def clear(self) -> None:
        self._items.clear()
