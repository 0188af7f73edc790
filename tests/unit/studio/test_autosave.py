from __future__ import annotations

import asyncio
from datetime import timezone

import pytest

from lyricstudio.studio.autosave import AutoSaveTimer
from lyricstudio.studio.notifications import Notifier


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        AutoSaveTimer(lambda: asyncio.sleep(0), 0)


async def test_timer_saves_periodically_and_survives_failures() -> None:
    calls: list[int] = []

    async def save() -> None:
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("network down")

    timer = AutoSaveTimer(save, 0.01)
    timer.start()
    await _wait_for(lambda: len(calls) >= 3)
    await timer.stop()

    assert timer.running is False
    assert timer.ticks >= 3


async def test_timer_skips_when_nothing_to_save() -> None:
    calls: list[int] = []

    async def save() -> None:
        calls.append(1)

    checks: list[bool] = []

    def should_save() -> bool:
        checks.append(True)
        return False

    timer = AutoSaveTimer(save, 0.01, should_save=should_save)
    timer.start()
    await _wait_for(lambda: len(checks) >= 2)
    await timer.stop()

    assert calls == []
    assert timer.ticks == 0


async def test_timer_stops_itself_when_inactive() -> None:
    async def save() -> None:
        raise AssertionError("should not save")

    timer = AutoSaveTimer(save, 0.01, is_active=lambda: False)
    timer.start()
    await _wait_for(lambda: not timer.running)

    await timer.stop()
    assert timer.ticks == 0


def test_notifier_keeps_recent_items() -> None:
    notifier = Notifier(max_items=2)
    received: list[str] = []
    unsubscribe = notifier.subscribe(lambda item: received.append(item.title))

    notifier.info("one")
    notifier.warning("two")
    unsubscribe()
    notifier.error("three", "details")

    assert [item.title for item in notifier.items] == ["two", "three"]
    assert notifier.last is not None and notifier.last.level == "error"
    assert received == ["one", "two"]

    notifier.clear()
    assert notifier.last is None


def test_notification_timestamps_are_timezone_aware() -> None:
    item = Notifier().info("hello")

    assert item.created_at.tzinfo is timezone.utc
