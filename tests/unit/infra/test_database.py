from __future__ import annotations

from pathlib import Path

import pytest

from lyricstudio.infra.persistence import database
from lyricstudio.workers import on_worker_shutdown, on_worker_startup


async def test_init_engine_creates_sqlite_directory(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "studio.db"

    engine = database.init_engine(f"sqlite+aiosqlite:///{db_path}")
    await database.init_models()

    assert db_path.parent.is_dir()
    assert database.engine is engine
    await database.dispose_engine()
    assert database.engine is None


async def test_get_session_requires_engine() -> None:
    await database.dispose_engine()

    with pytest.raises(RuntimeError):
        async with database.get_session():
            pass


async def test_worker_hooks_manage_engine(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    dsn = f"sqlite+aiosqlite:///{tmp_path / 'worker.db'}"
    monkeypatch.setattr(database, "get_settings", lambda: type("S", (), {"database_dsn": dsn})())

    await on_worker_startup({})
    assert database.engine is not None
    assert database.engine.url.database == str(tmp_path / "worker.db")

    await on_worker_shutdown({})
    assert database.engine is None
