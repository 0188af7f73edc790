"""数据库引擎与 Session 管理。

API 与渲染 Worker 各自在启动时调用 ``init_engine``；默认 DSN 为本地 SQLite 文件。
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from lyricstudio.infra.config.settings import get_settings

logger = structlog.get_logger(__name__)
engine: AsyncEngine | None = None


def _engine_options(database_url: str) -> dict[str, Any]:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return {"pool_pre_ping": True}
    # 文件数据库需要先建好目录
    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return {}


def init_engine(database_url: str | None = None) -> AsyncEngine:
    """创建全局 AsyncEngine，未指定 DSN 时读取配置。"""

    global engine  # noqa: PLW0603
    dsn = database_url or get_settings().database_dsn
    engine = create_async_engine(dsn, echo=False, **_engine_options(dsn))
    logger.info("database.engine_ready", backend=engine.url.get_backend_name())
    return engine


async def dispose_engine() -> None:
    global engine  # noqa: PLW0603
    if engine is not None:
        await engine.dispose()
        engine = None


async def init_models() -> None:
    """开发/测试环境直接建表，其余环境走 alembic。"""

    from lyricstudio.domain.models import project, render_job  # noqa: F401

    if engine is None:
        raise RuntimeError("数据库引擎尚未初始化")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    if engine is None:
        raise RuntimeError("数据库引擎尚未初始化")
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session
