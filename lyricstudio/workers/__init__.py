"""ARQ Worker 通用配置。"""

from __future__ import annotations

from typing import Any

from arq.connections import RedisSettings

from lyricstudio.infra.config.settings import get_settings
from lyricstudio.infra.observability.otel import configure_logging, configure_tracing
from lyricstudio.infra.persistence.database import dispose_engine, init_engine

# 配置日志（Worker 启动时自动调用）
configure_logging()


def redis_settings() -> RedisSettings:
    redis_url = get_settings().redis_url
    return RedisSettings.from_dsn(redis_url)


async def on_worker_startup(ctx: dict[str, Any]) -> None:
    configure_tracing("lyric-studio-worker")
    init_engine()


async def on_worker_shutdown(ctx: dict[str, Any]) -> None:
    await dispose_engine()


class BaseWorkerSettings:
    redis_settings = redis_settings()
    max_jobs = get_settings().render_concurrency_limit
    on_startup = on_worker_startup
    on_shutdown = on_worker_shutdown
