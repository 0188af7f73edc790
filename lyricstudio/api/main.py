from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from lyricstudio.api.v1.routes import audio, lyrics, projects, render, youtube
from lyricstudio.infra.config.settings import get_settings
from lyricstudio.infra.messaging.redis_pool import close_redis
from lyricstudio.infra.observability.otel import configure_logging, configure_tracing
from lyricstudio.infra.persistence.database import dispose_engine, init_engine, init_models
from lyricstudio.infra.storage.minio_client import media_client

# 配置日志（需要在应用启动前）
configure_logging()

logger = structlog.get_logger(__name__)
settings = get_settings()

app = FastAPI(title="Lyric Studio API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(projects.router)
app.include_router(lyrics.router)
app.include_router(audio.router)
app.include_router(youtube.router)
app.include_router(render.router)

# 挂载静态文件目录用于视频下载
renders_dir = Path(settings.render_output_dir)
renders_dir.mkdir(parents=True, exist_ok=True)
app.mount("/api/v1/renders", StaticFiles(directory=renders_dir), name="renders")


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@app.on_event("startup")
async def initialize_infra() -> None:
    """在 API 启动时初始化数据库与对象存储桶。"""

    configure_tracing()
    init_engine(settings.database_dsn)
    if settings.environment == "dev":
        await init_models()
    try:
        await asyncio.to_thread(media_client.ensure_buckets)
    except Exception as exc:  # noqa: BLE001
        logger.warning("startup.minio_unavailable", endpoint=settings.minio_endpoint, error=str(exc))


@app.on_event("shutdown")
async def shutdown_infra() -> None:
    await close_redis()
    await dispose_engine()
