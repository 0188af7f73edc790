"""集中化配置管理。"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["dev", "staging", "prod"] = "dev"
    database_dsn: str = "sqlite+aiosqlite:///./lyric_studio.db"
    redis_url: str = "redis://localhost:6379/0"

    # 对象存储（MinIO / S3）
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str | None = None
    minio_secret_key: str | None = None
    audio_bucket: str = "lyric-studio-audio"
    cover_bucket: str = "lyric-studio-covers"

    # 上传限制
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MB
    allowed_audio_types: tuple[str, ...] = ("audio/mpeg", "audio/mp3")

    # YouTube Data API
    youtube_api_key: str | None = None
    youtube_api_base_url: str = "https://www.googleapis.com/youtube/v3"
    youtube_rate_limit: int = 10  # 每个客户端窗口内允许的搜索次数
    youtube_rate_window_s: int = 60

    # 渲染配置
    render_fps: int = 30
    render_output_dir: str = "artifacts/renders"
    render_background_color: str = "0x1f1f1f"
    render_font_name: str = "Arial"
    render_font_size: int = 48
    render_concurrency_limit: int = 2
    render_progress_channel_prefix: str = "render:progress"
    enable_async_queue: bool = False
    ffmpeg_binary: str = "ffmpeg"

    # 前端工作室
    autosave_interval_s: float = 15.0
    api_base_url: str = "http://localhost:8000"

    # 日志与追踪
    log_dir: str = "logs"
    log_level: str = "INFO"
    tracing_enabled: bool = False
    otel_endpoint: str = "http://localhost:4317"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]


@lru_cache()
def get_settings() -> AppSettings:
    return AppSettings()


# 便捷别名
settings = get_settings()
