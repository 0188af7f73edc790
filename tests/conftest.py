#!/usr/bin/env python
"""Pytest fixtures for lyric studio."""
# ruff: noqa: E402

import os
import sys
import tempfile
import uuid
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lyricstudio.api.main import app
from lyricstudio.api.v1.routes import audio as audio_routes
from lyricstudio.api.v1.routes import projects as project_routes
from lyricstudio.api.v1.routes import render as render_routes
from lyricstudio.domain.models.render_job import RenderJob
from lyricstudio.infra.messaging import redis_pool
from lyricstudio.infra.persistence.database import init_engine, init_models
from lyricstudio.infra.storage.minio_client import ObjectNotFound
from lyricstudio.services.audio.metadata import AudioTags


class FakeMediaClient:
    """内存版对象存储，接口与 MediaClient 一致。"""

    audio_bucket = "test-audio"
    cover_bucket = "test-covers"

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.removed: list[tuple[str, str]] = []

    def ensure_buckets(self) -> None:
        return None

    def put_bytes(self, bucket: str, object_name: str, data: bytes, content_type: str) -> str:
        self.objects[(bucket, object_name)] = (data, content_type)
        return object_name

    def get_bytes(self, bucket: str, object_name: str, *, offset: int = 0, length: int = 0) -> bytes:
        try:
            data, _ = self.objects[(bucket, object_name)]
        except KeyError as exc:
            raise ObjectNotFound(object_name) from exc
        end = offset + length if length else len(data)
        return data[offset:end]

    def size_of(self, bucket: str, object_name: str) -> int:
        return len(self.get_bytes(bucket, object_name))

    def download(self, bucket: str, object_name: str, file_path: Path) -> Path:
        file_path.write_bytes(self.get_bytes(bucket, object_name))
        return file_path

    def remove(self, bucket: str, object_name: str) -> None:
        self.removed.append((bucket, object_name))
        self.objects.pop((bucket, object_name), None)


@pytest.fixture(scope="function")
async def database() -> AsyncGenerator[str, None]:
    """每个测试函数使用独立的 SQLite 文件数据库。"""
    # 使用文件数据库以确保跨连接持久化
    db_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_file.close()
    db_url = f"sqlite+aiosqlite:///{db_file.name}"

    engine = init_engine(db_url)
    await init_models()
    yield db_url

    await engine.dispose()
    try:
        os.unlink(db_file.name)
    except OSError:
        pass


@pytest.fixture
def media_client(monkeypatch: pytest.MonkeyPatch) -> FakeMediaClient:
    fake = FakeMediaClient()
    monkeypatch.setattr(audio_routes, "media_client", fake)
    monkeypatch.setattr(project_routes, "media_client", fake)
    return fake


@pytest.fixture
def audio_tags(monkeypatch: pytest.MonkeyPatch) -> AudioTags:
    """跳过 mutagen 解析，上传接口直接拿到这份标签。"""

    tags = AudioTags(title="测试歌曲", artist="测试歌手", album="测试专辑", duration=20.0)
    monkeypatch.setattr(audio_routes, "read_audio_tags", lambda data: tags)
    return tags


@pytest.fixture
def enqueued_jobs(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """拦截渲染入队，避免测试中真正调用 ffmpeg。"""

    jobs: list[str] = []

    async def _fake_enqueue(job_id: str) -> None:
        jobs.append(job_id)

    monkeypatch.setattr(render_routes, "_enqueue", _fake_enqueue)
    return jobs


@pytest.fixture(autouse=True)
def _reset_rate_limit() -> None:
    redis_pool.reset_fallback_buckets()


@pytest.fixture(scope="function")
async def app_client(
    database: str, media_client: FakeMediaClient, enqueued_jobs: list[str]
) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


# =============================================================================
# Factory Fixtures
# =============================================================================


@pytest.fixture
def render_job_factory() -> Callable[..., RenderJob]:
    """创建 RenderJob 的工厂函数。"""

    def _create(
        job_id: str | None = None,
        project_id: str | None = "test-project-id",
        job_status: str = "queued",
        input_props: dict[str, Any] | None = None,
        output_file_name: str = "lyric-video-test.mp4",
        total_frames: int = 300,
        **kwargs: Any,
    ) -> RenderJob:
        return RenderJob(
            id=job_id or str(uuid.uuid4()),
            project_id=project_id,
            job_status=job_status,
            input_props=input_props
            or {
                "cues": [{"text": "第一句", "start_frame": 0, "end_frame": 149}, {"text": "第二句", "start_frame": 150, "end_frame": 300}],
                "total_frames": total_frames,
            },
            output_file_name=output_file_name,
            total_frames=total_frames,
            **kwargs,
        )

    return _create
