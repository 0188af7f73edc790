from __future__ import annotations

import asyncio
import re
from datetime import datetime
from typing import Annotated, AsyncGenerator
from uuid import uuid4

import structlog
from arq.connections import create_pool
from fastapi import APIRouter, HTTPException, Path, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, field_validator

from lyricstudio.api.v1.routes.lyrics import build_render_input
from lyricstudio.api.v1.routes.projects import require_project
from lyricstudio.domain.models.render_job import RenderJob
from lyricstudio.infra.config.settings import get_settings
from lyricstudio.infra.messaging.render_progress import RenderProgressEvent, subscribe_progress
from lyricstudio.infra.persistence.repositories.render_job_repository import RenderJobRepository
from lyricstudio.timeline.cues import CompositionSize, RenderInput
from lyricstudio.workers import redis_settings
from lyricstudio.workers.render_worker import render_lyric_video


router = APIRouter(prefix="/api/v1/render", tags=["render"])
logger = structlog.get_logger(__name__)
repo = RenderJobRepository()
settings = get_settings()

_SAFE_FILENAME = re.compile(r"^[\w.-]+\.mp4$")
_background_tasks: set[asyncio.Task] = set()


class RenderRequest(BaseModel):
    """提交渲染。

    提供 ``project_id`` 时由服务端根据已保存的歌词构建提示；
    也可以直接提交客户端构建好的 ``input_props``。
    """

    project_id: str | None = None
    input_props: RenderInput | None = None
    size: CompositionSize = CompositionSize.LANDSCAPE
    output_file_name: str | None = Field(None, max_length=128)

    @field_validator("output_file_name")
    @classmethod
    def _check_file_name(cls, value: str | None) -> str | None:
        if value is None:
            return value
        if not value.endswith(".mp4"):
            value = f"{value}.mp4"
        if not _SAFE_FILENAME.match(value):
            raise ValueError("文件名只能包含字母、数字、点、横线和下划线")
        return value


class RenderResponse(BaseModel):
    job_id: str
    status: str
    progress: float = 0.0
    total_frames: int = 0
    output_file_name: str
    download_url: str | None = None
    error: str | None = None
    submitted_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_model(cls, job: RenderJob) -> "RenderResponse":
        return cls(
            job_id=job.id,
            status=job.job_status,
            progress=job.progress,
            total_frames=job.total_frames,
            output_file_name=job.output_file_name,
            download_url=job.download_url,
            error=job.error_log,
            submitted_at=job.submitted_at,
            finished_at=job.finished_at,
        )


async def _enqueue(job_id: str) -> None:
    if settings.enable_async_queue:
        pool = await create_pool(redis_settings())
        await pool.enqueue_job("render_lyric_video", job_id)
    else:
        # 在后台运行渲染任务，不阻塞 API 响应
        task = asyncio.create_task(render_lyric_video({}, job_id))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)


@router.post("", response_model=RenderResponse, status_code=202)
async def submit_render(body: RenderRequest) -> RenderResponse:
    if body.input_props is not None:
        render_input = body.input_props
    elif body.project_id:
        project = await require_project(body.project_id)
        render_input = await build_render_input(project, size=body.size)
    else:
        raise HTTPException(status_code=400, detail="必须提供 project_id 或 input_props")

    if not render_input.cues or render_input.total_frames <= 0:
        raise HTTPException(status_code=400, detail="没有可渲染的歌词行（需要文本和时间戳）")

    job_id = str(uuid4())
    job = RenderJob(
        id=job_id,
        project_id=body.project_id,
        job_status="queued",
        input_props=render_input.model_dump(mode="json"),
        output_file_name=body.output_file_name or f"lyric-video-{job_id[:8]}.mp4",
        total_frames=render_input.total_frames,
    )
    saved = await repo.save(job)
    await _enqueue(saved.id)
    logger.info("render.submitted", job_id=saved.id, project_id=body.project_id, total_frames=saved.total_frames)
    return RenderResponse.from_model(saved)


class RenderListResponse(BaseModel):
    jobs: list[RenderResponse]


@router.get("", response_model=RenderListResponse)
async def list_project_renders(
    project_id: Annotated[str, Query(min_length=1)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> RenderListResponse:
    """项目的渲染历史。"""

    await require_project(project_id)
    jobs = await repo.list_by_project(project_id, limit=limit)
    return RenderListResponse(jobs=[RenderResponse.from_model(job) for job in jobs])


@router.get("/{job_id}", response_model=RenderResponse)
async def get_render_status(job_id: Annotated[str, Path()]) -> RenderResponse:
    job = await repo.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="渲染任务不存在")
    return RenderResponse.from_model(job)


def _event_from_job(job: RenderJob) -> RenderProgressEvent | None:
    if job.job_status == "success":
        return RenderProgressEvent(
            type="complete",
            job_id=job.id,
            progress=1.0,
            download_url=job.download_url,
            total_frames=job.total_frames,
        )
    if job.job_status == "failed":
        return RenderProgressEvent(type="error", job_id=job.id, progress=job.progress, error=job.error_log)
    return None


@router.get("/{job_id}/events")
async def stream_render_events(job_id: Annotated[str, Path()]) -> StreamingResponse:
    """SSE 推送渲染进度；任务已结束时直接返回最终事件。

    订阅后以及每次轮询超时都会重新读取任务状态，
    最终事件没有经 Redis 送达时也能从数据库补发并结束流。
    """

    job = await repo.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="渲染任务不存在")

    async def final_event() -> RenderProgressEvent | None:
        current = await repo.get(job_id)
        return _event_from_job(current) if current is not None else None

    async def event_generator() -> AsyncGenerator[str, None]:
        final = _event_from_job(job)
        if final is not None:
            yield final.to_sse()
            return
        async for event in subscribe_progress(job_id, on_idle=final_event):
            yield event.to_sse()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
