"""RenderJob 数据访问。"""

from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from sqlmodel import select

from lyricstudio.domain.models.render_job import RenderJob
from lyricstudio.infra.persistence.database import get_session

TERMINAL_STATUSES = frozenset({"success", "failed"})


class RenderJobRepository:
    async def save(self, job: RenderJob) -> RenderJob:
        async with get_session() as session:
            merged = await session.merge(job)
            await session.commit()
            await session.refresh(merged)
            return merged

    async def get(self, job_id: str) -> RenderJob | None:
        async with get_session() as session:
            return await session.get(RenderJob, job_id)

    async def list_by_project(self, project_id: str, *, limit: int = 20) -> list[RenderJob]:
        """最近提交的在前。"""
        async with get_session() as session:
            stmt = (
                select(RenderJob)
                .where(RenderJob.project_id == project_id)
                .order_by(cast(Any, RenderJob.submitted_at).desc())
                .limit(limit)
            )
            return list(await session.exec(stmt))

    async def _update(self, job_id: str, **fields: Any) -> RenderJob:
        async with get_session() as session:
            job = await session.get(RenderJob, job_id)
            if job is None:
                raise ValueError(f"渲染任务不存在: {job_id}")
            extra_metrics = fields.pop("metrics", None)
            for name, value in fields.items():
                setattr(job, name, value)
            if extra_metrics:
                job.metrics = {**(job.metrics or {}), **extra_metrics}
            if job.job_status in TERMINAL_STATUSES and job.finished_at is None:
                job.finished_at = datetime.utcnow()
            session.add(job)
            await session.commit()
            return job

    async def mark_running(self, job_id: str) -> None:
        await self._update(job_id, job_status="running", progress=0.0)

    async def update_progress(self, job_id: str, progress: float) -> None:
        await self._update(job_id, progress=min(1.0, max(0.0, progress)))

    async def mark_success(self, job_id: str, *, output_path: str, metrics: dict[str, Any] | None = None) -> None:
        await self._update(job_id, job_status="success", progress=1.0, output_path=output_path, metrics=metrics)

    async def mark_failure(self, job_id: str, *, error_log: str) -> None:
        await self._update(job_id, job_status="failed", error_log=error_log[:2000])
