"""渲染任务 SQLModel。"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class RenderJob(SQLModel, table=True):
    """一次歌词视频渲染。

    job_status 状态流转：queued -> running -> success / failed
    """

    __tablename__ = "render_jobs"

    id: str = Field(primary_key=True)
    project_id: Optional[str] = Field(default=None, index=True)
    job_status: str = Field(default="queued")
    # RenderInput.model_dump()，Worker 直接据此渲染
    input_props: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    output_file_name: str
    total_frames: int = 0
    progress: float = Field(default=0.0)  # 0.0 - 1.0
    output_path: Optional[str] = None
    error_log: Optional[str] = None
    submitted_at: datetime | None = Field(default_factory=datetime.utcnow)
    finished_at: datetime | None = None
    metrics: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    @property
    def download_url(self) -> str | None:
        if self.job_status != "success" or not self.output_path:
            return None
        return f"/api/v1/renders/{self.output_file_name}"
