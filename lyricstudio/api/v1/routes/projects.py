from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, HTTPException, Path
from pydantic import BaseModel, Field

from lyricstudio.domain.models.project import Project, is_virtual_audio_id
from lyricstudio.infra.persistence.repositories.audio_repository import AudioRepository
from lyricstudio.infra.persistence.repositories.project_repository import (
    ProjectRepository,
    new_id,
)
from lyricstudio.infra.storage.minio_client import media_client


router = APIRouter(prefix="/api/v1/projects", tags=["projects"])
logger = structlog.get_logger(__name__)
repo = ProjectRepository()
audio_repo = AudioRepository()


class LyricLinePayload(BaseModel):
    id: int
    text: str = ""
    timestamp: float | None = Field(default=None, ge=0)


class LyricsPayload(BaseModel):
    text: str | None = None
    lines: list[LyricLinePayload] | None = None


class ProjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    audio_id: str | None = None
    description: str | None = None


class ProjectUpdateRequest(BaseModel):
    """未提供的字段保持不变；附带 lyrics 时同时保存一份新的歌词文档。"""

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    audio_id: str | None = None
    meta: dict[str, Any] | None = None
    lyrics: LyricsPayload | None = None


class ProjectResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    audio_id: str | None = None
    lyrics_id: str | None = None
    meta: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            name=project.name,
            description=project.description,
            audio_id=project.audio_id,
            lyrics_id=project.lyrics_id,
            meta=project.meta,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )


async def require_project(project_id: str) -> Project:
    project = await repo.get(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="项目不存在")
    return project


@router.get("", response_model=list[ProjectResponse])
async def list_projects() -> list[ProjectResponse]:
    return [ProjectResponse.from_model(p) for p in await repo.list_all()]


@router.post("", status_code=201, response_model=ProjectResponse)
async def create_project(payload: ProjectCreateRequest) -> ProjectResponse:
    project = Project(
        id=new_id(),
        name=payload.name,
        description=payload.description,
        audio_id=payload.audio_id,
    )
    saved = await repo.save(project)
    logger.info("projects.created", project_id=saved.id, audio_id=saved.audio_id)
    return ProjectResponse.from_model(saved)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: Annotated[str, Path()]) -> ProjectResponse:
    return ProjectResponse.from_model(await require_project(project_id))


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: Annotated[str, Path()],
    payload: ProjectUpdateRequest,
) -> ProjectResponse:
    await require_project(project_id)

    if payload.lyrics is not None:
        lines = [line.model_dump() for line in payload.lyrics.lines or []]
        await repo.save_lyrics(project_id, text=payload.lyrics.text or "", lines=lines)

    fields = payload.model_dump(exclude_unset=True, exclude={"lyrics"})
    if fields.get("name") is None:
        fields.pop("name", None)
    updated = await repo.update(project_id, **fields)
    return ProjectResponse.from_model(updated)


@router.delete("/{project_id}")
async def delete_project(project_id: Annotated[str, Path()]) -> dict[str, str]:
    """删除项目，同时清理它引用的音频元数据、音频文件和封面。"""

    project = await require_project(project_id)
    await repo.delete(project_id)

    if project.audio_id and not is_virtual_audio_id(project.audio_id):
        asset = await audio_repo.delete(project.audio_id)
        if asset is None:
            logger.warning("projects.audio_missing", project_id=project_id, audio_id=project.audio_id)
        else:
            await asyncio.to_thread(media_client.remove, media_client.audio_bucket, asset.object_name)
            cover = asset.cover_object_name
            if cover:
                await asyncio.to_thread(media_client.remove, media_client.cover_bucket, cover)

    logger.info("projects.deleted", project_id=project_id)
    return {"message": "Project deleted", "id": project_id}
