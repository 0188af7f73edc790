"""YouTube 搜索与“从视频创建项目”。"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, HTTPException, Path, Query, Request
from pydantic import BaseModel, Field

from lyricstudio.api.v1.routes.projects import ProjectResponse
from lyricstudio.domain.models.project import YOUTUBE_VIRTUAL_PREFIX, Project, YoutubeImport
from lyricstudio.infra.config.settings import get_settings
from lyricstudio.infra.messaging.redis_pool import token_bucket
from lyricstudio.infra.persistence.repositories.project_repository import ProjectRepository, new_id
from lyricstudio.services.youtube.client import (
    DEFAULT_DURATION,
    InvalidQuery,
    YoutubeClient,
    YoutubeNotConfigured,
    YoutubeUnavailable,
    extract_lyrics_from_title,
    parse_duration_to_seconds,
)


router = APIRouter(prefix="/api/v1/youtube", tags=["youtube"])
logger = structlog.get_logger(__name__)
repo = ProjectRepository()
settings = get_settings()
youtube_client = YoutubeClient()


class SearchResponse(BaseModel):
    results: list[dict[str, Any]]


class YoutubeProjectRequest(BaseModel):
    video_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    channel_title: str = ""
    duration: str = DEFAULT_DURATION
    thumbnail: str | None = None
    url: str | None = None
    description: str | None = None


class YoutubeMetadataResponse(BaseModel):
    project_id: str
    video_id: str
    title: str
    channel_title: str
    duration: str
    parsed_duration: int
    thumbnail: str | None = None
    url: str | None = None
    description: str = ""
    is_virtual: bool = True
    imported_at: datetime | None = None

    @classmethod
    def from_model(cls, meta: YoutubeImport) -> "YoutubeMetadataResponse":
        return cls(**meta.model_dump())


class YoutubeProjectResponse(BaseModel):
    message: str
    project: ProjectResponse
    youtube_metadata: YoutubeMetadataResponse


class ExtractLyricsRequest(BaseModel):
    video_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    channel_title: str | None = None


class ExtractLyricsResponse(BaseModel):
    lyrics: list[str]
    source: str
    confidence: float


def _client_id(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.get("/search", response_model=SearchResponse)
async def search(request: Request, input: Annotated[str | None, Query()] = None) -> SearchResponse:
    text = (input or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="缺少搜索内容")

    key = f"rate_limit:youtube:{_client_id(request)}"
    decision = await token_bucket(key, settings.youtube_rate_limit, settings.youtube_rate_window_s)
    if not decision.allowed:
        logger.info("youtube.rate_limited", key=key, retry_after=decision.retry_after)
        raise HTTPException(
            status_code=429,
            detail="请求过于频繁，请稍后再试",
            headers={"Retry-After": str(decision.retry_after)},
        )

    try:
        results = await youtube_client.lookup(text)
    except InvalidQuery as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except YoutubeNotConfigured as exc:
        raise HTTPException(status_code=500, detail="未配置 YouTube API Key") from exc
    except YoutubeUnavailable as exc:
        raise HTTPException(status_code=503, detail="YouTube 搜索暂时不可用") from exc
    return SearchResponse(results=results)


@router.post("/projects", response_model=YoutubeProjectResponse)
async def create_project_from_video(payload: YoutubeProjectRequest) -> YoutubeProjectResponse:
    """只保存视频元数据，不下载音频；audio_id 使用虚拟前缀。"""

    project = Project(
        id=new_id(),
        name=f"{payload.title[:100]} - {payload.channel_title[:50]}",
        audio_id=f"{YOUTUBE_VIRTUAL_PREFIX}{payload.video_id}",
        meta={
            "tags": ["youtube", "playlist", "virtual"],
            "category": "youtube-import",
            "link": payload.url,
        },
    )
    saved = await repo.save(project)
    meta = await repo.save_youtube_meta(
        YoutubeImport(
            project_id=saved.id,
            video_id=payload.video_id,
            title=payload.title,
            channel_title=payload.channel_title,
            duration=payload.duration,
            parsed_duration=parse_duration_to_seconds(payload.duration),
            thumbnail=payload.thumbnail,
            url=payload.url,
            description=(payload.description or "")[:500],
        )
    )
    logger.info("youtube.project_created", project_id=saved.id, video_id=payload.video_id)
    return YoutubeProjectResponse(
        message="Project created from YouTube video",
        project=ProjectResponse.from_model(saved),
        youtube_metadata=YoutubeMetadataResponse.from_model(meta),
    )


@router.post("/lyrics/extract", response_model=ExtractLyricsResponse)
async def extract_lyrics(payload: ExtractLyricsRequest) -> ExtractLyricsResponse:
    result = extract_lyrics_from_title(payload.title, payload.channel_title)
    return ExtractLyricsResponse(lyrics=result.lyrics, source=result.source, confidence=result.confidence)


@router.get("/projects/{project_id}/metadata", response_model=YoutubeMetadataResponse)
async def get_metadata(project_id: Annotated[str, Path()]) -> YoutubeMetadataResponse:
    meta = await repo.get_youtube_meta(project_id)
    if meta is None:
        raise HTTPException(status_code=404, detail="该项目没有 YouTube 元数据")
    return YoutubeMetadataResponse.from_model(meta)
