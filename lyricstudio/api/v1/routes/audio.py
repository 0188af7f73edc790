"""音频上传、元数据、流式播放与封面。"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, File, Header, HTTPException, Path, Query, UploadFile
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel

from lyricstudio.domain.models.project import AudioAsset, Project, is_virtual_audio_id
from lyricstudio.infra.config.settings import get_settings
from lyricstudio.infra.persistence.repositories.audio_repository import AudioRepository
from lyricstudio.infra.persistence.repositories.project_repository import ProjectRepository, new_id
from lyricstudio.infra.storage.minio_client import ObjectNotFound, media_client
from lyricstudio.services.audio.metadata import AudioMetadataError, file_sha256, read_audio_tags


router = APIRouter(prefix="/api/v1/audio", tags=["audio"])
logger = structlog.get_logger(__name__)
repo = AudioRepository()
project_repo = ProjectRepository()
settings = get_settings()

_RANGE = re.compile(r"^bytes=(\d*)-(\d*)$")


class AudioResponse(BaseModel):
    id: str
    filename: str
    content_type: str
    size: int
    file_hash: str
    tags: dict[str, Any] | None = None
    cover_art: dict[str, Any] | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, asset: AudioAsset) -> "AudioResponse":
        return cls(
            id=asset.id,
            filename=asset.filename,
            content_type=asset.content_type,
            size=asset.size,
            file_hash=asset.file_hash,
            tags=asset.tags,
            cover_art=asset.cover_art,
            created_at=asset.created_at,
        )


class UploadResponse(BaseModel):
    message: str
    project_id: str
    audio: AudioResponse


async def _read_upload(file: UploadFile) -> bytes:
    if file.content_type not in settings.allowed_audio_types:
        raise HTTPException(status_code=400, detail="仅支持 MP3 音频文件")
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="上传的文件为空")
    if len(data) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise HTTPException(status_code=400, detail=f"文件大小超过 {limit_mb} MB 限制")
    return data


def parse_range(header: str, size: int) -> tuple[int, int] | None:
    """解析 ``bytes=start-end``；非法或越界时返回 None。"""

    match = _RANGE.match(header.strip())
    if not match or size <= 0:
        return None
    start_raw, end_raw = match.groups()
    if start_raw == "":
        # 后缀形式 bytes=-N：最后 N 个字节
        if end_raw == "":
            return None
        length = int(end_raw)
        if length <= 0:
            return None
        return max(0, size - length), size - 1
    start = int(start_raw)
    end = int(end_raw) if end_raw else size - 1
    if start >= size or end >= size or start > end:
        return None
    return start, end


@router.post("", response_model=UploadResponse)
async def upload_audio(audio: Annotated[UploadFile, File()]) -> Any:
    """上传 MP3：去重、提取标签与封面、写入对象存储，并自动创建项目。"""

    data = await _read_upload(audio)
    file_hash = file_sha256(data)

    existing = await repo.find_by_hash(file_hash)
    if existing is not None:
        logger.info("audio.duplicate", audio_id=existing.id, file_hash=file_hash)
        return JSONResponse(
            status_code=400,
            content={
                "message": "File already exists",
                "duplicate": True,
                "existing_file": {
                    "id": existing.id,
                    "filename": existing.filename,
                    "tags": existing.tags,
                },
            },
        )

    try:
        tags = await asyncio.to_thread(read_audio_tags, data)
    except AudioMetadataError as exc:
        raise HTTPException(status_code=400, detail=f"无法解析音频元数据: {exc}") from exc

    audio_id = new_id()
    content_type = audio.content_type or "audio/mpeg"
    cover_info: dict[str, Any] | None = None
    if tags.cover is not None:
        cover_id = f"{audio_id}-cover"
        await asyncio.to_thread(
            media_client.put_bytes,
            media_client.cover_bucket,
            f"{cover_id}.{tags.cover.extension}",
            tags.cover.data,
            tags.cover.format,
        )
        cover_info = {"id": cover_id, "format": tags.cover.format, "size": len(tags.cover.data)}

    await asyncio.to_thread(
        media_client.put_bytes, media_client.audio_bucket, f"{audio_id}.mp3", data, content_type
    )

    project = Project(
        id=new_id(),
        name=f"{tags.title or 'New Project'} - {tags.artist or 'Unknown Artist'}",
        audio_id=audio_id,
    )
    asset = AudioAsset(
        id=audio_id,
        filename=audio.filename or f"{audio_id}.mp3",
        content_type=content_type,
        size=len(data),
        file_hash=file_hash,
        project_id=project.id,
        tags=tags.to_dict(),
        cover_art=cover_info,
    )
    saved = await repo.save(asset)
    await project_repo.save(project)
    logger.info("audio.uploaded", audio_id=audio_id, project_id=project.id, size=len(data))
    return UploadResponse(message="Uploaded", project_id=project.id, audio=AudioResponse.from_model(saved))


@router.get("", response_model=list[AudioResponse])
async def list_audio() -> list[AudioResponse]:
    return [AudioResponse.from_model(asset) for asset in await repo.list_all()]


@router.get("/{audio_id}/meta")
async def get_audio_meta(
    audio_id: Annotated[str, Path()],
    project_id: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    if is_virtual_audio_id(audio_id):
        if not project_id:
            raise HTTPException(status_code=400, detail="YouTube 项目需要提供 project_id")
        meta = await project_repo.get_youtube_meta(project_id)
        if meta is None:
            raise HTTPException(status_code=404, detail="未找到 YouTube 元数据")
        return {
            "id": audio_id,
            "title": meta.title,
            "artist": meta.channel_title,
            "duration": meta.parsed_duration,
            "thumbnail": meta.thumbnail,
            "url": meta.url,
            "is_virtual": True,
        }

    asset = await repo.get(audio_id)
    if asset is None:
        raise HTTPException(status_code=404, detail="音频不存在")
    return AudioResponse.from_model(asset).model_dump(mode="json")


@router.get("/{audio_id}/cover")
async def get_cover(
    audio_id: Annotated[str, Path()],
    project_id: Annotated[str | None, Query()] = None,
) -> Response:
    if is_virtual_audio_id(audio_id):
        if not project_id:
            raise HTTPException(status_code=400, detail="YouTube 项目需要提供 project_id")
        meta = await project_repo.get_youtube_meta(project_id)
        if meta is None:
            raise HTTPException(status_code=404, detail="未找到 YouTube 元数据")
        if not meta.thumbnail:
            raise HTTPException(status_code=404, detail="该 YouTube 项目没有缩略图")
        return RedirectResponse(meta.thumbnail, status_code=302)

    asset = await repo.get(audio_id)
    if asset is None:
        raise HTTPException(status_code=404, detail="音频不存在")
    cover = asset.cover_object_name
    if cover is None:
        raise HTTPException(status_code=404, detail="该音频没有封面")
    try:
        data = await asyncio.to_thread(media_client.get_bytes, media_client.cover_bucket, cover)
    except ObjectNotFound as exc:
        raise HTTPException(status_code=404, detail="封面文件不存在") from exc
    return Response(content=data, media_type=(asset.cover_art or {}).get("format") or "image/jpeg")


@router.get("/{audio_id}")
async def stream_audio(
    audio_id: Annotated[str, Path()],
    range_header: Annotated[str | None, Header(alias="range")] = None,
) -> Response:
    """支持 Range 请求的音频流（206 / 416）。"""

    asset = await repo.get(audio_id)
    if asset is None:
        raise HTTPException(status_code=404, detail="音频不存在")
    object_name = asset.object_name
    try:
        size = await asyncio.to_thread(media_client.size_of, media_client.audio_bucket, object_name)
    except ObjectNotFound as exc:
        raise HTTPException(status_code=404, detail="音频文件不存在") from exc

    headers = {
        "Accept-Ranges": "bytes",
        "Cache-Control": "public, max-age=3600",
    }
    content_type = asset.content_type or "audio/mpeg"

    if not range_header:
        data = await asyncio.to_thread(media_client.get_bytes, media_client.audio_bucket, object_name)
        return Response(content=data, media_type=content_type, headers=headers)

    byte_range = parse_range(range_header, size)
    if byte_range is None:
        headers["Content-Range"] = f"bytes */{size}"
        return Response(status_code=416, headers=headers)

    start, end = byte_range
    chunk = await asyncio.to_thread(
        media_client.get_bytes,
        media_client.audio_bucket,
        object_name,
        offset=start,
        length=end - start + 1,
    )
    headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    return Response(content=chunk, status_code=206, media_type=content_type, headers=headers)


@router.put("/{audio_id}", response_model=AudioResponse)
async def replace_audio(
    audio_id: Annotated[str, Path()],
    file: Annotated[UploadFile, File()],
) -> AudioResponse:
    asset = await repo.get(audio_id)
    if asset is None:
        raise HTTPException(status_code=404, detail="音频不存在")
    data = await _read_upload(file)
    content_type = file.content_type or "audio/mpeg"
    await asyncio.to_thread(
        media_client.put_bytes, media_client.audio_bucket, asset.object_name, data, content_type
    )
    asset.filename = file.filename or asset.filename
    asset.content_type = content_type
    asset.size = len(data)
    asset.file_hash = file_sha256(data)
    saved = await repo.save(asset)
    logger.info("audio.replaced", audio_id=audio_id, size=len(data))
    return AudioResponse.from_model(saved)


@router.delete("/{audio_id}")
async def delete_audio(audio_id: Annotated[str, Path()]) -> dict[str, str]:
    asset = await repo.delete(audio_id)
    if asset is not None:
        await asyncio.to_thread(media_client.remove, media_client.audio_bucket, asset.object_name)
        cover = asset.cover_object_name
        if cover:
            await asyncio.to_thread(media_client.remove, media_client.cover_bucket, cover)
    return {"message": "Deleted", "id": audio_id}
