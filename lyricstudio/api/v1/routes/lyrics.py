"""项目歌词：保存 / 读取、逐行编辑、LRC 导入导出与渲染提示预览。"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any
from urllib.parse import quote

import structlog
from fastapi import APIRouter, HTTPException, Path, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from lyricstudio.api.v1.routes.projects import LyricLinePayload, require_project
from lyricstudio.domain.models.project import LyricsDocument, Project, is_virtual_audio_id
from lyricstudio.infra.persistence.repositories.audio_repository import AudioRepository
from lyricstudio.infra.persistence.repositories.project_repository import ProjectRepository
from lyricstudio.timeline.cues import CompositionSize, RenderInput
from lyricstudio.timeline.lrc import (
    LrcImportError,
    LrcMetadata,
    export_lrc,
    import_lrc,
    import_pasted_lyrics,
    lrc_filename,
)
from lyricstudio.timeline.models import lines_from_dicts, lines_to_dicts
from lyricstudio.timeline.store import LyricLineStore


router = APIRouter(prefix="/api/v1/projects/{project_id}/lyrics", tags=["lyrics"])
logger = structlog.get_logger(__name__)
repo = ProjectRepository()
audio_repo = AudioRepository()


class SaveLyricsRequest(BaseModel):
    text: str | None = None
    lines: list[LyricLinePayload] | None = None


class LyricsResponse(BaseModel):
    id: str
    project_id: str
    text: str
    lines: list[LyricLinePayload]
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, doc: LyricsDocument) -> "LyricsResponse":
        return cls(
            id=doc.id,
            project_id=doc.project_id,
            text=doc.text,
            lines=[LyricLinePayload(**item) for item in doc.lines or []],
            updated_at=doc.updated_at,
        )


class AddLineRequest(BaseModel):
    after_id: int | None = None
    position: float = Field(0.0, ge=0, description="当前播放位置（秒）")
    text: str = ""


class UpdateLineRequest(BaseModel):
    """只更新请求里出现的字段；timestamp 显式传 null 表示清除打点。"""

    text: str | None = None
    timestamp: float | None = Field(None, ge=0)


class LrcImportRequest(BaseModel):
    content: str


class PasteRequest(BaseModel):
    text: str


class CueResponse(BaseModel):
    text: str
    start_frame: int
    end_frame: int


class CuePreviewResponse(BaseModel):
    fps: int
    width: int
    height: int
    total_frames: int
    cues: list[CueResponse]


async def _load_store(project_id: str) -> LyricLineStore:
    await require_project(project_id)
    doc = await repo.get_lyrics(project_id)
    return LyricLineStore(lines_from_dicts(doc.lines) if doc else [])


async def _persist(project_id: str, store: LyricLineStore, *, source: str) -> LyricsDocument:
    lines = store.snapshot()
    return await repo.save_lyrics(
        project_id,
        text="\n".join(line.text for line in lines),
        lines=lines_to_dicts(lines),
        meta={"source": source},
    )


async def _audio_tags(project: Project) -> dict[str, Any]:
    """上传音频取 mutagen 标签；YouTube 项目取视频标题与频道名。"""

    if not project.audio_id:
        return {}
    if is_virtual_audio_id(project.audio_id):
        meta = await repo.get_youtube_meta(project.id)
        if meta is None:
            return {}
        return {"title": meta.title, "artist": meta.channel_title, "duration": meta.parsed_duration}
    asset = await audio_repo.get(project.audio_id)
    return dict(asset.tags or {}) if asset else {}


@router.get("", response_model=LyricsResponse)
async def get_lyrics(project_id: Annotated[str, Path()]) -> LyricsResponse:
    await require_project(project_id)
    doc = await repo.get_lyrics(project_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="该项目还没有歌词")
    return LyricsResponse.from_model(doc)


@router.post("", response_model=LyricsResponse)
async def save_lyrics(project_id: Annotated[str, Path()], payload: SaveLyricsRequest) -> LyricsResponse:
    await require_project(project_id)
    if not payload.text and not payload.lines:
        raise HTTPException(status_code=400, detail="歌词文本和歌词行不能同时为空")

    doc = await repo.save_lyrics(
        project_id,
        text=payload.text or "",
        lines=[line.model_dump() for line in payload.lines or []],
    )
    logger.info("lyrics.saved", project_id=project_id, lyrics_id=doc.id, lines=len(doc.lines))
    return LyricsResponse.from_model(doc)


@router.post("/lines", status_code=201, response_model=LyricLinePayload)
async def add_line(project_id: Annotated[str, Path()], payload: AddLineRequest) -> LyricLinePayload:
    store = await _load_store(project_id)
    line = store.add_line(after_id=payload.after_id, position=payload.position)
    if payload.text:
        store.update_line(line.id, text=payload.text)
    await _persist(project_id, store, source="edit")
    saved = store.get(line.id)
    assert saved is not None
    return LyricLinePayload(**saved.to_dict())


@router.patch("/lines/{line_id}", response_model=LyricLinePayload)
async def update_line(
    project_id: Annotated[str, Path()],
    line_id: Annotated[int, Path()],
    payload: UpdateLineRequest,
) -> LyricLinePayload:
    store = await _load_store(project_id)
    if store.get(line_id) is None:
        raise HTTPException(status_code=404, detail="歌词行不存在")

    changes = payload.model_dump(exclude_unset=True)
    if "text" in changes and changes["text"] is None:
        changes.pop("text")
    if changes and store.update_line(line_id, **changes):
        await _persist(project_id, store, source="edit")
    line = store.get(line_id)
    assert line is not None
    return LyricLinePayload(**line.to_dict())


@router.delete("/lines/{line_id}")
async def delete_line(
    project_id: Annotated[str, Path()],
    line_id: Annotated[int, Path()],
) -> dict[str, Any]:
    store = await _load_store(project_id)
    if not store.delete_line(line_id):
        raise HTTPException(status_code=404, detail="歌词行不存在")
    await _persist(project_id, store, source="edit")
    return {"message": "Line deleted", "id": line_id}


@router.get("/lrc", response_class=PlainTextResponse)
async def download_lrc(project_id: Annotated[str, Path()]) -> PlainTextResponse:
    project = await require_project(project_id)
    store = await _load_store(project_id)
    tags = await _audio_tags(project)
    meta = LrcMetadata.from_audio_metadata(tags)
    filename = lrc_filename(meta if tags else None)
    return PlainTextResponse(
        export_lrc(store.lines, meta),
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@router.post("/lrc", response_model=LyricsResponse)
async def upload_lrc(project_id: Annotated[str, Path()], payload: LrcImportRequest) -> LyricsResponse:
    store = await _load_store(project_id)
    try:
        count = import_lrc(store, payload.content)
    except LrcImportError as exc:
        raise HTTPException(status_code=400, detail="LRC 文件中没有有效的时间戳行") from exc
    doc = await _persist(project_id, store, source="lrc")
    logger.info("lyrics.lrc_imported", project_id=project_id, lines=count)
    return LyricsResponse.from_model(doc)


@router.post("/paste", response_model=LyricsResponse)
async def paste_lyrics(project_id: Annotated[str, Path()], payload: PasteRequest) -> LyricsResponse:
    store = await _load_store(project_id)
    if import_pasted_lyrics(store, payload.text) == 0:
        raise HTTPException(status_code=400, detail="没有可转换的歌词")
    doc = await _persist(project_id, store, source="paste")
    return LyricsResponse.from_model(doc)


@router.get("/cues", response_model=CuePreviewResponse)
async def preview_cues(
    project_id: Annotated[str, Path()],
    size: Annotated[CompositionSize, Query()] = CompositionSize.LANDSCAPE,
) -> CuePreviewResponse:
    project = await require_project(project_id)
    render_input = await build_render_input(project, size=size)
    return CuePreviewResponse(
        fps=render_input.fps,
        width=render_input.width,
        height=render_input.height,
        total_frames=render_input.total_frames,
        cues=[CueResponse(**cue.model_dump()) for cue in render_input.cues],
    )


async def build_render_input(project: Project, *, size: CompositionSize) -> RenderInput:
    store = await _load_store(project.id)
    tags = await _audio_tags(project)
    duration = tags.get("duration")
    return RenderInput.from_lines(
        store.lines,
        audio_duration=float(duration) if duration else None,
        size=size,
        title=tags.get("title"),
        artist=tags.get("artist"),
        audio_id=project.audio_id,
    )

