"""项目、歌词与音频资源的 SQLModel 实体。

原始存储是按前缀划分的 KV 命名空间（``project:`` / ``lyrics:`` / ``audio:`` /
``youtube-meta:``），这里每个命名空间对应一张以字符串主键索引的表，
写入统一走 ``session.merge``，即最后一次写入生效。
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

YOUTUBE_VIRTUAL_PREFIX = "youtube-virtual-"


def is_virtual_audio_id(audio_id: str | None) -> bool:
    """YouTube 导入的项目没有真实音频，audio_id 以固定前缀标记。"""
    return bool(audio_id) and audio_id.startswith(YOUTUBE_VIRTUAL_PREFIX)  # type: ignore[union-attr]


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: str = Field(primary_key=True)
    name: str
    description: Optional[str] = None
    audio_id: Optional[str] = None
    lyrics_id: Optional[str] = None
    asset_ids: list[str] | None = Field(default=None, sa_column=Column(JSON))
    # tags / category / public / link
    meta: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime | None = Field(default_factory=datetime.utcnow)
    updated_at: datetime | None = Field(default_factory=datetime.utcnow)


class LyricsDocument(SQLModel, table=True):
    """一次保存的完整歌词快照。

    ``lines`` 保存 ``{"id", "text", "timestamp"}`` 字典列表，timestamp 可为 null。
    """

    __tablename__ = "lyrics_documents"

    id: str = Field(primary_key=True)
    project_id: str = Field(index=True)
    text: str = ""
    lines: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    # language / source / version
    meta: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime | None = Field(default_factory=datetime.utcnow)
    updated_at: datetime | None = Field(default_factory=datetime.utcnow)


class AudioAsset(SQLModel, table=True):
    __tablename__ = "audio_assets"

    id: str = Field(primary_key=True)
    filename: str
    content_type: str
    size: int
    file_hash: str = Field(index=True)
    project_id: Optional[str] = None
    # title / artist / album / year / genre / duration
    tags: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    # id / format / size
    cover_art: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime | None = Field(default_factory=datetime.utcnow)

    @property
    def object_name(self) -> str:
        return f"{self.id}.mp3"

    @property
    def cover_object_name(self) -> str | None:
        if not self.cover_art or not self.cover_art.get("id"):
            return None
        fmt = str(self.cover_art.get("format") or "image/jpeg")
        ext = fmt.split("/")[1] if "/" in fmt else "jpg"
        return f"{self.cover_art['id']}.{ext or 'jpg'}"


class YoutubeImport(SQLModel, table=True):
    """从 YouTube 视频创建项目时保存的视频元数据。"""

    __tablename__ = "youtube_imports"

    project_id: str = Field(primary_key=True)
    video_id: str
    title: str
    channel_title: str = ""
    duration: str = "PT0S"
    parsed_duration: int = 0
    thumbnail: Optional[str] = None
    url: Optional[str] = None
    description: str = ""
    is_virtual: bool = True
    imported_at: datetime | None = Field(default_factory=datetime.utcnow)
