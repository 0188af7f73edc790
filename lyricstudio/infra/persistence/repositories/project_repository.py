"""项目、歌词文档与 YouTube 元数据的仓储操作。"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Iterable, Mapping, cast

from sqlmodel import select

from lyricstudio.domain.models.project import LyricsDocument, Project, YoutubeImport
from lyricstudio.infra.persistence.database import get_session


def new_id() -> str:
    return uuid.uuid4().hex


class ProjectRepository:
    async def save(self, project: Project) -> Project:
        async with get_session() as session:
            project.updated_at = datetime.utcnow()
            merged = await session.merge(project)
            await session.commit()
            await session.refresh(merged)
            return merged

    async def get(self, project_id: str) -> Project | None:
        async with get_session() as session:
            return await session.get(Project, project_id)

    async def list_all(self) -> list[Project]:
        async with get_session() as session:
            stmt = select(Project).order_by(cast(Any, Project.created_at).desc())
            result = await session.exec(stmt)
            return list(result)

    async def update(self, project_id: str, **fields: Any) -> Project:
        async with get_session() as session:
            project = await session.get(Project, project_id)
            if project is None:
                raise ValueError("project not found")
            for key, value in fields.items():
                setattr(project, key, value)
            project.updated_at = datetime.utcnow()
            await session.commit()
            await session.refresh(project)
            return project

    async def delete(self, project_id: str) -> bool:
        async with get_session() as session:
            project = await session.get(Project, project_id)
            if project is None:
                return False
            await session.delete(project)
            youtube_meta = await session.get(YoutubeImport, project_id)
            if youtube_meta is not None:
                await session.delete(youtube_meta)
            await session.commit()
            return True

    # ------------------------------------------------------------------
    # 歌词
    # ------------------------------------------------------------------
    async def save_lyrics(
        self,
        project_id: str,
        *,
        text: str,
        lines: Iterable[Mapping[str, Any]],
        meta: Mapping[str, Any] | None = None,
    ) -> LyricsDocument:
        """保存一份新的歌词文档，并让项目指向它。"""

        async with get_session() as session:
            project = await session.get(Project, project_id)
            if project is None:
                raise ValueError("project not found")
            now = datetime.utcnow()
            document = LyricsDocument(
                id=new_id(),
                project_id=project_id,
                text=text,
                lines=[dict(item) for item in lines],
                meta=dict(meta) if meta else None,
                created_at=now,
                updated_at=now,
            )
            session.add(document)
            project.lyrics_id = document.id
            project.updated_at = now
            await session.commit()
            await session.refresh(document)
            return document

    async def get_lyrics(self, project_id: str) -> LyricsDocument | None:
        async with get_session() as session:
            project = await session.get(Project, project_id)
            if project is None:
                raise ValueError("project not found")
            if not project.lyrics_id:
                return None
            return await session.get(LyricsDocument, project.lyrics_id)

    # ------------------------------------------------------------------
    # YouTube
    # ------------------------------------------------------------------
    async def save_youtube_meta(self, meta: YoutubeImport) -> YoutubeImport:
        async with get_session() as session:
            merged = await session.merge(meta)
            await session.commit()
            await session.refresh(merged)
            return merged

    async def get_youtube_meta(self, project_id: str) -> YoutubeImport | None:
        async with get_session() as session:
            return await session.get(YoutubeImport, project_id)
