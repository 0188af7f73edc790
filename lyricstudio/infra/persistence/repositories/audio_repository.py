"""AudioAsset 数据访问。"""

from __future__ import annotations

from typing import Any, cast

from sqlmodel import select

from lyricstudio.domain.models.project import AudioAsset
from lyricstudio.infra.persistence.database import get_session


class AudioRepository:
    async def save(self, asset: AudioAsset) -> AudioAsset:
        async with get_session() as session:
            merged = await session.merge(asset)
            await session.commit()
            await session.refresh(merged)
            return merged

    async def get(self, audio_id: str) -> AudioAsset | None:
        async with get_session() as session:
            return await session.get(AudioAsset, audio_id)

    async def find_by_hash(self, file_hash: str) -> AudioAsset | None:
        async with get_session() as session:
            stmt = select(AudioAsset).where(AudioAsset.file_hash == file_hash)
            result = await session.exec(stmt)
            return result.first()

    async def list_all(self) -> list[AudioAsset]:
        async with get_session() as session:
            stmt = select(AudioAsset).order_by(cast(Any, AudioAsset.created_at).desc())
            result = await session.exec(stmt)
            return list(result)

    async def delete(self, audio_id: str) -> AudioAsset | None:
        """删除元数据并返回被删除的记录，便于调用方清理对象存储。"""

        async with get_session() as session:
            asset = await session.get(AudioAsset, audio_id)
            if asset is None:
                return None
            await session.delete(asset)
            await session.commit()
            return asset
