"""MinIO/S3 对象存储封装。

音频文件存为 ``<audio_id>.mp3``，封面存为 ``<cover_id>.<ext>``。
minio SDK 是同步的，调用方在路由中通过 ``asyncio.to_thread`` 使用。
"""

from __future__ import annotations

import io
from pathlib import Path

import structlog
from minio import Minio
from minio.error import S3Error

from lyricstudio.infra.config.settings import get_settings

logger = structlog.get_logger(__name__)


class ObjectNotFound(LookupError):
    """对象不存在。"""


class MediaClient:
    def __init__(self) -> None:
        settings = get_settings()
        self.audio_bucket = settings.audio_bucket
        self.cover_bucket = settings.cover_bucket
        endpoint = settings.minio_endpoint.replace("http://", "").replace("https://", "")
        self.client = Minio(
            endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_endpoint.startswith("https"),
        )

    def ensure_buckets(self) -> None:
        for bucket in (self.audio_bucket, self.cover_bucket):
            if not self.client.bucket_exists(bucket):
                self.client.make_bucket(bucket)
                logger.info("minio.bucket_created", bucket=bucket)

    def put_bytes(self, bucket: str, object_name: str, data: bytes, content_type: str) -> str:
        self.client.put_object(
            bucket,
            object_name,
            io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
        return object_name

    def get_bytes(self, bucket: str, object_name: str, *, offset: int = 0, length: int = 0) -> bytes:
        """读取对象；``length`` 为 0 表示读到末尾。"""

        try:
            response = self.client.get_object(bucket, object_name, offset=offset, length=length)
        except S3Error as exc:
            if exc.code in ("NoSuchKey", "NoSuchBucket"):
                raise ObjectNotFound(object_name) from exc
            raise
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def size_of(self, bucket: str, object_name: str) -> int:
        try:
            stat = self.client.stat_object(bucket, object_name)
        except S3Error as exc:
            if exc.code in ("NoSuchKey", "NoSuchBucket"):
                raise ObjectNotFound(object_name) from exc
            raise
        return int(stat.size or 0)

    def download(self, bucket: str, object_name: str, file_path: Path) -> Path:
        self.client.fget_object(bucket, object_name, str(file_path))
        return file_path

    def remove(self, bucket: str, object_name: str) -> None:
        try:
            self.client.remove_object(bucket, object_name)
        except S3Error as exc:
            logger.warning("minio.remove_failed", bucket=bucket, object_name=object_name, error=str(exc))


media_client = MediaClient()
