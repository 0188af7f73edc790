"""渲染进度事件的 Redis Pub/Sub 发布与订阅。

Worker 每处理一段就 publish 一条 JSON，SSE 路由订阅对应频道并原样转发给浏览器。
"""

from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, Awaitable, Callable, Literal, Optional

import structlog
from pydantic import BaseModel, Field

from lyricstudio.infra.config.settings import get_settings
from lyricstudio.infra.messaging.redis_pool import get_redis

logger = structlog.get_logger(__name__)

RenderStage = Literal["bundling", "rendering", "complete", "error"]
TERMINAL_STAGES = ("complete", "error")


class RenderProgressEvent(BaseModel):
    type: RenderStage
    job_id: str
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    message: Optional[str] = None
    rendered_frames: Optional[int] = None
    total_frames: Optional[int] = None
    download_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_STAGES

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"


IdleCheck = Callable[[], Awaitable[Optional[RenderProgressEvent]]]


def progress_channel(job_id: str) -> str:
    return f"{get_settings().render_progress_channel_prefix}:{job_id}"


async def publish_progress(event: RenderProgressEvent) -> None:
    """发布进度事件；Redis 故障只记录日志，不影响渲染本身。"""

    try:
        await get_redis().publish(progress_channel(event.job_id), event.model_dump_json())
    except Exception as exc:  # noqa: BLE001
        logger.warning("render_progress.publish_failed", job_id=event.job_id, error=str(exc))


def _parse_message(message: dict, channel: str) -> RenderProgressEvent | None:
    data = message.get("data")
    if not data:
        return None
    try:
        payload = json.loads(data.decode() if isinstance(data, bytes) else data)
        return RenderProgressEvent(**payload)
    except Exception as exc:  # noqa: BLE001
        logger.warning("render_progress.invalid_payload", channel=channel, error=str(exc))
        return None


async def subscribe_progress(
    job_id: str,
    *,
    poll_timeout: float = 1.0,
    stop_event: asyncio.Event | None = None,
    on_idle: IdleCheck | None = None,
) -> AsyncIterator[RenderProgressEvent]:
    """订阅某个任务的进度，收到 complete / error 后结束。

    ``on_idle`` 在订阅完成后调用一次，之后每次等待消息超时再调用；
    它返回的事件同样会被产出，用来补上订阅前或发布失败时丢掉的最终事件。
    """

    channel = progress_channel(job_id)
    pubsub = get_redis().pubsub()
    await pubsub.subscribe(channel)
    logger.info("render_progress.subscribed", channel=channel)
    idle = on_idle is not None
    try:
        while stop_event is None or not stop_event.is_set():
            if idle:
                idle = False
                event = await on_idle() if on_idle is not None else None
            else:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=poll_timeout)
                if not message:
                    idle = on_idle is not None
                    continue
                event = _parse_message(message, channel)
            if event is None:
                continue
            yield event
            if event.is_terminal:
                break
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        logger.info("render_progress.unsubscribed", channel=channel)
