"""Redis 连接与按客户端的固定窗口限流。"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass

import structlog
from redis.asyncio import Redis

from lyricstudio.infra.config.settings import get_settings


logger = structlog.get_logger(__name__)
_redis: Redis | None = None
_rate_limit_degraded = False
# key -> (窗口内计数, 窗口开始时间)
_memory_windows: dict[str, tuple[int, float]] = {}


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: int = 0  # 秒，仅在被拒绝时有意义


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(get_settings().redis_url, decode_responses=False)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def _memory_window(key: str, limit: int, interval_seconds: int) -> RateLimitResult:
    now = asyncio.get_running_loop().time()
    count, started = _memory_windows.get(key, (0, now))
    if now - started >= interval_seconds:
        count, started = 0, now
    count += 1
    _memory_windows[key] = (count, started)
    retry_after = math.ceil(interval_seconds - (now - started)) if count > limit else 0
    return RateLimitResult(allowed=count <= limit, remaining=max(0, limit - count), retry_after=retry_after)


async def token_bucket(key: str, limit: int, interval_seconds: int) -> RateLimitResult:
    """在 ``interval_seconds`` 窗口内最多放行 ``limit`` 次。

    Redis 不可用时退化为进程内计数，只在第一次退化时告警。
    """

    global _rate_limit_degraded
    try:
        redis = get_redis()
        consumed = int(await redis.incr(key))
        if consumed == 1:
            await redis.expire(key, interval_seconds)
        retry_after = 0
        if consumed > limit:
            ttl = int(await redis.ttl(key))
            retry_after = ttl if ttl > 0 else interval_seconds
    except Exception as exc:  # noqa: BLE001
        if not _rate_limit_degraded:
            logger.warning("redis.rate_limit_unavailable", key=key, error=str(exc))
            _rate_limit_degraded = True
        return _memory_window(key, limit, interval_seconds)

    return RateLimitResult(allowed=consumed <= limit, remaining=max(0, limit - consumed), retry_after=retry_after)


def reset_fallback_buckets() -> None:
    global _rate_limit_degraded
    _memory_windows.clear()
    _rate_limit_degraded = False
