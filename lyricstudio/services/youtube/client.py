"""YouTube Data API 封装

只读取元数据，不下载音频：
- 文本搜索（先清洗查询词，再补充时长）
- 通过链接直接获取单个视频详情
- 从标题推断歌词骨架
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx
import structlog

from lyricstudio.infra.config.settings import get_settings

logger = structlog.get_logger(__name__)

MAX_RESULTS = 10
DEFAULT_DURATION = "PT0S"

_VIDEO_ID = re.compile(
    r"^(?:https?://)?(?:www\.)?(?:youtube\.com/(?:watch\?v=|embed/)|youtu\.be/)([a-zA-Z0-9_-]{11})(?:\S+)?$"
)
_ISO_DURATION = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")
_URL_PREFIX = re.compile(r"^https?://", re.IGNORECASE)

_BLOCKED_PATTERNS = [
    re.compile(r"(?:api[_-]?key|token|secret)", re.IGNORECASE),
    re.compile(r"(?:script|javascript|<|>)", re.IGNORECASE),
    re.compile(r"(?:sql|union|select|drop|delete)", re.IGNORECASE),
    re.compile(r"(?:eval|function|constructor)", re.IGNORECASE),
]

_LYRICS_PATTERNS = [
    re.compile(r"lyrics", re.IGNORECASE),
    re.compile(r"lyric video", re.IGNORECASE),
    re.compile(r"official lyric", re.IGNORECASE),
    re.compile(r"with lyrics", re.IGNORECASE),
    re.compile(r"\(lyrics\)", re.IGNORECASE),
    re.compile(r"\[lyrics\]", re.IGNORECASE),
]

_MUSIC_PATTERNS = [
    re.compile(r"official music video", re.IGNORECASE),
    re.compile(r"official video", re.IGNORECASE),
    re.compile(r"music video", re.IGNORECASE),
    re.compile(r"(song|track|single|album)", re.IGNORECASE),
]

PLACEHOLDER_LINE = "(Add lyrics here)"


class YoutubeError(RuntimeError):
    """YouTube 调用失败的基类。"""


class YoutubeNotConfigured(YoutubeError):
    """未配置 API Key。"""


class YoutubeUnavailable(YoutubeError):
    """上游接口返回非 2xx 或网络异常。"""


class InvalidQuery(ValueError):
    """搜索词不合法。"""


@dataclass
class SanitizedQuery:
    is_valid: bool
    sanitized: str
    error: str | None = None


@dataclass
class ExtractedLyrics:
    lyrics: list[str] = field(default_factory=list)
    source: Literal["title", "description", "external", "none"] = "none"
    confidence: float = 0.0


def sanitize_search_query(query: str | None) -> SanitizedQuery:
    if not query or not isinstance(query, str):
        return SanitizedQuery(False, "", "Query is required")

    sanitized = query.strip()
    if len(sanitized) < 2:
        return SanitizedQuery(False, sanitized, "Search query must be at least 2 characters")
    if len(sanitized) > 100:
        return SanitizedQuery(False, sanitized, "Search query too long (max 100 characters)")
    if any(pattern.search(sanitized) for pattern in _BLOCKED_PATTERNS):
        return SanitizedQuery(False, sanitized, "Invalid search query")
    return SanitizedQuery(True, sanitized)


def is_url(text: str) -> bool:
    return bool(_URL_PREFIX.match(text))


def extract_video_id(url: str) -> str | None:
    match = _VIDEO_ID.match(url.strip())
    return match.group(1) if match else None


def parse_duration_to_seconds(duration: str | None) -> int:
    """ISO 8601 时长（如 ``PT4M13S``）转秒，无法识别时返回 0。"""

    if not duration:
        return 0
    match = _ISO_DURATION.search(duration)
    if not match:
        return 0
    hours, minutes, seconds = (int(part or 0) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def sanitize_youtube_response(data: dict[str, Any] | None) -> list[dict[str, Any]]:
    """裁剪搜索结果字段长度并丢弃缺少 videoId / snippet 的条目。"""

    items = (data or {}).get("items")
    if not isinstance(items, list):
        return []

    results: list[dict[str, Any]] = []
    for item in items:
        video_id = (item.get("id") or {}).get("videoId") if isinstance(item.get("id"), dict) else None
        snippet = item.get("snippet")
        if not video_id or not snippet:
            continue
        thumbnails = snippet.get("thumbnails") or {}
        results.append(
            {
                "id": video_id,
                "title": (snippet.get("title") or "")[:200],
                "description": (snippet.get("description") or "")[:500],
                "thumbnail": (thumbnails.get("medium") or {}).get("url"),
                "channel_title": (snippet.get("channelTitle") or "")[:100],
                "published_at": snippet.get("publishedAt"),
                "url": f"https://www.youtube.com/watch?v={video_id}",
            }
        )
    return results[:MAX_RESULTS]


def extract_lyrics_from_title(title: str, channel_title: str | None = None) -> ExtractedLyrics:
    """根据视频标题生成可编辑的歌词骨架。

    标题带 lyrics 字样时置信度 0.7；只像是音乐视频时 0.5；否则返回空。
    """

    if any(pattern.search(title) for pattern in _LYRICS_PATTERNS):
        clean = re.sub(r"\(.*lyrics.*\)", "", title, flags=re.IGNORECASE)
        clean = re.sub(r"\[.*lyrics.*\]", "", clean, flags=re.IGNORECASE)
        clean = re.sub(r"- lyrics", "", clean, flags=re.IGNORECASE)
        clean = re.sub(r"lyrics -", "", clean, flags=re.IGNORECASE)
        clean = re.sub(r"official lyric video", "", clean, flags=re.IGNORECASE).strip()
        return ExtractedLyrics(
            lyrics=[
                "[Verse 1]",
                clean,
                "",
                "[Chorus]",
                clean,
                "",
                "[Verse 2]",
                PLACEHOLDER_LINE,
                "",
                "[Chorus]",
                clean,
            ],
            source="title",
            confidence=0.7,
        )

    if any(pattern.search(title) for pattern in _MUSIC_PATTERNS):
        song_title = re.sub(r"official music video", "", title, flags=re.IGNORECASE)
        song_title = re.sub(r"official video", "", song_title, flags=re.IGNORECASE)
        song_title = re.sub(r"music video", "", song_title, flags=re.IGNORECASE).strip()
        return ExtractedLyrics(
            lyrics=[
                "[Verse 1]",
                song_title,
                "",
                "[Chorus]",
                PLACEHOLDER_LINE,
                "",
                "[Verse 2]",
                PLACEHOLDER_LINE,
            ],
            source="title",
            confidence=0.5,
        )

    return ExtractedLyrics()


class YoutubeClient:
    """YouTube Data API v3 只读客户端。"""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.youtube_api_key
        self.base_url = (base_url or settings.youtube_api_base_url).rstrip("/")
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, transport=self._transport, timeout=self._timeout)

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise YoutubeNotConfigured("YouTube API key not configured")
        async with self._client() as client:
            try:
                resp = await client.get(path, params={**params, "key": self.api_key})
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("youtube.request_failed", path=path, error=str(exc))
                raise YoutubeUnavailable(str(exc)) from exc
            return resp.json()

    async def video_details(self, video_id: str) -> list[dict[str, Any]]:
        data = await self._get("/videos", {"part": "snippet,contentDetails", "id": video_id})
        items = data.get("items") or []
        if not items:
            return []
        item = items[0]
        snippet = item.get("snippet") or {}
        return [
            {
                "id": item.get("id", video_id),
                "title": snippet.get("title"),
                "description": snippet.get("description"),
                "thumbnail": ((snippet.get("thumbnails") or {}).get("high") or {}).get("url"),
                "channel_title": snippet.get("channelTitle"),
                "duration": (item.get("contentDetails") or {}).get("duration") or DEFAULT_DURATION,
                "url": f"https://www.youtube.com/watch?v={item.get('id', video_id)}",
            }
        ]

    async def search(self, query: str) -> list[dict[str, Any]]:
        """文本搜索并补充每个结果的 ISO 时长；补充失败时保留搜索结果。"""

        checked = sanitize_search_query(query)
        if not checked.is_valid:
            raise InvalidQuery(checked.error or "Invalid search query")

        data = await self._get(
            "/search",
            {
                "part": "snippet",
                "type": "video",
                "maxResults": MAX_RESULTS,
                "q": checked.sanitized,
                "order": "relevance",
                "videoEmbeddable": "true",
                "videoSyndicated": "true",
            },
        )
        results = sanitize_youtube_response(data)
        logger.info("youtube.search", query=checked.sanitized, results=len(results))
        if not results:
            return results

        try:
            details = await self._get(
                "/videos",
                {"part": "contentDetails", "id": ",".join(item["id"] for item in results)},
            )
        except YoutubeUnavailable:
            return results

        durations = {
            item.get("id"): (item.get("contentDetails") or {}).get("duration")
            for item in details.get("items") or []
        }
        for item in results:
            item["duration"] = durations.get(item["id"]) or DEFAULT_DURATION
        return results

    async def lookup(self, user_input: str) -> list[dict[str, Any]]:
        """链接走视频详情，其余当作搜索词。"""

        text = user_input.strip()
        if is_url(text):
            video_id = extract_video_id(text)
            if not video_id:
                raise InvalidQuery("Invalid YouTube URL")
            return await self.video_details(video_id)
        return await self.search(text)
