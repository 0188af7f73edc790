"""后端 HTTP API 的异步客户端。"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import httpx
import structlog

from lyricstudio.infra.config.settings import get_settings
from lyricstudio.timeline.models import LyricLine, lines_to_dicts

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"


class ApiClientError(RuntimeError):
    """后端返回非 2xx 或网络不可达。status_code 为 None 表示传输层错误。"""

    def __init__(self, status_code: int | None, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"[{self.status_code}] {self.message}"


def _error_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(payload, dict):
        detail = payload.get("detail") or payload.get("error") or payload.get("message")
        if detail is not None:
            return detail if isinstance(detail, str) else str(detail)
    return resp.text


class LyricStudioClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = (base_url or get_settings().api_base_url).rstrip("/")
        self._transport = transport
        self._timeout = timeout

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url, transport=self._transport, timeout=self._timeout
        ) as client:
            try:
                resp = await client.request(method, f"{API_PREFIX}{path}", **kwargs)
            except httpx.HTTPError as exc:
                logger.warning("api_client.transport_error", method=method, path=path, error=str(exc))
                raise ApiClientError(None, str(exc) or type(exc).__name__) from exc
        if resp.is_error:
            message = _error_message(resp)
            logger.warning("api_client.http_error", method=method, path=path, status=resp.status_code, error=message)
            raise ApiClientError(resp.status_code, message)
        return resp

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = await self._request(method, path, **kwargs)
        return resp.json()

    # ------------------------------------------------------------------
    # 项目
    # ------------------------------------------------------------------
    async def list_projects(self) -> list[dict[str, Any]]:
        return await self._json("GET", "/projects")

    async def get_project(self, project_id: str) -> dict[str, Any]:
        return await self._json("GET", f"/projects/{project_id}")

    async def create_project(self, name: str, audio_id: str | None = None) -> dict[str, Any]:
        return await self._json("POST", "/projects", json={"name": name, "audio_id": audio_id})

    async def update_project(self, project_id: str, **fields: Any) -> dict[str, Any]:
        return await self._json("PUT", f"/projects/{project_id}", json=fields)

    async def delete_project(self, project_id: str) -> None:
        await self._request("DELETE", f"/projects/{project_id}")

    # ------------------------------------------------------------------
    # 歌词
    # ------------------------------------------------------------------
    async def get_lyrics(self, project_id: str) -> list[LyricLine] | None:
        """返回服务端当前歌词；项目还没有歌词时返回 None。"""

        try:
            data = await self._json("GET", f"/projects/{project_id}/lyrics")
        except ApiClientError as exc:
            if exc.status_code == 404:
                return None
            raise
        return [LyricLine.from_dict(item) for item in data.get("lines") or []]

    async def save_lyrics(
        self,
        project_id: str,
        lines: Iterable[LyricLine],
        *,
        text: str | None = None,
    ) -> dict[str, Any]:
        items = list(lines)
        body = {
            "text": text if text is not None else "\n".join(line.text for line in items),
            "lines": lines_to_dicts(items),
        }
        return await self._json("POST", f"/projects/{project_id}/lyrics", json=body)

    # ------------------------------------------------------------------
    # 音频
    # ------------------------------------------------------------------
    async def get_audio_meta(self, audio_id: str, project_id: str | None = None) -> dict[str, Any]:
        params = {"project_id": project_id} if project_id else None
        return await self._json("GET", f"/audio/{audio_id}/meta", params=params)

    async def upload_audio(
        self, filename: str, content: bytes, content_type: str = "audio/mpeg"
    ) -> dict[str, Any]:
        files = {"audio": (filename, content, content_type)}
        return await self._json("POST", "/audio", files=files)

    # ------------------------------------------------------------------
    # 渲染
    # ------------------------------------------------------------------
    async def preview_cues(self, project_id: str) -> dict[str, Any]:
        return await self._json("GET", f"/projects/{project_id}/lyrics/cues")

    async def submit_render(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._json("POST", "/render", json=dict(payload))

    async def get_render(self, job_id: str) -> dict[str, Any]:
        return await self._json("GET", f"/render/{job_id}")
