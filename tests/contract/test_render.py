from typing import Any, Callable

import pytest
from httpx import AsyncClient

from lyricstudio.api.v1.routes import render as render_routes
from lyricstudio.infra.messaging import render_progress


async def _project_with_lyrics(app_client: AsyncClient) -> str:
    project_id = (await app_client.post("/api/v1/projects", json={"name": "渲染项目"})).json()["id"]
    await app_client.post(
        f"/api/v1/projects/{project_id}/lyrics/lrc",
        json={"content": "[00:00.00]第一句\n[00:05.00]第二句\n"},
    )
    return project_id


@pytest.mark.asyncio
async def test_submit_render_for_project(app_client: AsyncClient, enqueued_jobs: list[str]) -> None:
    project_id = await _project_with_lyrics(app_client)

    response = await app_client.post("/api/v1/render", json={"project_id": project_id, "output_file_name": "my-video"})

    assert response.status_code == 202
    data = response.json()
    assert data["status"] == "queued"
    assert data["total_frames"] == 300
    assert data["output_file_name"] == "my-video.mp4"
    assert data["download_url"] is None
    assert enqueued_jobs == [data["job_id"]]

    status = await app_client.get(f"/api/v1/render/{data['job_id']}")
    assert status.json()["status"] == "queued"


@pytest.mark.asyncio
async def test_submit_render_with_input_props(app_client: AsyncClient, enqueued_jobs: list[str]) -> None:
    body = {
        "input_props": {
            "cues": [{"text": "hi", "start_frame": 0, "end_frame": 60}],
            "total_frames": 90,
            "size": "portrait",
        }
    }

    response = await app_client.post("/api/v1/render", json=body)

    assert response.status_code == 202
    assert response.json()["output_file_name"].startswith("lyric-video-")
    assert len(enqueued_jobs) == 1


@pytest.mark.asyncio
async def test_submit_render_validation(app_client: AsyncClient, enqueued_jobs: list[str]) -> None:
    assert (await app_client.post("/api/v1/render", json={})).status_code == 400

    empty_project = (await app_client.post("/api/v1/projects", json={"name": "空"})).json()["id"]
    assert (await app_client.post("/api/v1/render", json={"project_id": empty_project})).status_code == 400

    assert (await app_client.post("/api/v1/render", json={"project_id": "nope"})).status_code == 404

    bad_name = {"project_id": empty_project, "output_file_name": "../etc/passwd"}
    assert (await app_client.post("/api/v1/render", json=bad_name)).status_code == 422
    assert enqueued_jobs == []


@pytest.mark.asyncio
async def test_render_status_unknown_job(app_client: AsyncClient) -> None:
    assert (await app_client.get("/api/v1/render/unknown")).status_code == 404
    assert (await app_client.get("/api/v1/render/unknown/events")).status_code == 404


@pytest.mark.asyncio
async def test_events_for_finished_job(
    app_client: AsyncClient, render_job_factory: Callable[..., Any]
) -> None:
    job = render_job_factory(job_status="success", output_path="/tmp/video.mp4", output_file_name="video.mp4", progress=1.0)
    await render_routes.repo.save(job)

    response = await app_client.get(f"/api/v1/render/{job.id}/events")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text.startswith("data: ")
    assert '"type":"complete"' in response.text
    assert '"download_url":"/api/v1/renders/video.mp4"' in response.text


@pytest.mark.asyncio
async def test_events_for_failed_job(app_client: AsyncClient, render_job_factory: Callable[..., Any]) -> None:
    job = render_job_factory(job_status="failed", error_log="ffmpeg exploded")
    await render_routes.repo.save(job)

    response = await app_client.get(f"/api/v1/render/{job.id}/events")

    assert '"type":"error"' in response.text
    assert "ffmpeg exploded" in response.text


class SilentPubSub:
    """从不收到消息；第一次轮询时把任务标记为成功，模拟最终事件发布失败。"""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self.polls = 0
        self.closed = False

    async def subscribe(self, channel: str) -> None:
        pass

    async def unsubscribe(self, channel: str) -> None:
        pass

    async def aclose(self) -> None:
        self.closed = True

    async def get_message(self, ignore_subscribe_messages: bool = False, timeout: float = 0.0) -> dict | None:
        self.polls += 1
        if self.polls == 1:
            await render_routes.repo.mark_success(self.job_id, output_path="/tmp/late.mp4")
        return None


@pytest.mark.asyncio
async def test_events_recover_final_state_without_publish(
    app_client: AsyncClient,
    render_job_factory: Callable[..., Any],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    job = render_job_factory(job_status="running", output_file_name="late.mp4", progress=0.4)
    await render_routes.repo.save(job)
    pubsub = SilentPubSub(job.id)

    class _Redis:
        def pubsub(self) -> SilentPubSub:
            return pubsub

    monkeypatch.setattr(render_progress, "get_redis", lambda: _Redis())

    response = await app_client.get(f"/api/v1/render/{job.id}/events")

    assert response.status_code == 200
    assert response.text.count("data: ") == 1
    assert '"type":"complete"' in response.text
    assert pubsub.polls == 1
    assert pubsub.closed


@pytest.mark.asyncio
async def test_list_project_renders(app_client: AsyncClient, enqueued_jobs: list[str]) -> None:
    project_id = await _project_with_lyrics(app_client)
    for _ in range(2):
        await app_client.post("/api/v1/render", json={"project_id": project_id})

    response = await app_client.get("/api/v1/render", params={"project_id": project_id})

    assert response.status_code == 200
    assert {job["job_id"] for job in response.json()["jobs"]} == set(enqueued_jobs)
    assert len((await app_client.get("/api/v1/render", params={"project_id": project_id, "limit": 1})).json()["jobs"]) == 1
    assert (await app_client.get("/api/v1/render", params={"project_id": "nope"})).status_code == 404
