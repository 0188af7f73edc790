from typing import Any
from urllib.parse import unquote

import pytest
from httpx import AsyncClient


@pytest.fixture
async def project_id(app_client: AsyncClient) -> str:
    response = await app_client.post("/api/v1/projects", json={"name": "歌词项目"})
    return response.json()["id"]


def _base(project_id: str) -> str:
    return f"/api/v1/projects/{project_id}/lyrics"


@pytest.mark.asyncio
async def test_lyrics_missing_until_saved(app_client: AsyncClient, project_id: str) -> None:
    assert (await app_client.get(_base(project_id))).status_code == 404
    assert (await app_client.get(_base("nope"))).status_code == 404


@pytest.mark.asyncio
async def test_save_and_fetch_lyrics(app_client: AsyncClient, project_id: str) -> None:
    payload: dict[str, Any] = {
        "text": "第一句\n第二句",
        "lines": [{"id": 1, "text": "第一句", "timestamp": 0.0}, {"id": 2, "text": "第二句", "timestamp": None}],
    }

    saved = await app_client.post(_base(project_id), json=payload)
    assert saved.status_code == 200

    fetched = await app_client.get(_base(project_id))
    assert fetched.json()["text"] == payload["text"]
    assert fetched.json()["lines"] == payload["lines"]


@pytest.mark.asyncio
async def test_save_rejects_empty_and_negative(app_client: AsyncClient, project_id: str) -> None:
    assert (await app_client.post(_base(project_id), json={"text": "", "lines": []})).status_code == 400

    negative = {"lines": [{"id": 1, "text": "x", "timestamp": -1}]}
    assert (await app_client.post(_base(project_id), json=negative)).status_code == 422


@pytest.mark.asyncio
async def test_line_editing(app_client: AsyncClient, project_id: str) -> None:
    first = await app_client.post(f"{_base(project_id)}/lines", json={"position": 10.0, "text": "a"})
    assert first.status_code == 201
    assert first.json() == {"id": 1, "text": "a", "timestamp": 10.0}

    second = await app_client.post(f"{_base(project_id)}/lines", json={"position": 4.0})
    assert second.json()["timestamp"] == 10.5

    patched = await app_client.patch(f"{_base(project_id)}/lines/2", json={"text": "b", "timestamp": 12})
    assert patched.json() == {"id": 2, "text": "b", "timestamp": 12.0}

    cleared = await app_client.patch(f"{_base(project_id)}/lines/2", json={"timestamp": None})
    assert cleared.json()["timestamp"] is None

    assert (await app_client.patch(f"{_base(project_id)}/lines/9", json={"text": "x"})).status_code == 404
    assert (await app_client.delete(f"{_base(project_id)}/lines/9")).status_code == 404
    assert (await app_client.delete(f"{_base(project_id)}/lines/1")).status_code == 200

    lyrics = await app_client.get(_base(project_id))
    assert lyrics.json()["lines"] == [{"id": 2, "text": "b", "timestamp": None}]


@pytest.mark.asyncio
async def test_lrc_import_and_export(app_client: AsyncClient, project_id: str) -> None:
    bad = await app_client.post(f"{_base(project_id)}/lrc", json={"content": "[ti:Song]\nplain text"})
    assert bad.status_code == 400

    imported = await app_client.post(
        f"{_base(project_id)}/lrc", json={"content": "[ti:Song]\n[00:02.00]second\n[00:01.00]first\n"}
    )
    assert imported.status_code == 200
    assert [line["text"] for line in imported.json()["lines"]] == ["second", "first"]

    exported = await app_client.get(f"{_base(project_id)}/lrc")
    assert exported.status_code == 200
    assert exported.text == (
        "[ti:Untitled Song]\n[ar:Unknown Artist]\n[al:Unknown Album]\n\n[00:01.00]first\n[00:02.00]second\n"
    )
    disposition = exported.headers["content-disposition"]
    assert unquote(disposition.split("''", 1)[1]) == "lyrics.lrc"


@pytest.mark.asyncio
async def test_paste_lyrics(app_client: AsyncClient, project_id: str) -> None:
    assert (await app_client.post(f"{_base(project_id)}/paste", json={"text": " \n\n"})).status_code == 400

    pasted = await app_client.post(f"{_base(project_id)}/paste", json={"text": "Hello\n\nWorld\n"})
    assert pasted.json()["lines"] == [
        {"id": 1, "text": "Hello", "timestamp": None},
        {"id": 2, "text": "World", "timestamp": None},
    ]


@pytest.mark.asyncio
async def test_cue_preview(app_client: AsyncClient, project_id: str) -> None:
    await app_client.post(
        f"{_base(project_id)}/lrc", json={"content": "[00:00.00]a\n[00:05.00]b\n"}
    )

    response = await app_client.get(f"{_base(project_id)}/cues", params={"size": "portrait"})

    data = response.json()
    assert (data["width"], data["height"], data["fps"]) == (720, 1280, 30)
    assert data["total_frames"] == 300
    assert [(cue["start_frame"], cue["end_frame"]) for cue in data["cues"]] == [(0, 149), (150, 300)]
