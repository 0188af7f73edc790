from __future__ import annotations

from typing import Any, Iterable

import pytest

from lyricstudio.client.api import ApiClientError
from lyricstudio.studio.session import LyricStudio
from lyricstudio.timeline.models import LyricLine


class FakeClient:
    def __init__(self, *, remote: list[LyricLine] | None = None, fail_save: bool = False) -> None:
        self.remote = remote
        self.fail_save = fail_save
        self.saved: list[tuple[str, list[LyricLine]]] = []

    async def get_project(self, project_id: str) -> dict[str, Any]:
        if project_id == "missing":
            raise ApiClientError(404, "项目不存在")
        return {"id": project_id, "audio_id": "audio-1"}

    async def get_audio_meta(self, audio_id: str, project_id: str | None = None) -> dict[str, Any]:
        return {"id": audio_id, "tags": {"title": "Song", "artist": "Singer", "duration": 20.0}}

    async def get_lyrics(self, project_id: str) -> list[LyricLine] | None:
        return self.remote

    async def save_lyrics(self, project_id: str, lines: Iterable[LyricLine], *, text: str | None = None) -> dict:
        if self.fail_save:
            raise ApiClientError(500, "db down")
        self.saved.append((project_id, list(lines)))
        return {"id": "doc"}


@pytest.fixture
async def studio() -> LyricStudio:
    session = LyricStudio(FakeClient(), autosave_interval_s=60)
    yield session
    await session.stop_autosave()


async def test_open_project_loads_remote_lyrics_and_metadata() -> None:
    client = FakeClient(remote=[LyricLine(1, "a", 1.0)])
    session = LyricStudio(client, autosave_interval_s=60)

    assert await session.open_project("p1") is True

    assert session.audio_id == "audio-1"
    assert session.lrc_metadata.title == "Song"
    assert session.store.lines == (LyricLine(1, "a", 1.0),)
    assert session.autosave is not None and session.autosave.running

    await session.close_project()
    assert session.autosave is None


async def test_open_missing_project_notifies(studio: LyricStudio) -> None:
    assert await studio.open_project("missing") is False
    assert studio.notifier.last is not None
    assert studio.notifier.last.title == "Failed to load project"


async def test_add_line_uses_player_position(studio: LyricStudio) -> None:
    studio.player.seek(12.0)

    line = studio.add_line()
    studio.update_line(line.id, text="hello")
    studio.player.seek(13.5)
    studio.set_current_time_as_timestamp(line.id)

    assert studio.store.lines == (LyricLine(1, "hello", 13.5),)


async def test_skip_moves_playhead_within_track(studio: LyricStudio) -> None:
    studio.player.on_loaded_metadata(15.0)
    studio.import_lrc("[00:01.00]first\n[00:12.00]second")

    assert studio.skip() == 1
    assert studio.skip() == 2
    assert studio.player.position == 15.0
    assert studio.skip(-30.0) is None
    assert studio.player.position == 0.0
    assert studio.toggle_play() is False


async def test_import_and_export_lrc(studio: LyricStudio) -> None:
    assert studio.import_lrc("no timestamps here") is False
    assert studio.notifier.last.title == "Invalid LRC file"  # type: ignore[union-attr]

    assert studio.import_lrc("[00:01.00]first\n[00:02.00]second") is True
    exported = studio.export_lrc()
    assert exported is not None
    filename, content = exported

    assert filename == "lyrics.lrc"
    assert content.endswith("[00:01.00]first\n[00:02.00]second\n")

    studio.audio_metadata = {"tags": {"title": "Song", "artist": "Singer"}}
    assert studio.export_lrc()[0] == "Song - Singer.lrc"  # type: ignore[index]


@pytest.mark.parametrize("lrc", ["[00:00.00]a\n[00:00.00]b", "[00:01.00]\n[00:02.00]   "])
async def test_export_lrc_requires_timed_lyrics(studio: LyricStudio, lrc: str) -> None:
    assert studio.export_lrc() is None

    studio.import_lrc(lrc)

    assert studio.export_lrc() is None
    assert studio.notifier.last is not None
    assert studio.notifier.last.level == "warning"
    assert studio.notifier.last.title == "Nothing to export"


async def test_import_pasted_external_lyrics(studio: LyricStudio) -> None:
    assert studio.import_pasted_lyrics() is False
    assert studio.notifier.last.level == "warning"  # type: ignore[union-attr]

    studio.set_external_lyrics("Hello\n\nWorld\n")
    assert studio.import_pasted_lyrics() is True
    assert [line.text for line in studio.store] == ["Hello", "World"]


async def test_save_lyrics_guards(studio: LyricStudio) -> None:
    assert await studio.save_lyrics() is False
    assert studio.notifier.last.title == "No Project Selected"  # type: ignore[union-attr]

    studio.project_id = "p1"
    assert await studio.save_lyrics() is False
    assert studio.notifier.last.title == "No Lyrics to Save"  # type: ignore[union-attr]

    studio.add_line()
    assert await studio.save_lyrics() is True
    assert studio.notifier.last.title == "Lyrics saved"  # type: ignore[union-attr]


async def test_save_failure_is_reported() -> None:
    session = LyricStudio(FakeClient(fail_save=True), autosave_interval_s=60)
    session.project_id = "p1"
    session.add_line()

    assert await session.save_lyrics() is False
    assert session.notifier.last.title == "Failed to save lyrics"  # type: ignore[union-attr]
    # 自动保存失败只写日志
    session.update_line(1, text="x")
    before = len(session.notifier.items)
    assert await session.auto_save() is False
    assert len(session.notifier.items) == before


async def test_auto_save_sends_only_valid_lines() -> None:
    client = FakeClient()
    session = LyricStudio(client, autosave_interval_s=60)
    session.project_id = "p1"
    session.import_lrc("[00:01.00]sung\n[00:02.00]")
    session.store.add_line()

    assert await session.auto_save() is True
    assert client.saved == [("p1", [LyricLine(1, "sung", 1.0)])]


async def test_render_input_uses_audio_duration(studio: LyricStudio) -> None:
    studio.audio_metadata = {"tags": {"title": "Song", "duration": 20.0}}
    studio.import_lrc("[00:00.00]a\n[00:05.00]b")

    render_input = studio.render_input()

    assert render_input.title == "Song"
    assert render_input.total_frames == 630
    assert [cue.start_frame for cue in render_input.cues] == [0, 150]
