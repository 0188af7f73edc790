from __future__ import annotations

from lyricstudio.timeline.cues import (
    CompositionSize,
    RenderInput,
    build_render_cues,
    total_render_frames,
)
from lyricstudio.timeline.models import LyricLine, RenderCue


def test_cues_end_one_frame_before_next_line() -> None:
    cues = build_render_cues([LyricLine(1, "a", 0.0), LyricLine(2, "b", 5.0)])

    assert cues == [RenderCue("a", 0, 149), RenderCue("b", 150, 300)]


def test_cues_skip_invalid_lines_and_sort() -> None:
    lines = [
        LyricLine(1, "late", 2.0),
        LyricLine(2, "", 1.0),
        LyricLine(3, "untimed", None),
        LyricLine(4, "early", 1.0),
    ]

    cues = build_render_cues(lines)

    assert [cue.text for cue in cues] == ["early", "late"]
    assert cues[0] == RenderCue("early", 30, 59)


def test_cues_with_same_start_frame_never_end_before_start() -> None:
    cues = build_render_cues([LyricLine(1, "a", 1.0), LyricLine(2, "b", 1.01)])

    assert cues[0].start_frame == 30
    assert cues[0].end_frame == 30


def test_total_frames() -> None:
    cues = build_render_cues([LyricLine(1, "a", 0.0), LyricLine(2, "b", 5.0)])

    assert total_render_frames([]) == 0
    assert total_render_frames(cues) == 300
    # 音频更长：覆盖整首歌并额外留 1 秒
    assert total_render_frames(cues, audio_duration=60.0) == 1800 + 30
    assert total_render_frames(cues, audio_duration=2.0) == 300 + 30


def test_render_input_from_lines() -> None:
    render_input = RenderInput.from_lines(
        [LyricLine(1, "a", 0.0), LyricLine(2, "b", 5.0)],
        audio_duration=10.0,
        size=CompositionSize.PORTRAIT,
        title="Song",
        audio_id="audio-1",
    )

    assert (render_input.width, render_input.height) == (720, 1280)
    assert render_input.total_frames == 330
    assert render_input.render_cues() == [RenderCue("a", 0, 149), RenderCue("b", 150, 300)]

    restored = RenderInput.model_validate(render_input.model_dump(mode="json"))
    assert restored == render_input
