from __future__ import annotations

from pathlib import Path

from lyricstudio.subtitle.generator import (
    SubtitleStyle,
    format_ass_timestamp,
    format_srt_timestamp,
    generate_ass,
    generate_srt,
    render_ass,
    render_srt,
)
from lyricstudio.timeline.models import RenderCue


CUES = [RenderCue("第一句", 0, 149), RenderCue("第二句", 150, 300)]


def test_timestamp_formats() -> None:
    assert format_srt_timestamp(1500) == "00:00:01,500"
    assert format_srt_timestamp(3_723_004) == "01:02:03,004"
    assert format_srt_timestamp(-20) == "00:00:00,000"
    assert format_ass_timestamp(1500) == "0:00:01.50"
    assert format_ass_timestamp(3_723_004) == "1:02:03.00"


def test_render_srt_uses_frame_windows() -> None:
    content = render_srt(CUES)

    assert content.splitlines()[:3] == ["1", "00:00:00,000 --> 00:00:05,000", "第一句"]
    assert "00:00:05,000 --> 00:00:10,033" in content


def test_render_ass_applies_style_and_clamps_fade() -> None:
    style = SubtitleStyle(font_name="Noto Sans CJK SC", font_size=60, fade_ms=400)
    content = render_ass([RenderCue("短", 0, 5), RenderCue("两行\n歌词", 30, 89)], style=style)

    assert "Style: Default,Noto Sans CJK SC,60," in content
    # 6 帧约 200ms，淡入淡出被压到 100ms
    assert "Default,,0,0,0,,{\\fad(100,100)}短" in content
    assert "{\\fad(400,400)}两行\\N歌词" in content


def test_render_ass_skips_fade_when_disabled() -> None:
    content = render_ass(CUES[:1], style=SubtitleStyle(fade_ms=0))

    assert content.rstrip().endswith("Default,,0,0,0,,第一句")


def test_style_from_settings() -> None:
    style = SubtitleStyle.from_settings()

    assert style.font_name == "Arial"
    assert style.font_size == 48


def test_generate_files(tmp_path: Path) -> None:
    srt = generate_srt(CUES, tmp_path / "out" / "lyrics.srt")
    ass = generate_ass(CUES, tmp_path / "out" / "lyrics.ass", resolution=(720, 1280), title="Song")

    assert srt.read_text(encoding="utf-8").startswith("1\n")
    ass_text = ass.read_text(encoding="utf-8")
    assert "PlayResX: 720" in ass_text
    assert "Title: Song" in ass_text
    assert "Dialogue: 0,0:00:00.00,0:00:05.00,Default,,0,0,0,,{\\fad(150,150)}第一句" in ass_text
