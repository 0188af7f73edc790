from __future__ import annotations

import hashlib

import pytest

from lyricstudio.services.audio.metadata import (
    AudioMetadataError,
    AudioTags,
    CoverArt,
    file_sha256,
    read_audio_tags,
)


def test_file_sha256_matches_hashlib() -> None:
    data = b"ID3 fake audio payload"
    assert file_sha256(data) == hashlib.sha256(data).hexdigest()


def test_unrecognised_bytes_raise() -> None:
    with pytest.raises(AudioMetadataError):
        read_audio_tags(b"definitely not an audio file")


def test_tags_to_dict_excludes_cover() -> None:
    tags = AudioTags(title="Song", artist="Artist", duration=12.5, cover=CoverArt(b"\xff", "image/png"))

    assert tags.to_dict() == {
        "title": "Song",
        "artist": "Artist",
        "album": None,
        "year": None,
        "genre": None,
        "duration": 12.5,
    }
    assert tags.cover is not None
    assert tags.cover.extension == "png"
    assert CoverArt(b"", "jpeg").extension == "jpg"
