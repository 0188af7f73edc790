"""歌词时间线：存储、播放跟踪、LRC 编解码与渲染提示。"""

from lyricstudio.timeline.cues import (
    CompositionSize,
    RenderInput,
    build_render_cues,
    total_render_frames,
)
from lyricstudio.timeline.lrc import (
    LEGACY_LRC_FILENAME,
    LrcImportError,
    LrcMetadata,
    export_lrc,
    format_lrc_timestamp,
    import_lrc,
    import_pasted_lyrics,
    lrc_filename,
    parse_lrc,
    split_pasted_lyrics,
)
from lyricstudio.timeline.models import LyricLine, PlaybackState, RenderCue
from lyricstudio.timeline.store import LyricLineStore
from lyricstudio.timeline.tracker import (
    PlaybackError,
    PlaybackTracker,
    PlayerStore,
    find_active_line,
    frame_for_time,
)

__all__ = [
    "CompositionSize",
    "LEGACY_LRC_FILENAME",
    "LrcImportError",
    "LrcMetadata",
    "LyricLine",
    "LyricLineStore",
    "PlaybackError",
    "PlaybackState",
    "PlaybackTracker",
    "PlayerStore",
    "RenderCue",
    "RenderInput",
    "build_render_cues",
    "export_lrc",
    "find_active_line",
    "format_lrc_timestamp",
    "frame_for_time",
    "import_lrc",
    "import_pasted_lyrics",
    "lrc_filename",
    "parse_lrc",
    "split_pasted_lyrics",
    "total_render_frames",
]
