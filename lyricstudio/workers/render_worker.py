"""渲染 Worker：把歌词提示渲染成 MP4，并通过 Redis 推送进度。"""

from __future__ import annotations

import asyncio
import shutil
import tempfile
import time
from pathlib import Path
from typing import Awaitable, Callable

import structlog
from opentelemetry import trace

from lyricstudio.domain.models.project import is_virtual_audio_id
from lyricstudio.infra.config.settings import get_settings
from lyricstudio.infra.messaging.render_progress import RenderProgressEvent, publish_progress
from lyricstudio.infra.observability.render_metrics import (
    add_render_failure,
    observe_render_success,
    set_render_inflight,
)
from lyricstudio.infra.persistence.repositories.render_job_repository import RenderJobRepository
from lyricstudio.infra.storage.minio_client import media_client
from lyricstudio.subtitle.generator import SubtitleStyle, generate_ass, generate_srt
from lyricstudio.timeline.cues import RenderInput
from lyricstudio.workers import BaseWorkerSettings

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)
repo = RenderJobRepository()
settings = get_settings()
render_semaphore = asyncio.Semaphore(max(1, settings.render_concurrency_limit))
_inflight = 0

FrameCallback = Callable[[int], Awaitable[None]]


async def render_lyric_video(ctx: dict | None, job_id: str) -> None:
    async with render_semaphore:
        with tracer.start_as_current_span("render_lyric_video", attributes={"job_id": job_id}):
            await _render_impl(job_id)


async def _publish(job_id: str, stage: str, progress: float, **extra: object) -> None:
    await publish_progress(RenderProgressEvent(type=stage, job_id=job_id, progress=progress, **extra))  # type: ignore[arg-type]


def _track_inflight(delta: int) -> None:
    global _inflight
    _inflight = max(0, _inflight + delta)
    set_render_inflight(_inflight)


async def _render_impl(job_id: str) -> None:
    job = await repo.get(job_id)
    if job is None:
        logger.warning("render_worker.job_missing", job_id=job_id)
        return

    render_input = RenderInput.model_validate(job.input_props)
    cues = render_input.render_cues()
    if not cues or render_input.total_frames <= 0:
        logger.warning("render_worker.no_cues", job_id=job_id)
        await repo.mark_failure(job_id, error_log="no renderable lyric lines")
        await _publish(job_id, "error", 0.0, error="no renderable lyric lines")
        return

    await repo.mark_running(job_id)
    await _publish(job_id, "bundling", 0.0, total_frames=render_input.total_frames)
    logger.info("render_worker.started", job_id=job_id, cues=len(cues), total_frames=render_input.total_frames)

    started = time.perf_counter()
    _track_inflight(1)
    try:
        output_dir = Path(settings.render_output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        final_path = output_dir / job.output_file_name

        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp_path = Path(tmp_dir)
            ass_file = generate_ass(
                cues,
                tmp_path / f"{job_id}.ass",
                fps=render_input.fps,
                style=SubtitleStyle.from_settings(),
                resolution=(render_input.width, render_input.height),
                title=render_input.title or "Lyric Video",
            )
            generate_srt(cues, final_path.with_suffix(".srt"), fps=render_input.fps)
            audio_path = await _fetch_audio(render_input.audio_id, tmp_path)

            output_video = tmp_path / f"{job_id}.mp4"
            cmd = build_ffmpeg_command(
                render_input,
                subtitle_file=ass_file,
                output_path=output_video,
                audio_path=audio_path,
            )

            last_reported = -1

            async def _on_frame(frame: int) -> None:
                nonlocal last_reported
                progress = min(1.0, frame / render_input.total_frames)
                percent = int(progress * 100)
                if percent == last_reported:
                    return
                last_reported = percent
                await repo.update_progress(job_id, progress)
                await _publish(
                    job_id,
                    "rendering",
                    progress,
                    rendered_frames=frame,
                    total_frames=render_input.total_frames,
                )

            await _run_ffmpeg(cmd, on_frame=_on_frame)
            shutil.move(output_video.as_posix(), final_path.as_posix())

        duration_ms = (time.perf_counter() - started) * 1000
        await repo.mark_success(
            job_id,
            output_path=final_path.as_posix(),
            metrics={"duration_ms": round(duration_ms), "total_frames": render_input.total_frames},
        )
        observe_render_success(job_id, duration_ms=duration_ms, total_frames=render_input.total_frames)
        await _publish(
            job_id,
            "complete",
            1.0,
            download_url=f"/api/v1/renders/{job.output_file_name}",
            total_frames=render_input.total_frames,
        )
        logger.info("render_worker.completed", job_id=job_id, output=final_path.as_posix(), duration_ms=round(duration_ms))
    except Exception as exc:
        logger.error("render_worker.failed", job_id=job_id, error=str(exc), exc_info=True)
        await repo.mark_failure(job_id, error_log=str(exc))
        add_render_failure(job_id, reason=type(exc).__name__)
        await _publish(job_id, "error", 0.0, error=str(exc))
        raise
    finally:
        _track_inflight(-1)


async def _fetch_audio(audio_id: str | None, tmp_path: Path) -> Path | None:
    """从对象存储下载音频；YouTube 虚拟音频或下载失败时渲染无声视频。"""

    if not audio_id or is_virtual_audio_id(audio_id):
        return None
    target = tmp_path / f"{audio_id}.mp3"
    try:
        await asyncio.to_thread(media_client.download, media_client.audio_bucket, f"{audio_id}.mp3", target)
    except Exception as exc:  # noqa: BLE001
        logger.warning("render_worker.audio_unavailable", audio_id=audio_id, error=str(exc))
        return None
    return target


def build_ffmpeg_command(
    render_input: RenderInput,
    *,
    subtitle_file: Path,
    output_path: Path,
    audio_path: Path | None = None,
) -> list[str]:
    duration_s = render_input.total_frames / render_input.fps
    # ass 滤镜路径中的冒号和反斜杠需要转义
    subtitle_arg = subtitle_file.as_posix().replace("\\", "\\\\").replace(":", "\\:")
    cmd = [
        settings.ffmpeg_binary,
        "-y",
        "-loglevel",
        "error",
        "-f",
        "lavfi",
        "-i",
        f"color=c={settings.render_background_color}:s={render_input.width}x{render_input.height}:r={render_input.fps}",
    ]
    if audio_path is not None:
        cmd += ["-i", audio_path.as_posix()]
    cmd += ["-vf", f"ass={subtitle_arg}", "-map", "0:v"]
    if audio_path is not None:
        cmd += ["-map", "1:a", "-c:a", "aac", "-b:a", "192k"]
    cmd += [
        "-c:v",
        "libx264",
        "-pix_fmt",
        "yuv420p",
        "-frames:v",
        str(render_input.total_frames),
        "-t",
        f"{duration_s:.3f}",
        "-progress",
        "pipe:1",
        "-nostats",
        output_path.as_posix(),
    ]
    return cmd


def parse_progress_frame(line: str) -> int | None:
    """解析 ``-progress`` 输出中的 ``frame=123`` 行。"""

    key, _, value = line.strip().partition("=")
    if key != "frame":
        return None
    try:
        return int(value)
    except ValueError:
        return None


async def _run_ffmpeg(cmd: list[str], *, on_frame: FrameCallback | None = None) -> None:
    logger.info("render_worker.ffmpeg", cmd=" ".join(cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        logger.error("ffmpeg.not_found", cmd=cmd, error=str(exc))
        raise RuntimeError(f"FFmpeg not found. Please install ffmpeg: {exc}") from exc

    assert proc.stdout is not None and proc.stderr is not None
    stderr_task = asyncio.create_task(proc.stderr.read())
    async for raw in proc.stdout:
        frame = parse_progress_frame(raw.decode(errors="ignore"))
        if frame is not None and on_frame is not None:
            await on_frame(frame)

    returncode = await proc.wait()
    stderr_output = (await stderr_task).decode(errors="ignore") or "No error output"
    if returncode != 0:
        logger.error("ffmpeg.failed", returncode=returncode, cmd=cmd, stderr=stderr_output[:500])
        raise RuntimeError(
            f"FFmpeg command failed with return code {returncode}.\n"
            f"Command: {' '.join(cmd)}\n"
            f"Error: {stderr_output}"
        )


class WorkerSettings(BaseWorkerSettings):
    functions = ["lyricstudio.workers.render_worker.render_lyric_video"]
