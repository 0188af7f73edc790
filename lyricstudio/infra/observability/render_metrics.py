"""渲染任务的 OpenTelemetry 指标封装。

Worker 通过这里的 helper 推送指标，测试中可以 monkeypatch 掉具体的 instrument。
"""

from __future__ import annotations

from opentelemetry import metrics
from opentelemetry.metrics import Meter

meter: Meter = metrics.get_meter("lyric_studio.render")

render_jobs_total = meter.create_counter(
    name="lyric_render_jobs_total",
    description="完成的歌词视频渲染任务数",
    unit="jobs",
)

render_failures_total = meter.create_counter(
    name="lyric_render_failures_total",
    description="失败的歌词视频渲染任务数",
    unit="jobs",
)

render_duration_histogram = meter.create_histogram(
    name="lyric_render_duration_ms",
    description="单个渲染任务从开始到完成的耗时",
    unit="ms",
)

render_inflight_gauge = meter.create_gauge(
    name="lyric_render_inflight",
    description="正在执行的渲染任务数",
    unit="jobs",
)


def set_render_inflight(count: int) -> None:
    render_inflight_gauge.set(count)


def observe_render_success(job_id: str, *, duration_ms: float, total_frames: int) -> None:
    attributes = {"job_id": job_id}
    render_jobs_total.add(1, attributes)
    render_duration_histogram.record(duration_ms, {**attributes, "total_frames": total_frames})


def add_render_failure(job_id: str, *, reason: str) -> None:
    render_failures_total.add(1, {"job_id": job_id, "reason": reason})
