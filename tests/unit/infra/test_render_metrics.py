from __future__ import annotations

import pytest

from lyricstudio.infra.observability import render_metrics as metrics


class DummyGauge:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int, dict]] = []

    def set(self, value: int, attributes: dict | None = None) -> None:
        self.calls.append(("set", value, attributes or {}))


class DummyCounter:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    def add(self, value: int, attributes: dict | None = None) -> None:
        self.calls.append(("add", attributes or {}))


class DummyHistogram:
    def __init__(self) -> None:
        self.calls: list[tuple[float, dict]] = []

    def record(self, value: float, attributes: dict | None = None) -> None:
        self.calls.append((value, attributes or {}))


def test_render_metric_helpers(monkeypatch: pytest.MonkeyPatch) -> None:
    inflight = DummyGauge()
    jobs = DummyCounter()
    failures = DummyCounter()
    duration = DummyHistogram()

    monkeypatch.setattr(metrics, "render_inflight_gauge", inflight)
    monkeypatch.setattr(metrics, "render_jobs_total", jobs)
    monkeypatch.setattr(metrics, "render_failures_total", failures)
    monkeypatch.setattr(metrics, "render_duration_histogram", duration)

    metrics.set_render_inflight(2)
    metrics.observe_render_success("job-1", duration_ms=1234.5, total_frames=300)
    metrics.add_render_failure("job-2", reason="RuntimeError")

    assert inflight.calls == [("set", 2, {})]
    assert jobs.calls == [("add", {"job_id": "job-1"})]
    assert duration.calls == [(1234.5, {"job_id": "job-1", "total_frames": 300})]
    assert failures.calls == [("add", {"job_id": "job-2", "reason": "RuntimeError"})]
