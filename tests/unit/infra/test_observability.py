from __future__ import annotations

import pytest

from lyricstudio.infra.config.settings import AppSettings
from lyricstudio.infra.observability import otel


def test_tracing_disabled_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(otel, "get_settings", lambda: AppSettings(tracing_enabled=False))

    assert otel.configure_tracing() is None


def test_service_processor_keeps_explicit_value() -> None:
    assert otel._add_service(None, "info", {"event": "x"})["service"] == "lyric-studio"
    assert otel._add_service(None, "info", {"event": "x", "service": "worker"})["service"] == "worker"
