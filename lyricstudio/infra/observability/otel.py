"""结构化日志与链路追踪初始化。"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from lyricstudio.infra.config.settings import get_settings

SERVICE_NAME = "lyric-studio"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

_logging_configured = False
_tracer_provider: TracerProvider | None = None


def configure_tracing(service_name: str = SERVICE_NAME) -> TracerProvider | None:
    """按配置启用 OTLP 导出；未开启时保持 OpenTelemetry 默认的空实现。"""

    global _tracer_provider
    settings = get_settings()
    if not settings.tracing_enabled:
        return None
    if _tracer_provider is not None:
        return _tracer_provider

    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name, "deployment.environment": settings.environment})
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_endpoint, insecure=True)))
    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    structlog.get_logger(__name__).info("tracing_configured", endpoint=settings.otel_endpoint)
    return provider


def _add_service(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _rotating(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def configure_logging(log_dir: Path | str | None = None, *, force: bool = False) -> None:
    """配置 structlog。

    控制台在 TTY 下彩色输出，否则输出 JSON；``app.log`` 记录 ``log_level`` 及以上，
    ``error.log`` 只记录 WARNING 及以上。API 与 Worker 导入时都会调用，重复调用直接返回。
    """
    global _logging_configured
    if _logging_configured and not force:
        return

    settings = get_settings()
    log_path = Path(log_dir or settings.log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    is_tty = sys.stdout.isatty()
    console_renderer: Any = (
        structlog.dev.ConsoleRenderer(colors=True)
        if is_tty
        else structlog.processors.JSONRenderer(ensure_ascii=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            _add_service,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
        return structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer]
        )

    json_formatter = _formatter(structlog.processors.JSONRenderer(ensure_ascii=False))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(_formatter(console_renderer))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.addHandler(_rotating(log_path / "app.log", level, json_formatter))
    root_logger.addHandler(_rotating(log_path / "error.log", logging.WARNING, json_formatter))

    _logging_configured = True
    structlog.get_logger(__name__).info(
        "logging_configured",
        log_dir=str(log_path.absolute()),
        level=logging.getLevelName(level),
        console_mode="color" if is_tty else "json",
    )
