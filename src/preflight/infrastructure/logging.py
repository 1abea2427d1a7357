from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog
from structlog.typing import Processor

from preflight.config.settings import LOG_FORMAT_JSON, LoggingSettings

BoundLogger = structlog.stdlib.BoundLogger

_configured_settings: LoggingSettings | None = None


def _build_processors(json_logs: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def _configure_structlog(settings: LoggingSettings) -> None:
    json_logs = settings.format == LOG_FORMAT_JSON
    structlog.configure(
        processors=_build_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def _build_handler(level: int, handler: logging.Handler) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_logging(settings: LoggingSettings) -> None:
    global _configured_settings

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(settings.level)

    console_handler = _build_handler(settings.level, logging.StreamHandler(sys.stderr))
    root_logger.addHandler(console_handler)

    if settings.file_path:
        file_handler = _build_handler(
            settings.level,
            RotatingFileHandler(
                settings.file_path,
                maxBytes=settings.max_bytes,
                backupCount=settings.backup_count,
            ),
        )
        root_logger.addHandler(file_handler)

    _configure_structlog(settings)
    _configured_settings = settings


def configured_settings() -> LoggingSettings | None:
    return _configured_settings


def get_logger(name: str) -> BoundLogger:
    return structlog.get_logger(name)


def log_event(
    logger: BoundLogger,
    event: str,
    *,
    level: int = logging.INFO,
    message: str | None = None,
    **fields: Any,
) -> None:
    event_fields = {key: value for key, value in fields.items() if value is not None}
    event_logger = logger.bind(event_name=event)
    if event_fields:
        event_logger = event_logger.bind(**event_fields)
    event_logger.log(level, message or event)


def log_span_event(
    logger: BoundLogger,
    action: str,
    *,
    span: str,
    path: str | None = None,
    **fields: Any,
) -> None:
    log_event(
        logger,
        f"diagnose.span.{action}",
        level=logging.DEBUG,
        span=span,
        path=path,
        **fields,
    )


__all__ = [
    "BoundLogger",
    "configure_logging",
    "configured_settings",
    "get_logger",
    "log_event",
    "log_span_event",
]
