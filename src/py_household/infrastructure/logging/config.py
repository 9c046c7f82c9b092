from __future__ import annotations

import logging
import logging.handlers
import sys
from typing import IO, Any

import structlog

from py_household.infrastructure.config.settings import BaseAppSettings, get_settings

__all__ = ["configure_logging", "get_logger", "bind_operation", "clear_operation"]

SERVICE_NAME = "py_household"


def _resolve_level(level_name: str) -> int:
    """Return a stdlib level for ``level_name``; unknown names fall back to INFO."""
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


def _add_service(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _build_handler(settings: BaseAppSettings, stream: IO[str] | None) -> logging.Handler:
    if settings.json_logs and settings.log_file:
        if settings.log_rotation == "size":
            return logging.handlers.RotatingFileHandler(
                filename=settings.log_file,
                maxBytes=max(1024, settings.log_max_bytes),
                backupCount=max(1, settings.log_backup_count),
                encoding="utf-8",
            )
        return logging.handlers.TimedRotatingFileHandler(
            filename=settings.log_file,
            when=settings.log_rotate_when,
            interval=1,
            backupCount=max(1, settings.log_backup_count),
            utc=settings.log_rotate_utc,
            encoding="utf-8",
        )
    return logging.StreamHandler(stream or sys.stdout)


def configure_logging(stream: IO[str] | None = None) -> None:
    """Initialize structlog on top of stdlib logging.

    - A single handler: stdout (or ``stream``), or a rotating file in JSON mode when LOG_FILE is set
    - JSON renderer when JSON_LOGS is true, console renderer otherwise
    - Records from stdlib loggers (SQLAlchemy, UoW) go through the same formatter
    - ``force=True`` so repeated calls (tests, CLI re-entry) do not stack handlers

    stream: optional text stream for the console handler (defaults to sys.stdout).
    """
    settings = get_settings()
    if not settings.logging_enabled:
        logging.basicConfig(handlers=[logging.NullHandler()], level=logging.CRITICAL, force=True)
        # Replace any earlier stdlib pipeline; its processors expect a stdlib logger.
        structlog.reset_defaults()
        structlog.configure(
            processors=[],
            wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL),
            logger_factory=structlog.ReturnLoggerFactory(),
            cache_logger_on_first_use=False,
        )
        return

    timestamper = structlog.processors.TimeStamper(fmt="iso")
    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_service,
        timestamper,
    ]
    renderer: structlog.types.Processor
    if settings.json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    handler = _build_handler(settings, stream)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain))
    logging.basicConfig(handlers=[handler], level=_resolve_level(settings.log_level), force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _add_service,
            timestamper,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,  # type: ignore[arg-type]
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "py_household") -> structlog.stdlib.BoundLogger:
    """Return a structured logger; configure logging on first use if needed."""
    if not logging.getLogger().handlers:
        configure_logging()
    return structlog.get_logger(name)


def bind_operation(operation: str, **context: Any) -> None:
    """Bind operation name and identifiers (tenant, transaction...) to the current context."""
    structlog.contextvars.bind_contextvars(operation=operation, **context)


def clear_operation() -> None:
    structlog.contextvars.clear_contextvars()
