"""Structured logging configuration using structlog.

Development runs get colored console output, production runs get JSON lines.
Library modules only call ``get_logger(__name__)``; entrypoints (CLI, API
lifespan) call ``configure_logging`` once.
"""

import logging
import sys
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from rental_tax_ledger.config import Settings, get_settings

# Loggers that are chatty below WARNING (httpx logs every request at INFO)
QUIET_LOGGERS = ("httpcore", "httpx", "uvicorn.access", "asyncio")


def _add_log_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["level"] = "WARNING" if method_name == "warn" else method_name.upper()
    return event_dict


def app_context_processor(settings: Settings) -> Processor:
    """Stamp every JSON event with the app name and environment."""
    app_name = settings.app_name
    environment = settings.environment.value

    def _add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app", app_name)
        event_dict.setdefault("environment", environment)
        return event_dict

    return _add_app_context


def build_processors(settings: Settings) -> list[Processor]:
    """Processor chain for the configured output format; the renderer comes last."""
    processors: list[Processor] = [structlog.contextvars.merge_contextvars]
    if settings.log_format == "json":
        processors += [_add_log_level, app_context_processor(settings)]
    else:
        processors.append(structlog.stdlib.add_log_level)
    processors += [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.log_format == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    return processors


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger from settings.

    Log output goes to stderr so CLI output on stdout stays clean.
    """
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.value)

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    if settings.log_file:
        _add_file_handler(settings.log_file, level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def _add_file_handler(log_file: Path, level: int) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logging.getLogger().addHandler(handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Example:
        logger = get_logger(__name__)
        logger.info("invoice_matched", invoice_id=inv.id, transaction_id=txn.id)
    """
    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind log context for the duration of a ``with`` block.

    Example:
        with LogContext(batch_size=len(rows)):
            logger.info("import_started")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.kwargs)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.kwargs)
