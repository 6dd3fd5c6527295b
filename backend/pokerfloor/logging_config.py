"""Structured logging for the tournament engine (structlog).

개발 환경은 컬러 콘솔, 운영 환경은 JSON 한 줄 로그.

Every engine call runs inside ``tournament_context`` so log lines emitted
by the seating, ledger and clock modules carry the tournament id and the
action being applied without passing them around.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from pokerfloor import __version__

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("redis", "asyncio")


def add_engine_version(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("engine_version", __version__)
    return event_dict


def _shared_processors(use_json: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if use_json:
        processors += [add_engine_version, structlog.processors.format_exc_info]
    else:
        processors.append(structlog.dev.set_exc_info)
    return processors


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    app_env: str = "development",
) -> None:
    """Route structlog through the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_logs: Force JSON output outside production
        app_env: ``production`` always logs JSON
    """
    use_json = json_logs or app_env == "production"
    shared = _shared_processors(use_json)
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_from_settings(settings: Optional[Any] = None) -> None:
    """Configure logging from ``Settings`` (cached settings by default)."""
    if settings is None:
        from pokerfloor.config import get_settings

        settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        app_env=settings.app_env,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Usage: ``logger = get_logger(__name__)``"""
    return structlog.get_logger(name)


@contextmanager
def tournament_context(tournament_id: str, **extra: Any) -> Iterator[None]:
    """Bind tournament fields to every log call inside the block.

    Usage:
        with tournament_context("t-1", action="eliminate_player"):
            logger.info("player_eliminated", entry_id="e-7")
    """
    with structlog.contextvars.bound_contextvars(tournament_id=tournament_id, **extra):
        yield
