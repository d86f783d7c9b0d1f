"""Structured logging for DnD Forge.

Modules log through structlog with keyword context. A pipeline run is wrapped
in :func:`run_context`, which tags every entry with a run id, and each stage in
:func:`log_stage`, which records its duration or failure::

    2026-10-19T09:12:44Z [debug] Stage finished  mode=generate run_id=3f2a9c01d4be stage=fabricate duration_ms=812

Example:
    >>> configure_logging(get_settings())
    >>> logger = get_logger(__name__)
    >>> logger.info("Blueprint drafted", name="Ash Wyrmling", cr=2)
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from structlog.types import Processor

from dnd_forge.core.config import Settings, get_settings
from dnd_forge.core.exceptions import CancellationError


if TYPE_CHECKING:
    from structlog.types import EventDict, WrappedLogger


_SECRET_MARKERS = ("api_key", "authorization", "secret")
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "asyncio")
_STDLIB_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# =============================================================================
# Processors
# =============================================================================


def add_app_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Tag entries with the application name unless a caller set one."""
    event_dict.setdefault("app", "dnd_forge")
    return event_dict


def redact_secrets(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Mask values logged under credential-like keys.

    Args:
        logger: The wrapped logger instance.
        method_name: Name of the logging method called.
        event_dict: The event dictionary to modify.

    Returns:
        The event dictionary with ``*_api_key``, ``authorization`` and
        ``*secret*`` values replaced by ``"***"``.
    """
    for key in event_dict:
        if any(marker in key.lower() for marker in _SECRET_MARKERS):
            event_dict[key] = "***"
    return event_dict


# =============================================================================
# Setup
# =============================================================================


def configure_logging(settings: Settings | None = None, *, log_file: str | None = None) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        settings: Source of ``log_level``, ``log_json`` and ``debug``; defaults
            to the application settings. ``debug`` forces DEBUG.
        log_file: Optional file that also receives standard library records.
    """
    settings = settings or get_settings()
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        redact_secrets,
    ]
    if settings.log_json:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(format=_STDLIB_FORMAT, level=level, handlers=handlers, force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger, typically with ``__name__``."""
    return structlog.get_logger(name)


# =============================================================================
# Run Context
# =============================================================================


@contextmanager
def run_context(mode: str, **values: Any) -> Iterator[str]:
    """Tag every log entry inside the block with a fresh run id.

    Args:
        mode: ``generate`` or ``adjust``.
        **values: Extra context, such as the target actor id.

    Yields:
        The run id.
    """
    run_id = uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(run_id=run_id, mode=mode, **values):
        yield run_id


@contextmanager
def log_stage(logger: Any, stage: str) -> Iterator[None]:
    """Log the duration of a pipeline stage, or how it ended early.

    Cancellation is logged at info level, failures at warning level; both are
    re-raised.
    """
    started = time.perf_counter()

    def elapsed() -> int:
        return round((time.perf_counter() - started) * 1000)

    try:
        yield
    except CancellationError:
        logger.info("Stage cancelled", stage=stage, duration_ms=elapsed())
        raise
    except Exception as exc:
        logger.warning("Stage failed", stage=stage, error=type(exc).__name__, duration_ms=elapsed())
        raise
    logger.debug("Stage finished", stage=stage, duration_ms=elapsed())


__all__ = [
    "add_app_context",
    "redact_secrets",
    "configure_logging",
    "get_logger",
    "run_context",
    "log_stage",
]
