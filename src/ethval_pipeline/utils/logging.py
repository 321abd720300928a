"""
utils/logging.py — structlog configuration for the collector.

Sets up structured logging with JSON or human-readable console output
controlled by settings.log_format. Call configure_logging() once at
process startup (done automatically by the CLI).

Run and metric context travel in structlog contextvars, so sources, the
resolver and the loader tag their lines without passing loggers around:

    configure_logging(settings)
    with run_context(dry_run=False):
        with metric_context("l2_tvl", table="historical_l2_tvl"):
            log = get_logger("ethval_pipeline.sources.defillama")
            log.info("rows_extracted", count=1234)
            # ... run_id=3f9c1a2b metric=l2_tvl table=historical_l2_tvl count=1234
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.contextvars import bound_contextvars

from ethval_shared.config import Settings

# httpx logs every request at INFO; the fetcher already logs what matters
_NOISY_LOGGERS = ("httpx", "httpcore", "hpack")


def configure_logging(
    settings: Settings,
    *,
    log_level: str | None = None,
    log_format: str | None = None,
) -> None:
    """
    Configure structlog for the collector process.

    Should be called once at startup. Idempotent.

    Args:
        settings:   Process settings (log_level / log_format defaults).
        log_level:  Override settings.log_level ("DEBUG", "INFO", …).
        log_format: Override settings.log_format ("json" | "console").
    """
    level = (log_level or settings.log_level).upper()
    fmt = log_format or settings.log_format
    numeric_level = getattr(logging, level, logging.INFO)

    # supabase / postgrest still log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_values: Any) -> structlog.BoundLogger:
    """Logger for module `name`, with initial_values bound to every line."""
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger  # type: ignore[return-value]


@contextmanager
def run_context(**extra: Any) -> Iterator[str]:
    """Bind a fresh run_id (plus extra) for the duration of one collector run."""
    run_id = uuid.uuid4().hex[:8]
    with bound_contextvars(run_id=run_id, **extra):
        yield run_id


@contextmanager
def metric_context(metric: str, **extra: Any) -> Iterator[None]:
    """Bind metric=<name> (plus extra) while that metric is being collected."""
    with bound_contextvars(metric=metric, **extra):
        yield
