"""Structured logging for sdkquery build tooling.

The parser and evaluator never log. Only the build-time layers do: the
expression validator reports each malformed expression (``invalid_expression``)
and a per-run summary (``expressions_validated``), and config loading warns
about suspicious settings. Output format follows the host build:

- JSON lines for CI (SDKQUERY_LOG_FORMAT=json)
- Pretty console output for local runs (default)

Loggers are structlog proxies, so modules can create them at import time and
still pick up whatever configure_logging() sets later.

Usage:
    from sdkquery.logging import configure_logging, validation_context

    configure_logging()
    with validation_context(source="ec2/waiters-2.json"):
        issues = validate_expressions(model)
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import Processor

__all__ = [
    "get_logger",
    "configure_logging",
    "bind_context",
    "clear_context",
    "validation_context",
]

LOG_FORMAT_ENV_VAR = "SDKQUERY_LOG_FORMAT"
LOG_LEVEL_ENV_VAR = "SDKQUERY_LOG_LEVEL"

DEFAULT_LOG_LEVEL = "INFO"


def _get_log_level() -> int:
    level_name = os.environ.get(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL).upper()
    return getattr(logging, level_name, logging.INFO)


def _is_json_output() -> bool:
    return os.environ.get(LOG_FORMAT_ENV_VAR, "").lower() == "json"


def _pre_chain() -> list[Processor]:
    """Processors applied to both structlog and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _renderer(use_json: bool) -> Processor:
    if use_json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(
    *,
    force_json: bool = False,
    level: int | None = None,
) -> None:
    """Route sdkquery's structured events through stdlib logging on stderr.

    The library never configures logging on import; build tools call this
    once at startup. Calling it again replaces the previous configuration.

    Args:
        force_json: Emit JSON lines regardless of SDKQUERY_LOG_FORMAT.
        level: Minimum level. If None, reads SDKQUERY_LOG_LEVEL.

    Example:
        # CI job: machine-readable validation report
        configure_logging(force_json=True, level=logging.WARNING)
    """
    use_json = force_json or _is_json_output()
    log_level = level if level is not None else _get_log_level()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_pre_chain(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                _renderer(use_json),
            ],
            foreign_pre_chain=_pre_chain(),
        )
    )

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger.

    Example:
        log = get_logger(__name__)
        log.warning("invalid_expression", location="waiters.Ready.acceptors[0]")
    """
    log: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return log


def bind_context(**context: Any) -> None:
    """Bind context included in every event until clear_context() is called."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def validation_context(**context: Any) -> Iterator[None]:
    """Bind context (e.g. ``source`` or ``service``) for one validation run.

    Keys whose value is None are not bound. Only the keys bound here are
    removed on exit; context bound by the caller beforehand survives.

    Example:
        with validation_context(source="s3/paginators-1.json"):
            validate_expressions(model)
    """
    bound = {key: value for key, value in context.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield
