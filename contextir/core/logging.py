"""Logging for context assembly, correlated by query and source.

Every record emitted while a query is assembled carries that query's id,
and records emitted while one source is normalized also carry its source
id.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

PACKAGE_LOGGER = "contextir"


@dataclass(frozen=True, slots=True)
class CorrelationContext:
    query_id: str | None = None
    source_id: str | None = None


_CORRELATION: contextvars.ContextVar[CorrelationContext] = contextvars.ContextVar(
    "contextir_correlation",
    default=CorrelationContext(),
)


def get_correlation_context() -> CorrelationContext:
    return _CORRELATION.get()


class CorrelationFilter(logging.Filter):
    """Copy the active query and source ids onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _CORRELATION.get()
        record.query_id = context.query_id
        record.source_id = context.source_id
        return True


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object | None] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "query_id": getattr(record, "query_id", None),
            "source_id": getattr(record, "source_id", None),
        }
        if record.exc_info is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def setup_logging(level: int | str = logging.INFO, json_output: bool = False) -> None:
    """Send ``contextir`` records to stderr, leaving stdout to CLI output.

    Calling it again replaces the handler. Records do not propagate to the
    root logger, so a host application's handlers see nothing twice.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    handler = logging.StreamHandler(stream=sys.stderr)
    if json_output:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s query_id=%(query_id)s "
                "source_id=%(source_id)s %(message)s"
            )
        )
    handler.addFilter(CorrelationFilter())
    logger.addHandler(handler)
    logger.propagate = False


@contextmanager
def correlation_scope(
    *,
    query_id: str | None = None,
    source_id: str | None = None,
) -> Iterator[None]:
    """Set correlation ids for the enclosed block.

    Ids left as ``None`` are inherited from the enclosing scope, so a
    per-source scope inside a query scope keeps the query id.
    """
    current = _CORRELATION.get()
    token = _CORRELATION.set(
        CorrelationContext(
            query_id=current.query_id if query_id is None else query_id,
            source_id=current.source_id if source_id is None else source_id,
        )
    )
    try:
        yield
    finally:
        _CORRELATION.reset(token)


__all__ = [
    "PACKAGE_LOGGER",
    "CorrelationContext",
    "CorrelationFilter",
    "correlation_scope",
    "get_correlation_context",
    "setup_logging",
]
