# Structured logging with correlation IDs

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

import structlog

# One id per retrieval or ingestion run, carried on every log line
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)


@contextmanager
def correlation_scope(corr_id: Optional[str] = None, **fields: Any) -> Iterator[str]:
    """
    Run a block under one correlation ID.

    An ID already set by an outer scope is kept, so a CLI command and the
    retrieval it triggers log under the same ID. Extra fields (tenant_id,
    document_id) are bound to every log line emitted inside the block.
    """
    current = correlation_id_ctx.get()
    token = None
    if current is None:
        current = corr_id or str(uuid.uuid4())
        token = correlation_id_ctx.set(current)
    bound = structlog.contextvars.bind_contextvars(**fields) if fields else {}
    try:
        yield current
    finally:
        if bound:
            structlog.contextvars.reset_contextvars(**bound)
        if token is not None:
            correlation_id_ctx.reset(token)


def add_correlation_id(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add correlation ID to log event"""
    corr_id = correlation_id_ctx.get()
    if corr_id:
        event_dict["correlation_id"] = corr_id
    return event_dict


def setup_logging(log_level: str = "INFO", stream: Any = None) -> None:
    """
    Configure structlog for JSON lines.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream; stderr by default so CLI output stays clean JSON
    """
    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_correlation_id,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Structured logger for a module (pass __name__)."""
    return structlog.get_logger(name)
