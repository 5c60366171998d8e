# Observability package
from .logging import (
    correlation_scope,
    get_logger,
    setup_logging,
)
from .metrics import get_metrics, setup_metrics

__all__ = [
    "correlation_scope",
    "get_logger",
    "setup_logging",
    "setup_metrics",
    "get_metrics",
]
