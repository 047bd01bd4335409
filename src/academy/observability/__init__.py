"""Logging and metrics for the academy core."""

from academy.observability.logging import LogContext, configure_logging
from academy.observability.metrics import get_metrics

__all__ = [
    "LogContext",
    "configure_logging",
    "get_metrics",
]
