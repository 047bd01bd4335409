"""Prometheus metrics for the academy core.

Provides counters for:
- Cache hits, misses and store errors
- Keys touched by pattern invalidation
- Sequencer reorder operations

Usage:
    from academy.observability.metrics import record_cache_hit

    record_cache_hit("record")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import REGISTRY, Counter, generate_latest

from academy.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_errors_total: Any = None
    cache_invalidated_keys_total: Any = None
    reorders_total: Any = None

    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = REGISTRY

        self.cache_hits_total = Counter(
            "academy_cache_hits_total",
            "Cache hits",
            ["cache_type"],
        )
        self.cache_misses_total = Counter(
            "academy_cache_misses_total",
            "Cache misses",
            ["cache_type"],
        )
        self.cache_errors_total = Counter(
            "academy_cache_errors_total",
            "Cache store failures absorbed by graceful degradation",
            ["operation"],
        )
        self.cache_invalidated_keys_total = Counter(
            "academy_cache_invalidated_keys_total",
            "Keys deleted or merged by pattern invalidation",
            ["operation"],
        )
        self.reorders_total = Counter(
            "academy_reorders_total",
            "Sequencer operations committed",
            ["operation"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics or self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def record_cache_hit(cache_type: str = "record") -> None:
    metrics = get_metrics()
    if metrics.cache_hits_total:
        metrics.cache_hits_total.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str = "record") -> None:
    metrics = get_metrics()
    if metrics.cache_misses_total:
        metrics.cache_misses_total.labels(cache_type=cache_type).inc()


def record_cache_error(operation: str) -> None:
    metrics = get_metrics()
    if metrics.cache_errors_total:
        metrics.cache_errors_total.labels(operation=operation).inc()


def record_invalidation(operation: str, keys: int) -> None:
    """Record keys touched by a pattern invalidation.

    Args:
        operation: "delete" or "merge"
        keys: Number of keys affected
    """
    metrics = get_metrics()
    if metrics.cache_invalidated_keys_total and keys:
        metrics.cache_invalidated_keys_total.labels(operation=operation).inc(keys)


def record_reorder(operation: str) -> None:
    metrics = get_metrics()
    if metrics.reorders_total:
        metrics.reorders_total.labels(operation=operation).inc()
