"""
Observability Module for Order Submission

Provides:
- Structured logging with correlation IDs
- Metrics collection (orders, steps, activities, processing times)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_step,
    record_activity_started,
    record_activity_completed,
    record_activity_failed,
    record_processing_time,
)

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_step",
    "record_activity_started",
    "record_activity_completed",
    "record_activity_failed",
    "record_processing_time",
    # Logging
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
]
