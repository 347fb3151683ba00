"""
Metrics Collection for Order Submission

Collects and exposes metrics for:
- Order outcomes (succeeded, failed, skipped by the audit short-circuit)
- Submission steps (succeeded, failed, accepted as duplicate)
- Activity execution (started, completed, failed)
- Processing times (average, p95)

Metrics are kept in-memory for the lifetime of the process.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class OrderMetrics:
    """Metrics for order submissions."""
    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    manual_retries: int = 0

    # By order category
    by_category: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"succeeded": 0, "failed": 0}))


@dataclass
class StepMetrics:
    """Metrics for individual submission steps."""
    by_step: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"succeeded": 0, "failed": 0, "duplicate": 0}))

    @property
    def duplicates(self) -> int:
        return sum(counts["duplicate"] for counts in self.by_step.values())


@dataclass
class ActivityMetrics:
    """Metrics for activity execution."""
    started: int = 0
    completed: int = 0
    failed: int = 0

    # By activity name
    by_name: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"started": 0, "completed": 0, "failed": 0}))


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    # Raw timing samples (keep last N for percentile calculations)
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    # By stage
    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: str = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector for order submission.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_step("CREATING_SALES_ORDER", "SUCCESS", duration_ms=120)
        metrics.record_order_completed("Normal", success=True)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.orders = OrderMetrics()
        self.steps = StepMetrics()
        self.activities = ActivityMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def reset(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self.orders = OrderMetrics()
            self.steps = StepMetrics()
            self.activities = ActivityMetrics()
            self.timings = TimingMetrics()

    # =========================================================================
    # Order Metrics
    # =========================================================================

    def record_order_started(self, manual: bool = False):
        """Record an order entering the orchestrator."""
        with self._lock:
            self.orders.submitted += 1
            if manual:
                self.orders.manual_retries += 1

    def record_order_completed(self, category: str, success: bool, duration_ms: float = None):
        """Record the final outcome of an order."""
        with self._lock:
            if success:
                self.orders.succeeded += 1
                self.orders.by_category[category]["succeeded"] += 1
            else:
                self.orders.failed += 1
                self.orders.by_category[category]["failed"] += 1

            if duration_ms:
                self.timings.add_sample(duration_ms, "order")

    def record_order_skipped(self):
        """Record an order skipped because it was already submitted."""
        with self._lock:
            self.orders.skipped += 1

    # =========================================================================
    # Step Metrics
    # =========================================================================

    def record_step(self, step: str, status: str, duration_ms: float = None):
        """Record one submission step outcome (SUCCESS, DUPLICATE or FAILED)."""
        with self._lock:
            if status == "SUCCESS":
                self.steps.by_step[step]["succeeded"] += 1
            elif status == "DUPLICATE":
                self.steps.by_step[step]["duplicate"] += 1
            else:
                self.steps.by_step[step]["failed"] += 1

            if duration_ms:
                self.timings.add_sample(duration_ms, f"step.{step}")

    # =========================================================================
    # Activity Metrics
    # =========================================================================

    def record_activity_started(self, activity_name: str):
        """Record an activity start."""
        with self._lock:
            self.activities.started += 1
            self.activities.by_name[activity_name]["started"] += 1

    def record_activity_completed(self, activity_name: str, duration_ms: float = None):
        """Record an activity completion."""
        with self._lock:
            self.activities.completed += 1
            self.activities.by_name[activity_name]["completed"] += 1

            if duration_ms:
                self.timings.add_sample(duration_ms, f"activity.{activity_name}")

    def record_activity_failed(self, activity_name: str, error: str = None):
        """Record an activity failure."""
        with self._lock:
            self.activities.failed += 1
            self.activities.by_name[activity_name]["failed"] += 1

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "orders": {
                    "submitted": self.orders.submitted,
                    "succeeded": self.orders.succeeded,
                    "failed": self.orders.failed,
                    "skipped": self.orders.skipped,
                    "manual_retries": self.orders.manual_retries,
                    "by_category": {k: dict(v) for k, v in self.orders.by_category.items()},
                },
                "steps": {
                    "duplicates": self.steps.duplicates,
                    "by_step": {k: dict(v) for k, v in self.steps.by_step.items()},
                },
                "activities": {
                    "started": self.activities.started,
                    "completed": self.activities.completed,
                    "failed": self.activities.failed,
                    "by_name": {k: dict(v) for k, v in self.activities.by_name.items()},
                },
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_stage": {
                        stage: {
                            "average_ms": self.timings.get_average(stage),
                            "p95_ms": self.timings.get_p95(stage),
                        }
                        for stage in self.timings.by_stage.keys()
                    },
                },
            }


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()


def record_step(step: str, status: str, duration_ms: float = None):
    """Record one submission step outcome."""
    get_metrics().record_step(step, status, duration_ms)


def record_activity_started(activity_name: str):
    """Record an activity start."""
    get_metrics().record_activity_started(activity_name)


def record_activity_completed(activity_name: str, duration_ms: float = None):
    """Record an activity completion."""
    get_metrics().record_activity_completed(activity_name, duration_ms)


def record_activity_failed(activity_name: str, error: str = None):
    """Record an activity failure."""
    get_metrics().record_activity_failed(activity_name, error)


def record_processing_time(stage: str, duration_ms: float):
    """Record a processing time sample."""
    get_metrics().record_processing_time(stage, duration_ms)
