"""
Execution metrics: success rate, durations, slow runs and derived health.

The engine reports every run start and terminal state here. Aggregates are
computed over a rolling time window.
"""

from __future__ import annotations

import logging
import statistics
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

from .types import ExecutionStatus

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"
CRITICAL = "critical"

SLOW_REPORT_SIZE = 10


@dataclass
class ExecutionSample:
    execution_id: str
    automation_id: str
    status: ExecutionStatus
    duration_ms: int
    finished_at: float
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "executionId": self.execution_id,
            "automationId": self.automation_id,
            "status": self.status.value,
            "durationMs": self.duration_ms,
            "error": self.error,
        }


@dataclass
class Thresholds:
    execution_time_warning_ms: int = 30_000
    execution_time_alert_ms: int = 120_000
    # Percent of finished runs that completed
    success_rate_warning: float = 80.0
    success_rate_alert: float = 50.0
    # Success rate is not judged on fewer runs than this
    min_samples: int = 5

    def to_dict(self) -> dict[str, Any]:
        return {
            "executionTimeWarningMs": self.execution_time_warning_ms,
            "executionTimeAlertMs": self.execution_time_alert_ms,
            "successRateWarning": self.success_rate_warning,
            "successRateAlert": self.success_rate_alert,
            "minSamples": self.min_samples,
        }


def p95(values: list[int]) -> int:
    if not values:
        return 0
    ordered = sorted(values)
    return ordered[min(int(len(ordered) * 0.95), len(ordered) - 1)]


class ExecutionMetrics:
    """Tracks in-flight runs and a window of finished ones."""

    def __init__(
        self,
        thresholds: Thresholds | None = None,
        window_s: float = 300.0,
        max_samples: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.thresholds = thresholds or Thresholds()
        self.window_s = window_s
        self._clock = clock
        self._active: dict[str, tuple[str, float]] = {}
        self._samples: deque[ExecutionSample] = deque(maxlen=max_samples)
        self._total = 0

    @classmethod
    def from_settings(cls, settings: Any) -> ExecutionMetrics:
        return cls(
            thresholds=Thresholds(
                execution_time_warning_ms=settings.execution_time_warning_ms,
                execution_time_alert_ms=settings.execution_time_alert_ms,
                success_rate_warning=settings.success_rate_warning,
                success_rate_alert=settings.success_rate_alert,
                min_samples=settings.metrics_min_samples,
            ),
            window_s=settings.metrics_window_s,
        )

    # --- Tracking ---

    def track_start(self, execution_id: str, automation_id: str) -> None:
        self._active[execution_id] = (automation_id, self._clock())

    def track_end(
        self,
        execution_id: str,
        status: ExecutionStatus,
        duration_ms: int,
        error: str | None = None,
    ) -> None:
        automation_id, _ = self._active.pop(execution_id, ("", 0.0))
        self._total += 1
        self._samples.append(
            ExecutionSample(execution_id, automation_id, status, duration_ms, self._clock(), error)
        )
        if duration_ms > self.thresholds.execution_time_alert_ms:
            logger.warning("Execution %s took %dms", execution_id, duration_ms)

    def _window(self) -> list[ExecutionSample]:
        since = self._clock() - self.window_s
        return [s for s in self._samples if s.finished_at >= since]

    # --- Aggregates ---

    def success_rate(self, samples: list[ExecutionSample] | None = None) -> float:
        """Percent of finished runs that completed. Cancelled runs are not counted."""
        samples = self._window() if samples is None else samples
        judged = [s for s in samples if s.status is not ExecutionStatus.CANCELLED]
        if not judged:
            return 100.0
        completed = sum(1 for s in judged if s.status is ExecutionStatus.COMPLETED)
        return round(completed / len(judged) * 100, 1)

    def summary(self) -> dict[str, Any]:
        samples = self._window()
        durations = [s.duration_ms for s in samples]
        by_status = {status.value: 0 for status in ExecutionStatus if status.is_terminal}
        for s in samples:
            by_status[s.status.value] += 1
        return {
            "windowSeconds": self.window_s,
            "totalExecutions": self._total,
            "activeExecutions": len(self._active),
            "recent": len(samples),
            "byStatus": by_status,
            "successRate": self.success_rate(samples),
            "avgDurationMs": round(statistics.mean(durations)) if durations else 0,
            "p95DurationMs": p95(durations),
        }

    def slow_operations(self) -> dict[str, Any]:
        slow = sorted(
            (s for s in self._window() if s.duration_ms > self.thresholds.execution_time_warning_ms),
            key=lambda s: s.duration_ms,
            reverse=True,
        )
        return {
            "slowExecutions": [s.to_dict() for s in slow[:SLOW_REPORT_SIZE]],
            "thresholdMs": self.thresholds.execution_time_warning_ms,
        }

    # --- Health ---

    def check_thresholds(self) -> list[dict[str, Any]]:
        """Threshold breaches in the current window, most severe first."""
        samples = self._window()
        issues: list[dict[str, Any]] = []
        t = self.thresholds

        durations = [s.duration_ms for s in samples]
        if durations:
            avg = statistics.mean(durations)
            if avg > t.execution_time_alert_ms:
                issues.append(_issue(CRITICAL, "avgDurationMs", avg, t.execution_time_alert_ms))
            elif avg > t.execution_time_warning_ms:
                issues.append(_issue(DEGRADED, "avgDurationMs", avg, t.execution_time_warning_ms))

        judged = [s for s in samples if s.status is not ExecutionStatus.CANCELLED]
        if len(judged) >= t.min_samples:
            rate = self.success_rate(samples)
            if rate < t.success_rate_alert:
                issues.append(_issue(CRITICAL, "successRate", rate, t.success_rate_alert))
            elif rate < t.success_rate_warning:
                issues.append(_issue(DEGRADED, "successRate", rate, t.success_rate_warning))

        issues.sort(key=lambda i: i["level"] != CRITICAL)
        return issues

    def health_status(self) -> tuple[str, list[dict[str, Any]]]:
        issues = self.check_thresholds()
        if any(i["level"] == CRITICAL for i in issues):
            return CRITICAL, issues
        if issues:
            return DEGRADED, issues
        return HEALTHY, issues

    def stats(self) -> dict[str, Any]:
        return {**self.summary(), **self.slow_operations(), "thresholds": self.thresholds.to_dict()}


def _issue(level: str, metric: str, value: float, threshold: float) -> dict[str, Any]:
    return {"level": level, "metric": metric, "value": round(value, 1), "threshold": threshold}
