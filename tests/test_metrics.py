"""Tests for execution metrics and derived health."""

import pytest

from automation_engine.engine.metrics import CRITICAL, DEGRADED, HEALTHY, ExecutionMetrics, Thresholds, p95
from automation_engine.engine.step_registry import StepRegistry
from automation_engine.engine.types import ExecutionStatus
from automation_engine.engine.workflow_engine import WorkflowEngine
from automation_engine.resilience import ErrorClassifier, RetryOrchestrator
from automation_engine.storage import InMemoryExecutionStore

from tests.conftest import FailingStep, RecordingStep, make_automation

COMPLETED = ExecutionStatus.COMPLETED
FAILED = ExecutionStatus.FAILED
CANCELLED = ExecutionStatus.CANCELLED


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def run(metrics, execution_id, status, duration_ms=100, error=None):
    metrics.track_start(execution_id, "auto_1")
    metrics.track_end(execution_id, status, duration_ms, error)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def metrics(clock):
    return ExecutionMetrics(window_s=300.0, clock=clock)


class TestSummary:
    def test_empty_window(self, metrics):
        summary = metrics.summary()
        assert summary["recent"] == 0
        assert summary["successRate"] == 100.0
        assert summary["avgDurationMs"] == 0
        assert summary["p95DurationMs"] == 0

    def test_success_rate_and_durations(self, metrics):
        for i, duration in enumerate((100, 200, 300)):
            run(metrics, f"ok_{i}", COMPLETED, duration)
        run(metrics, "bad", FAILED, 400, "connection reset")

        summary = metrics.summary()

        assert summary["successRate"] == 75.0
        assert summary["avgDurationMs"] == 250
        assert summary["p95DurationMs"] == 400
        assert summary["byStatus"] == {"completed": 3, "failed": 1, "cancelled": 0}
        assert summary["totalExecutions"] == 4

    def test_cancelled_runs_are_not_judged(self, metrics):
        run(metrics, "ok", COMPLETED)
        run(metrics, "stop", CANCELLED)
        assert metrics.summary()["successRate"] == 100.0

    def test_active_runs_counted_until_finished(self, metrics):
        metrics.track_start("exec_1", "auto_1")
        assert metrics.summary()["activeExecutions"] == 1

        metrics.track_end("exec_1", COMPLETED, 50)
        assert metrics.summary()["activeExecutions"] == 0

    def test_old_runs_leave_the_window(self, metrics, clock):
        run(metrics, "old", FAILED)
        clock.advance(301)
        run(metrics, "new", COMPLETED)

        summary = metrics.summary()
        assert summary["recent"] == 1
        assert summary["successRate"] == 100.0
        assert summary["totalExecutions"] == 2

    def test_p95(self):
        assert p95(list(range(1, 101))) == 96
        assert p95([7]) == 7
        assert p95([]) == 0


class TestSlowOperations:
    def test_slowest_first_and_capped(self, metrics):
        for i in range(12):
            run(metrics, f"slow_{i}", COMPLETED, 31_000 + i)
        run(metrics, "fast", COMPLETED, 10)

        slow = metrics.slow_operations()

        assert slow["thresholdMs"] == 30_000
        assert len(slow["slowExecutions"]) == 10
        assert slow["slowExecutions"][0]["executionId"] == "slow_11"
        assert "fast" not in [s["executionId"] for s in slow["slowExecutions"]]


class TestHealth:
    def test_healthy_without_runs(self, metrics):
        assert metrics.health_status() == (HEALTHY, [])

    def test_few_failures_are_not_judged(self, metrics):
        for i in range(4):
            run(metrics, f"bad_{i}", FAILED)
        assert metrics.health_status() == (HEALTHY, [])

    def test_low_success_rate_degrades(self, metrics):
        for i in range(7):
            run(metrics, f"ok_{i}", COMPLETED)
        for i in range(3):
            run(metrics, f"bad_{i}", FAILED)

        status, issues = metrics.health_status()

        assert status == DEGRADED
        assert issues == [{"level": DEGRADED, "metric": "successRate", "value": 70.0, "threshold": 80.0}]

    def test_critical_issues_sort_first(self):
        metrics = ExecutionMetrics(Thresholds(execution_time_warning_ms=1000, execution_time_alert_ms=5000))
        for i in range(5):
            run(metrics, f"bad_{i}", FAILED, 2000)

        status, issues = metrics.health_status()

        assert status == CRITICAL
        assert [(i["level"], i["metric"]) for i in issues] == [
            (CRITICAL, "successRate"),
            (DEGRADED, "avgDurationMs"),
        ]

    def test_recovers_once_failures_age_out(self, metrics, clock):
        for i in range(5):
            run(metrics, f"bad_{i}", FAILED)
        assert metrics.health_status()[0] == CRITICAL

        clock.advance(600)
        assert metrics.health_status() == (HEALTHY, [])

    def test_stats_combines_sections(self, metrics):
        run(metrics, "ok", COMPLETED)
        stats = metrics.stats()
        assert stats["recent"] == 1
        assert stats["slowExecutions"] == []
        assert stats["thresholds"]["minSamples"] == 5


class TestEngineIntegration:
    @pytest.mark.asyncio
    async def test_engine_reports_every_run(self):
        registry = StepRegistry()
        registry.register(RecordingStep("test_record"))
        registry.register(FailingStep("test_fail"))
        store = InMemoryExecutionStore()
        metrics = ExecutionMetrics()
        engine = WorkflowEngine(registry, store, ErrorClassifier(), RetryOrchestrator(store), metrics)

        await engine.execute(make_automation([{"id": "a", "type": "test_record"}]))
        await engine.execute(make_automation([{"id": "b", "type": "test_fail"}]))

        summary = metrics.summary()
        assert summary["byStatus"]["completed"] == 1
        assert summary["byStatus"]["failed"] == 1
        assert summary["activeExecutions"] == 0
        assert summary["successRate"] == 50.0
