"""Tests for the retry orchestrator."""

import asyncio
import time
from datetime import datetime

import pytest

from automation_engine.core.exceptions import ExecutionCancelledError, RetryExhaustedError
from automation_engine.engine.types import ExecutionRecord, ExecutionStatus
from automation_engine.resilience.retry import RetryOrchestrator
from automation_engine.storage import InMemoryExecutionStore


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


async def _store_with(execution_id):
    store = InMemoryExecutionStore()
    await store.insert(
        ExecutionRecord(
            id=execution_id,
            automation_id="auto_1",
            status=ExecutionStatus.RUNNING,
            triggered_by="manual",
            started_at=datetime.now(),
        )
    )
    return store


class TestRetryOrchestrator:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        sleep = SleepRecorder()
        store = await _store_with("exec_1")
        retry = RetryOrchestrator(store, sleep=sleep, rng=lambda: 0.5)
        attempts = []

        async def operation(attempt):
            attempts.append(attempt)
            if attempt < 3:
                raise ConnectionError("connection reset")
            return "done"

        result = await retry.execute_with_retry(
            operation, execution_id="exec_1", max_retries=3, strategy="exponential", base_delay_ms=1000
        )

        assert result == "done"
        assert attempts == [1, 2, 3]
        assert sleep.delays == [1.0, 2.0]
        record = await store.get("exec_1")
        assert record.retry_info["attempts"] == 2
        assert [h["delayMs"] for h in record.retry_info["retryHistory"]] == [1000, 2000]

    @pytest.mark.asyncio
    async def test_exhausts_after_max_retries(self):
        sleep = SleepRecorder()
        store = await _store_with("exec_2")
        retry = RetryOrchestrator(store, sleep=sleep, rng=lambda: 0.5)
        calls = 0

        async def operation(attempt):
            nonlocal calls
            calls += 1
            raise ConnectionError("network timeout")

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry.execute_with_retry(
                operation, execution_id="exec_2", max_retries=3, strategy="linear", base_delay_ms=100
            )

        assert calls == 4
        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert sleep.delays == [0.1, 0.2, 0.3]
        assert exc_info.value.history[-1]["delayMs"] is None
        assert retry.retry_status("exec_2") is None

    @pytest.mark.asyncio
    async def test_non_retryable_error_stops_immediately(self):
        sleep = SleepRecorder()
        retry = RetryOrchestrator(sleep=sleep)

        async def operation(attempt):
            raise PermissionError("Unauthorized")

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry.execute_with_retry(operation, execution_id="exec_3", max_retries=5)

        assert exc_info.value.attempts == 1
        assert exc_info.value.history[0]["retryable"] is False
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_auth_wording_on_network_error_is_not_retried(self):
        sleep = SleepRecorder()
        retry = RetryOrchestrator(sleep=sleep)
        attempts = []

        async def operation(attempt):
            attempts.append(attempt)
            raise ConnectionError("unauthorized")

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry.execute_with_retry(operation, execution_id="exec_3b", max_retries=5)

        assert attempts == [1]
        assert exc_info.value.history[0]["errorType"] == "authentication"
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_cancel_between_attempts(self):
        retry = RetryOrchestrator()

        async def sleep(seconds):
            retry.cancel_retry("exec_4")

        retry._sleep = sleep

        async def operation(attempt):
            raise ConnectionError("connection refused")

        with pytest.raises(ExecutionCancelledError):
            await retry.execute_with_retry(operation, execution_id="exec_4", max_retries=3)

    @pytest.mark.asyncio
    async def test_cancel_interrupts_backoff_delay(self):
        retry = RetryOrchestrator()
        asyncio.get_running_loop().call_later(0.1, retry.cancel_retry, "exec_4b")
        attempts = []

        async def operation(attempt):
            attempts.append(attempt)
            raise ConnectionError("connection refused")

        started = time.monotonic()
        with pytest.raises(ExecutionCancelledError):
            await retry.execute_with_retry(
                operation, execution_id="exec_4b", max_retries=3, strategy="fixed", base_delay_ms=3000
            )

        assert time.monotonic() - started < 1.0
        assert attempts == [1]
        assert retry.retry_status("exec_4b") is None

    @pytest.mark.asyncio
    async def test_status_visible_while_retrying(self):
        seen = {}
        retry = RetryOrchestrator()

        async def sleep(seconds):
            seen.update(retry.retry_status("exec_5"))

        retry._sleep = sleep

        async def operation(attempt):
            if attempt == 1:
                raise ConnectionError("connection reset")
            return attempt

        assert await retry.execute_with_retry(operation, execution_id="exec_5", max_retries=2) == 2
        assert seen["attempts"] == 1
        assert seen["maxRetries"] == 2
        assert seen["nextAttempt"] is not None
        assert retry.stats()["activeRetries"] == 0
