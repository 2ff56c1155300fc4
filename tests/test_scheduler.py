"""Tests for cron scheduling and webhook routing."""

from unittest.mock import MagicMock

import pytest

from automation_engine.core.exceptions import AutomationNotFoundError, InvalidCronExpressionError
from automation_engine.engine.step_registry import StepRegistry
from automation_engine.engine.types import Schedule
from automation_engine.engine.workflow_engine import WorkflowEngine
from automation_engine.resilience import ErrorClassifier, RetryOrchestrator
from automation_engine.scheduler import INVALID_TOKEN, Scheduler, build_trigger, next_fire_times
from automation_engine.storage import InMemoryAutomationStore, InMemoryExecutionStore

from tests.conftest import RecordingStep, make_automation

STEPS = [{"id": "a", "type": "test_record"}]


class Setup:
    def __init__(self, scheduler=None):
        self.step = RecordingStep("test_record")
        registry = StepRegistry()
        registry.register(self.step)
        self.executions = InMemoryExecutionStore()
        self.automations = InMemoryAutomationStore()
        engine = WorkflowEngine(registry, self.executions, ErrorClassifier(), RetryOrchestrator(self.executions))
        self.timer = scheduler
        self.scheduler = Scheduler(engine, self.automations, timezone="UTC", max_overlapping_runs=10, scheduler=scheduler)


def mock_timer():
    timer = MagicMock()
    timer.running = True
    timer.get_job.return_value = None
    return timer


class TestCron:
    @pytest.mark.parametrize("expression", ["61 * * * *", "every day", "* * * *", "0 9 * * 1-5 2024"])
    def test_invalid_expressions(self, expression):
        with pytest.raises(InvalidCronExpressionError):
            build_trigger(expression)

    def test_unknown_timezone(self):
        with pytest.raises(InvalidCronExpressionError) as exc_info:
            build_trigger("0 9 * * *", "Mars/Olympus_Mons")
        assert "unknown timezone" in exc_info.value.message

    def test_next_fire_times(self):
        times = next_fire_times("0 9 * * 1-5", count=3, timezone="Europe/Berlin")
        assert len(times) == 3
        assert times == sorted(times)
        assert all(t.hour == 9 and t.minute == 0 and t.weekday() < 5 for t in times)

    def test_invalid_cron_never_reaches_timer(self):
        timer = mock_timer()
        setup = Setup(timer)

        with pytest.raises(InvalidCronExpressionError):
            setup.scheduler.schedule("auto_1", Schedule(cron_expression="61 * * * *"))

        timer.add_job.assert_not_called()
        assert setup.scheduler.schedule_status("auto_1")["scheduled"] is False

    def test_overlap_policy(self):
        timer = mock_timer()
        setup = Setup(timer)

        setup.scheduler.schedule("auto_1", Schedule(cron_expression="*/5 * * * *"))
        setup.scheduler.schedule("auto_2", Schedule(cron_expression="*/5 * * * *", allow_overlap=False))

        first, second = timer.add_job.call_args_list
        assert first.kwargs["max_instances"] == 10
        assert first.kwargs["id"] == "automation:auto_1"
        assert first.kwargs["replace_existing"] is True
        assert second.kwargs["max_instances"] == 1

    def test_disabled_schedule_unschedules(self):
        timer = mock_timer()
        setup = Setup(timer)
        assert setup.scheduler.update_schedule("auto_1", Schedule(cron_expression="0 * * * *", enabled=False)) is None
        timer.add_job.assert_not_called()
        timer.remove_job.assert_called_once_with("automation:auto_1")


class TestSchedulerLifecycle:
    @pytest.mark.asyncio
    async def test_start_arms_persisted_schedules(self):
        setup = Setup()
        automation = make_automation(STEPS, schedule=Schedule(cron_expression="0 9 * * *", timezone="Asia/Tokyo"))
        await setup.automations.insert(automation)

        await setup.scheduler.start()
        try:
            status = setup.scheduler.schedule_status(automation.id)
            assert status["scheduled"] is True
            assert status["timezone"] == "Asia/Tokyo"
            assert status["nextRun"] is not None
            assert setup.scheduler.stats()["scheduledJobs"] == 1
        finally:
            await setup.scheduler.stop()

        assert setup.scheduler.running is False

    @pytest.mark.asyncio
    async def test_fire_runs_enabled_automation(self):
        setup = Setup(mock_timer())
        schedule = Schedule(cron_expression="0 * * * *", input_data={"batch": 7})
        await setup.automations.insert(make_automation(STEPS, schedule=schedule))

        result = await setup.scheduler._fire("auto_test")

        assert result.success
        assert setup.step.calls[0]["batch"] == 7
        assert setup.step.calls[0]["trigger"]["type"] == "scheduled"
        record = await setup.executions.get(result.execution_id)
        assert record.triggered_by == "scheduled"

    @pytest.mark.asyncio
    async def test_fire_skips_disabled_automation(self):
        setup = Setup(mock_timer())
        await setup.automations.insert(make_automation(STEPS, enabled=False))

        assert await setup.scheduler._fire("auto_test") is None
        assert setup.step.calls == []

    @pytest.mark.asyncio
    async def test_watched_triggers_are_recorded(self):
        setup = Setup(mock_timer())
        await setup.automations.insert(make_automation(STEPS, triggers={"fileSystem": {"enabled": True, "path": "/in"}}))

        await setup.scheduler.start()

        assert setup.scheduler.stats()["unsupportedWatchers"] == {"auto_test": ["fileSystem"]}


class TestWebhooks:
    @pytest.mark.asyncio
    async def test_webhook_runs_automation(self):
        setup = Setup(mock_timer())
        await setup.automations.insert(make_automation(STEPS))

        token = await setup.scheduler.enable_webhook("auto_test")
        result = await setup.scheduler.handle_webhook(token, {"order": 42}, {"x-source": "shop"})

        assert len(token) == 64
        assert result.success
        webhook = setup.step.calls[0]["webhook"]
        assert webhook["payload"] == {"order": 42}
        assert webhook["headers"] == {"x-source": "shop"}
        record = await setup.executions.get(result.execution_id)
        assert record.triggered_by == "webhook"

        stored = await setup.automations.get("auto_test")
        assert stored.webhook_trigger["token"] == token
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_unknown_token_rejected(self):
        setup = Setup(mock_timer())
        result = await setup.scheduler.handle_webhook("nope", {})

        assert not result.success
        assert result.execution_id is None
        assert result.error == INVALID_TOKEN
        assert await setup.executions.list() == []

    @pytest.mark.asyncio
    async def test_disable_and_rotate(self):
        setup = Setup(mock_timer())
        await setup.automations.insert(make_automation(STEPS))
        old = await setup.scheduler.enable_webhook("auto_test")

        assert await setup.scheduler.disable_webhook("auto_test") is True
        assert (await setup.scheduler.handle_webhook(old, {})).error == INVALID_TOKEN

        new = await setup.scheduler.enable_webhook("auto_test")
        assert new != old
        assert (await setup.scheduler.handle_webhook(old, {})).error == INVALID_TOKEN
        assert (await setup.scheduler.handle_webhook(new, {})).success

    @pytest.mark.asyncio
    async def test_disabled_automation_not_run(self):
        setup = Setup(mock_timer())
        await setup.automations.insert(make_automation(STEPS))
        token = await setup.scheduler.enable_webhook("auto_test")
        await setup.automations.update("auto_test", enabled=False)

        result = await setup.scheduler.handle_webhook(token, {})

        assert result.error == "Automation is disabled: auto_test"
        assert setup.step.calls == []

    @pytest.mark.asyncio
    async def test_tokens_restored_on_start(self):
        setup = Setup(mock_timer())
        triggers = {"webhook": {"enabled": True, "token": "persisted"}}
        await setup.automations.insert(make_automation(STEPS, triggers=triggers))

        await setup.scheduler.start()

        assert (await setup.scheduler.handle_webhook("persisted", {"a": 1})).success

    @pytest.mark.asyncio
    async def test_enable_unknown_automation(self):
        setup = Setup(mock_timer())
        with pytest.raises(AutomationNotFoundError):
            await setup.scheduler.enable_webhook("ghost")

    @pytest.mark.asyncio
    async def test_disabled_automation_token_restored_on_start(self):
        setup = Setup(mock_timer())
        triggers = {"webhook": {"enabled": True, "token": "persisted"}}
        await setup.automations.insert(make_automation(STEPS, enabled=False, triggers=triggers))

        await setup.scheduler.start()
        result = await setup.scheduler.handle_webhook("persisted", {})

        assert result.error == "Automation is disabled: auto_test"
        assert setup.step.calls == []
