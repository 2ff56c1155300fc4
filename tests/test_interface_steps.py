"""Tests for browser-driving steps sharing one session per execution."""

import pytest

from automation_engine.browser import BrowserSessionPool
from automation_engine.core.exceptions import BrowserCrashedError, SessionLimitError
from automation_engine.engine.context import WorkflowContext
from automation_engine.engine.types import Step
from automation_engine.steps.interface import (
    ClickStep,
    ExecuteScriptStep,
    ExtractStep,
    NavigateStep,
    ScreenshotStep,
    TypeStep,
    WaitStep,
    session_key,
)


@pytest.fixture
def pool(fake_launcher):
    return BrowserSessionPool(fake_launcher, max_sessions_per_owner=10)


def step(type_tag, step_id="s1", **config):
    return Step(id=step_id, type=type_tag, config=config)


class TestSharedSession:
    @pytest.mark.asyncio
    async def test_steps_share_one_session(self, pool, fake_launcher, context):
        await NavigateStep(pool).execute(step("interface_navigate", url="https://example.com"), context, None)
        outcome = await ExtractStep(pool).execute(
            step("interface_extract", selector="h1", outputVariable="heading"), context, None
        )

        assert len(fake_launcher.handles) == 1
        assert outcome.data == "Hello"
        assert outcome.metadata["count"] == 1
        assert context.variables["heading"] == "Hello"
        assert context.variables[session_key(context)] == outcome.metadata["sessionId"]

    @pytest.mark.asyncio
    async def test_session_closed_when_execution_ends(self, pool, fake_launcher, context):
        await NavigateStep(pool).execute(step("interface_navigate", url="https://example.com"), context, None)
        assert len(pool) == 1

        await context.run_cleanups()

        assert len(pool) == 0
        assert fake_launcher.handles[0].browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_crashed_session_is_dropped(self, pool, fake_launcher, context):
        await NavigateStep(pool).execute(step("interface_navigate", url="https://example.com"), context, None)
        fake_launcher.handles[0].browser.connected = False

        with pytest.raises(BrowserCrashedError):
            await ClickStep(pool).execute(step("interface_click", selector="#go"), context, None)

        assert session_key(context) not in context.variables
        assert len(pool) == 0

        # The next browser step starts a fresh session
        await ClickStep(pool).execute(step("interface_click", selector="#go"), context, None)
        assert len(fake_launcher.handles) == 2

    @pytest.mark.asyncio
    async def test_owner_limit_applies_across_executions(self, fake_launcher):
        pool = BrowserSessionPool(fake_launcher, max_sessions_per_owner=1)
        first = WorkflowContext("exec_1", "auto_1", owner_id="owner_1")
        second = WorkflowContext("exec_2", "auto_1", owner_id="owner_1")
        navigate = NavigateStep(pool)

        await navigate.execute(step("interface_navigate", url="https://example.com"), first, None)
        with pytest.raises(SessionLimitError):
            await navigate.execute(step("interface_navigate", url="https://example.com"), second, None)


class TestSteps:
    @pytest.mark.asyncio
    async def test_type_from_input(self, pool, fake_launcher, context):
        config = {"selector": "#q", "fromInput": "query.text", "pressEnter": True}
        outcome = await TypeStep(pool).execute(step("interface_type", **config), context, {"query": {"text": "cats"}})

        assert outcome.data == {"selector": "#q", "length": 4}
        names = [call[0] for call in fake_launcher.handles[0].page.calls]
        assert names == ["fill", "type", "press"]

    @pytest.mark.asyncio
    async def test_wait_passes_input_through(self, pool, context):
        outcome = await WaitStep(pool).execute(step("interface_wait", duration=10), context, [1, 2])
        assert outcome.data == [1, 2]

    @pytest.mark.asyncio
    async def test_screenshot_default_path(self, fake_launcher, context, tmp_path):
        pool = BrowserSessionPool(fake_launcher)
        outcome = await ScreenshotStep(pool, tmp_path).execute(step("interface_screenshot", "shot"), context, None)

        expected = tmp_path.resolve() / "exec_test_shot.png"
        assert outcome.data["path"] == str(expected)
        kwargs = fake_launcher.handles[0].page.calls[-1][2]
        assert kwargs["type"] == "png"
        assert kwargs["full_page"] is True

    @pytest.mark.asyncio
    async def test_execute_script_with_input(self, pool, fake_launcher, context):
        config = {"script": "(data) => data.length", "passInput": True, "outputVariable": "n"}
        outcome = await ExecuteScriptStep(pool).execute(step("interface_execute_script", **config), context, [1, 2])

        assert outcome.data == 42
        assert context.variables["n"] == 42
        assert fake_launcher.handles[0].page.calls[-1] == ("evaluate", ("(data) => data.length", [1, 2]), {})


class TestValidation:
    def test_navigate_requires_valid_url(self, pool):
        assert NavigateStep(pool).validate({"url": "https://example.com"}).valid
        assert not NavigateStep(pool).validate({"url": "javascript:alert(1)"}).valid
        assert not NavigateStep(pool).validate({}).valid

    def test_wait_requires_a_condition(self, pool):
        assert not WaitStep(pool).validate({}).valid
        assert not WaitStep(pool).validate({"selector": "#x", "state": "sleepy"}).valid

    def test_type_requires_text(self, pool):
        assert not TypeStep(pool).validate({"selector": "#q"}).valid
        assert TypeStep(pool).validate({"selector": "#q", "text": ""}).valid

    def test_screenshot_quality(self, pool, tmp_path):
        executor = ScreenshotStep(pool, tmp_path)
        assert not executor.validate({"type": "jpeg", "quality": 101}).valid
        assert executor.validate({"type": "jpeg", "quality": 80}).valid
