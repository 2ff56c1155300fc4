"""
Pytest fixtures for the automation engine test suite.

Browsers are faked at the Playwright object level so the pool, sessions and
interface steps run their real code without launching Chromium.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from automation_engine.browser.launcher import BrowserHandle, LaunchOptions
from automation_engine.core.config import Settings
from automation_engine.engine.context import WorkflowContext
from automation_engine.engine.types import Automation, RetryConfig, Step
from automation_engine.steps.base import StepExecutor


# === Fake Playwright objects ===


class FakeResponse:
    def __init__(self, status: int = 200) -> None:
        self.status = status


class FakePage:
    """Records calls; ``fail_with`` makes the next operation raise."""

    def __init__(self) -> None:
        self.url = "about:blank"
        self.closed = False
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.fail_with: BaseException | None = None
        self.extract_result: Any = "Hello"
        self.evaluate_result: Any = 42

    def _record(self, name: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((name, args, kwargs))
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error

    def is_closed(self) -> bool:
        return self.closed

    async def goto(self, url: str, **kwargs: Any) -> FakeResponse:
        self._record("goto", url, **kwargs)
        self.url = url
        return FakeResponse(200)

    async def title(self) -> str:
        return "Example Domain"

    async def wait_for_timeout(self, ms: int) -> None:
        self._record("wait_for_timeout", ms)

    async def click(self, selector: str, **kwargs: Any) -> None:
        self._record("click", selector, **kwargs)

    async def fill(self, selector: str, value: str, **kwargs: Any) -> None:
        self._record("fill", selector, value, **kwargs)

    async def type(self, selector: str, text: str, **kwargs: Any) -> None:
        self._record("type", selector, text, **kwargs)

    async def press(self, selector: str, key: str, **kwargs: Any) -> None:
        self._record("press", selector, key, **kwargs)

    async def wait_for_selector(self, selector: str, **kwargs: Any) -> None:
        self._record("wait_for_selector", selector, **kwargs)

    async def wait_for_function(self, function: str, **kwargs: Any) -> None:
        self._record("wait_for_function", function, **kwargs)

    async def eval_on_selector(self, selector: str, script: str, arg: Any = None) -> Any:
        self._record("eval_on_selector", selector, arg)
        return self.extract_result

    async def eval_on_selector_all(self, selector: str, script: str, arg: Any = None) -> Any:
        self._record("eval_on_selector_all", selector, arg)
        return self.extract_result

    async def screenshot(self, **kwargs: Any) -> bytes:
        self._record("screenshot", **kwargs)
        return b""

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self._record("evaluate", script, arg)
        return self.evaluate_result


class FakeCDPSession:
    def __init__(self, heap_bytes: int = 0) -> None:
        self.heap_bytes = heap_bytes
        self.sent: list[str] = []

    async def send(self, method: str, params: Any = None) -> dict[str, Any]:
        self.sent.append(method)
        if method == "Performance.getMetrics":
            return {"metrics": [{"name": "JSHeapUsedSize", "value": self.heap_bytes}]}
        return {}


class FakeBrowserContext:
    def __init__(self, cdp: FakeCDPSession) -> None:
        self.cdp = cdp

    async def new_cdp_session(self, page: FakePage) -> FakeCDPSession:
        return self.cdp


class FakeBrowser:
    def __init__(self) -> None:
        self.connected = True
        self.close_calls = 0

    def is_connected(self) -> bool:
        return self.connected

    async def close(self) -> None:
        self.close_calls += 1
        self.connected = False


class FakeLauncher:
    """Hands out fake browsers; yields once per launch like a real process start."""

    def __init__(self, heap_bytes: int = 0) -> None:
        self.heap_bytes = heap_bytes
        self.handles: list[BrowserHandle] = []
        self.options: list[LaunchOptions] = []
        self.stopped = False

    async def launch(self, options: LaunchOptions) -> BrowserHandle:
        await asyncio.sleep(0)
        self.options.append(options)
        handle = BrowserHandle(
            browser=FakeBrowser(),
            context=FakeBrowserContext(FakeCDPSession(self.heap_bytes)),
            page=FakePage(),
        )
        self.handles.append(handle)
        return handle

    async def stop(self) -> None:
        self.stopped = True


# === Scripted step executors ===


class RecordingStep(StepExecutor):
    """Returns ``config["output"]`` (or the input) and records each call."""

    def __init__(self, type_tag: str = "test_record") -> None:
        self._type = type_tag
        self.calls: list[Any] = []

    @property
    def type(self) -> str:
        return self._type

    async def execute(self, step, context, input_data):
        self.calls.append(input_data)
        return self.output(step.config.get("output", input_data))


class FailingStep(StepExecutor):
    """Raises ``config["message"]`` for the first ``config["failures"]`` calls."""

    def __init__(self, type_tag: str = "test_fail") -> None:
        self._type = type_tag
        self.calls = 0

    @property
    def type(self) -> str:
        return self._type

    async def execute(self, step, context, input_data):
        self.calls += 1
        if self.calls <= step.config.get("failures", 1_000_000):
            raise ConnectionError(step.config.get("message", "connection reset by peer"))
        return self.output({"recovered": True})


class CancellingStep(StepExecutor):
    """Requests cancellation of its own execution."""

    @property
    def type(self) -> str:
        return "test_cancel"

    async def execute(self, step, context, input_data):
        context.cancel()
        return self.output(input_data)


# === Fixtures ===


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated to a temporary directory."""
    return Settings(
        file_root=str(tmp_path / "data"),
        browser_screenshot_dir=str(tmp_path / "screenshots"),
        scheduler_timezone="UTC",
        script_timeout_s=2.0,
    )


@pytest.fixture
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def context() -> WorkflowContext:
    return WorkflowContext(execution_id="exec_test", automation_id="auto_test", owner_id="owner_1")


def make_automation(
    steps: list[dict[str, Any]],
    automation_id: str = "auto_test",
    retry: RetryConfig | None = None,
    **kwargs: Any,
) -> Automation:
    return Automation(
        id=automation_id,
        name=kwargs.pop("name", "Test automation"),
        steps=[Step.from_dict(s) for s in steps],
        retry_config=retry,
        **kwargs,
    )
