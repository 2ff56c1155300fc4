"""
Interface-automation steps.

Every step of one execution shares a browser session. The session is created
on first use, stored in the context variables and closed when the execution
ends. A crashed session is dropped so that a retried step starts fresh.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from pathlib import Path
from typing import Any, TYPE_CHECKING
from urllib.parse import urlparse

from ..core.exceptions import BrowserCrashedError
from .base import StepExecutor, resolve_path

if TYPE_CHECKING:
    from ..browser.pool import BrowserSessionPool
    from ..browser.session import BrowserSession
    from ..engine.context import WorkflowContext
    from ..engine.types import Step, StepOutcome

logger = logging.getLogger(__name__)


def session_key(context: WorkflowContext) -> str:
    return f"browser_session:{context.automation_id}:{context.execution_id}"


class InterfaceStep(StepExecutor):
    """Base class for steps that drive a browser session."""

    category = "interface"

    def __init__(self, pool: BrowserSessionPool) -> None:
        self._pool = pool

    async def session(self, step: Step, context: WorkflowContext) -> BrowserSession:
        """Return the execution's session, launching one if needed."""
        key = session_key(context)
        session_id = context.variables.get(key)
        if session_id and self._pool.has(session_id):
            return self._pool.get(session_id)

        session_id = await self._pool.create_session(context.owner_id, step.config.get("browserOptions"))
        context.variables[key] = session_id
        context.add_cleanup(lambda: self._close(session_id))
        context.log("info", f"Browser session started: {session_id}")
        return self._pool.get(session_id)

    async def _close(self, session_id: str) -> None:
        await self._pool.close(session_id)

    async def drop_session(self, context: WorkflowContext, session_id: str) -> None:
        key = session_key(context)
        if context.variables.get(key) == session_id:
            del context.variables[key]
        await self._pool.close(session_id)

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        session = await self.session(step, context)
        try:
            return await self.perform(session, step, context, input_data)
        except BrowserCrashedError:
            context.log("warn", f"Browser session {session.id} crashed, dropping it")
            await self.drop_session(context, session.id)
            raise

    @abstractmethod
    async def perform(
        self,
        session: BrowserSession,
        step: Step,
        context: WorkflowContext,
        input_data: Any,
    ) -> StepOutcome:
        """Run the browser operation for this step."""


class NavigateStep(InterfaceStep):
    """Open a URL in the execution's browser."""

    required_config = ("url",)

    @property
    def type(self) -> str:
        return "interface_navigate"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        parsed = urlparse(str(config["url"]))
        if parsed.scheme not in ("http", "https", "file") or not (parsed.netloc or parsed.scheme == "file"):
            return [f"Invalid URL: {config['url']}"]
        return []

    async def perform(self, session, step, context, input_data):
        page = await session.navigate(
            step.config["url"],
            wait_until=step.config.get("waitUntil", "load"),
            timeout_ms=step.config.get("timeout"),
            wait_time_ms=int(step.config.get("waitTime", 0)),
        )
        context.log("info", f"Navigated to {page['url']}", {"title": page["title"]})
        return self.output(page, sessionId=session.id)


class ClickStep(InterfaceStep):
    """Click an element."""

    required_config = ("selector",)

    @property
    def type(self) -> str:
        return "interface_click"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        if config.get("button", "left") not in ("left", "right", "middle"):
            return [f"Unknown mouse button: {config.get('button')}"]
        return []

    async def perform(self, session, step, context, input_data):
        result = await session.click(
            step.config["selector"],
            timeout_ms=int(step.config.get("timeout", 10_000)),
            button=step.config.get("button", "left"),
            click_count=int(step.config.get("clickCount", 1)),
            delay_ms=int(step.config.get("delay", 0)),
            wait_after_ms=int(step.config.get("waitAfter", 0)),
        )
        return self.output(result, sessionId=session.id)


class TypeStep(InterfaceStep):
    """Type text into an input."""

    required_config = ("selector",)

    @property
    def type(self) -> str:
        return "interface_type"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        if config.get("text") is None and not config.get("fromInput"):
            return ['Missing required config "text"']
        return []

    async def perform(self, session, step, context, input_data):
        text = step.config.get("text")
        if text is None:
            text = self.get_nested_value(input_data, step.config["fromInput"])
        result = await session.type_text(
            step.config["selector"],
            "" if text is None else str(text),
            timeout_ms=int(step.config.get("timeout", 10_000)),
            clear=step.config.get("clear", True),
            delay_ms=int(step.config.get("delay", 0)),
            press_enter=step.config.get("pressEnter", False),
        )
        return self.output(result, sessionId=session.id)


class ExtractStep(InterfaceStep):
    """Extract text or an attribute from matching elements."""

    required_config = ("selector",)

    @property
    def type(self) -> str:
        return "interface_extract"

    async def perform(self, session, step, context, input_data):
        data = await session.extract(
            step.config["selector"],
            attribute=step.config.get("attribute"),
            multiple=step.config.get("multiple", False),
            timeout_ms=int(step.config.get("timeout", 10_000)),
        )
        variable = step.config.get("outputVariable")
        if variable:
            context.variables[variable] = data
        count = len(data) if isinstance(data, list) else int(data is not None)
        return self.output(data, sessionId=session.id, count=count)


class WaitStep(InterfaceStep):
    """Wait for a selector, a page function or a fixed duration."""

    STATES = ("attached", "detached", "visible", "hidden")

    @property
    def type(self) -> str:
        return "interface_wait"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        errors = []
        if not any(config.get(k) for k in ("selector", "function", "duration")):
            errors.append('One of "selector", "function" or "duration" is required')
        if config.get("state", "visible") not in self.STATES:
            errors.append(f"Unknown wait state: {config.get('state')}")
        return errors

    async def perform(self, session, step, context, input_data):
        await session.wait(
            selector=step.config.get("selector"),
            state=step.config.get("state", "visible"),
            function=step.config.get("function"),
            duration_ms=step.config.get("duration"),
            timeout_ms=int(step.config.get("timeout", 30_000)),
        )
        # Waiting does not change the data flowing through
        return self.output(input_data, sessionId=session.id)


class ScreenshotStep(InterfaceStep):
    """Save a screenshot of the current page."""

    def __init__(self, pool: BrowserSessionPool, screenshot_dir: str | Path) -> None:
        super().__init__(pool)
        self._dir = Path(screenshot_dir)

    @property
    def type(self) -> str:
        return "interface_screenshot"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        errors = []
        if config.get("type", "png") not in ("png", "jpeg"):
            errors.append(f"Unknown image type: {config.get('type')}")
        quality = config.get("quality")
        if quality is not None and not (isinstance(quality, int) and 0 <= quality <= 100):
            errors.append("quality must be an integer between 0 and 100")
        return errors

    async def perform(self, session, step, context, input_data):
        image_type = step.config.get("type", "png")
        name = step.config.get("path") or f"{context.execution_id}_{step.id}.{'jpg' if image_type == 'jpeg' else 'png'}"
        path = resolve_path(self._dir, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        result = await session.screenshot(
            path,
            full_page=step.config.get("fullPage", True),
            image_type=image_type,
            quality=step.config.get("quality"),
            timeout_ms=int(step.config.get("timeout", 30_000)),
        )
        context.log("info", f"Screenshot saved to {path}")
        return self.output(result, sessionId=session.id)


class ExecuteScriptStep(InterfaceStep):
    """Evaluate JavaScript in the page and return its result."""

    required_config = ("script",)

    @property
    def type(self) -> str:
        return "interface_execute_script"

    async def perform(self, session, step, context, input_data):
        arg = step.config.get("args", input_data if step.config.get("passInput") else None)
        result = await session.execute_script(
            step.config["script"],
            arg,
            timeout_ms=int(step.config.get("timeout", 30_000)),
        )
        variable = step.config.get("outputVariable")
        if variable:
            context.variables[variable] = result
        return self.output(result, sessionId=session.id)
