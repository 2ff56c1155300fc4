"""A pooled browser session and the operations it proxies to Playwright."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..core.exceptions import BrowserCrashedError, BrowserOperationError, BrowserTimeoutError
from .launcher import BrowserHandle

logger = logging.getLogger(__name__)

EXTRACT_ONE_JS = "(el, attr) => attr ? el.getAttribute(attr) : (el.textContent || '').trim()"
EXTRACT_ALL_JS = "(els, attr) => els.map(el => attr ? el.getAttribute(attr) : (el.textContent || '').trim())"

WAIT_UNTIL = {
    "load": "load",
    "domcontentloaded": "domcontentloaded",
    "networkidle": "networkidle",
    "networkidle0": "networkidle",
    "networkidle2": "networkidle",
    "commit": "commit",
}


class BrowserSession:
    """One out-of-process Chromium instance owned by a single owner."""

    def __init__(
        self,
        session_id: str,
        owner_id: str,
        handle: BrowserHandle,
        navigation_timeout_ms: int = 30_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.id = session_id
        self.owner_id = owner_id
        self.handle = handle
        self.navigation_timeout_ms = navigation_timeout_ms
        self.created_at = datetime.now()
        self._clock = clock
        self.created_tick = clock()
        self.last_used = self.created_tick
        self.memory_usage = 0

    @property
    def page(self):
        return self.handle.page

    def touch(self) -> None:
        self.last_used = self._clock()

    def idle_ms(self) -> int:
        return int((self._clock() - self.last_used) * 1000)

    def is_alive(self) -> bool:
        try:
            return self.handle.browser.is_connected() and not self.handle.page.is_closed()
        except PlaywrightError:
            return False

    @asynccontextmanager
    async def _operation(self, name: str, timeout_ms: int) -> AsyncIterator[None]:
        """Translate Playwright failures into typed session errors."""
        if not self.is_alive():
            raise BrowserCrashedError(self.id, name)
        self.touch()
        try:
            yield
        except PlaywrightTimeoutError as e:
            raise BrowserTimeoutError(name, timeout_ms, str(e).splitlines()[0] if str(e) else "") from e
        except asyncio.TimeoutError as e:
            raise BrowserTimeoutError(name, timeout_ms) from e
        except PlaywrightError as e:
            if not self.is_alive():
                raise BrowserCrashedError(self.id, name) from e
            raise BrowserOperationError(f"Browser {name} failed: {e}") from e
        finally:
            self.touch()

    # --- Operations ---

    async def navigate(
        self,
        url: str,
        wait_until: str = "load",
        timeout_ms: int | None = None,
        wait_time_ms: int = 0,
    ) -> dict[str, Any]:
        timeout = timeout_ms or self.navigation_timeout_ms
        logger.info("Session %s navigating to %s", self.id, url)
        async with self._operation("navigation", timeout):
            response = await self.page.goto(url, wait_until=WAIT_UNTIL.get(wait_until, "load"), timeout=timeout)
            if wait_time_ms:
                await self.page.wait_for_timeout(wait_time_ms)
            return {
                "url": self.page.url,
                "title": await self.page.title(),
                "status": response.status if response is not None else None,
            }

    async def click(
        self,
        selector: str,
        timeout_ms: int = 10_000,
        button: str = "left",
        click_count: int = 1,
        delay_ms: int = 0,
        wait_after_ms: int = 0,
    ) -> dict[str, Any]:
        async with self._operation("click", timeout_ms):
            await self.page.click(
                selector,
                timeout=timeout_ms,
                button=button,
                click_count=click_count,
                delay=delay_ms,
            )
            if wait_after_ms:
                await self.page.wait_for_timeout(wait_after_ms)
            return {"selector": selector, "url": self.page.url}

    async def type_text(
        self,
        selector: str,
        text: str,
        timeout_ms: int = 10_000,
        clear: bool = True,
        delay_ms: int = 0,
        press_enter: bool = False,
    ) -> dict[str, Any]:
        async with self._operation("type", timeout_ms):
            if clear:
                await self.page.fill(selector, "", timeout=timeout_ms)
            await self.page.type(selector, text, delay=delay_ms, timeout=timeout_ms)
            if press_enter:
                await self.page.press(selector, "Enter", timeout=timeout_ms)
            return {"selector": selector, "length": len(text)}

    async def extract(
        self,
        selector: str,
        attribute: str | None = None,
        multiple: bool = False,
        timeout_ms: int = 10_000,
    ) -> Any:
        async with self._operation("extract", timeout_ms):
            await self.page.wait_for_selector(selector, state="attached", timeout=timeout_ms)
            if multiple:
                return await self.page.eval_on_selector_all(selector, EXTRACT_ALL_JS, attribute)
            return await self.page.eval_on_selector(selector, EXTRACT_ONE_JS, attribute)

    async def wait(
        self,
        selector: str | None = None,
        state: str = "visible",
        function: str | None = None,
        duration_ms: int | None = None,
        timeout_ms: int = 30_000,
    ) -> dict[str, Any]:
        async with self._operation("wait", timeout_ms):
            if selector:
                await self.page.wait_for_selector(selector, state=state, timeout=timeout_ms)
            elif function:
                await self.page.wait_for_function(function, timeout=timeout_ms)
            else:
                await self.page.wait_for_timeout(duration_ms or 0)
            return {"selector": selector, "function": function, "durationMs": duration_ms}

    async def screenshot(
        self,
        path: str | Path,
        full_page: bool = True,
        image_type: str = "png",
        quality: int | None = None,
        timeout_ms: int = 30_000,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"path": str(path), "full_page": full_page, "type": image_type, "timeout": timeout_ms}
        if image_type == "jpeg" and quality:
            kwargs["quality"] = quality
        async with self._operation("screenshot", timeout_ms):
            await self.page.screenshot(**kwargs)
            return {"path": str(path), "fullPage": full_page}

    async def execute_script(self, script: str, arg: Any = None, timeout_ms: int = 30_000) -> Any:
        async with self._operation("script", timeout_ms):
            return await asyncio.wait_for(self.page.evaluate(script, arg), timeout=timeout_ms / 1000)

    # --- Resources ---

    async def sample_memory(self) -> int:
        """Read the page's JS heap size over CDP."""
        cdp = self.handle.extras.get("cdp")
        if cdp is None:
            cdp = await self.handle.context.new_cdp_session(self.handle.page)
            await cdp.send("Performance.enable")
            self.handle.extras["cdp"] = cdp
        result = await cdp.send("Performance.getMetrics")
        metrics = {m["name"]: m["value"] for m in result.get("metrics", [])}
        self.memory_usage = int(metrics.get("JSHeapUsedSize", 0))
        return self.memory_usage

    async def close(self) -> None:
        try:
            await self.handle.browser.close()
        except PlaywrightError as e:
            # Already gone
            logger.debug("Browser for session %s already closed: %s", self.id, e)

    def info(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "createdAt": self.created_at.isoformat(),
            "idleMs": self.idle_ms(),
            "memoryUsage": self.memory_usage,
            "alive": self.is_alive(),
        }
