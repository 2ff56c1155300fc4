"""Launching isolated headless Chromium processes with Playwright."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright

logger = logging.getLogger(__name__)

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--disable-sync",
    "--disable-default-apps",
    "--no-first-run",
    "--mute-audio",
]

BLOCKED_URL_PATTERNS = (
    "google-analytics.com",
    "googletagmanager.com",
    "facebook.com/tr",
    "doubleclick.net",
    "googlesyndication.com",
    "amazon-adsystem.com",
    "adsystem.amazon",
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class LaunchOptions:
    """How a session's browser is configured."""

    headless: bool = True
    viewport_width: int = 1920
    viewport_height: int = 1080
    max_viewport_width: int = 3840
    max_viewport_height: int = 2160
    user_agent: str = DEFAULT_USER_AGENT
    navigation_timeout_ms: int = 30_000
    default_timeout_ms: int = 30_000
    block_trackers: bool = True
    blocked_resource_types: tuple[str, ...] = ()

    @property
    def viewport(self) -> dict[str, int]:
        return {
            "width": max(320, min(self.viewport_width, self.max_viewport_width)),
            "height": max(240, min(self.viewport_height, self.max_viewport_height)),
        }

    def with_overrides(self, overrides: dict[str, Any] | None) -> LaunchOptions:
        """Apply step-level options (camelCase keys)."""
        if not overrides:
            return self
        changes: dict[str, Any] = {}
        viewport = overrides.get("viewport") or {}
        if viewport.get("width"):
            changes["viewport_width"] = int(viewport["width"])
        if viewport.get("height"):
            changes["viewport_height"] = int(viewport["height"])
        if overrides.get("userAgent"):
            changes["user_agent"] = str(overrides["userAgent"])
        if "headless" in overrides:
            changes["headless"] = bool(overrides["headless"])
        if overrides.get("timeout"):
            changes["navigation_timeout_ms"] = int(overrides["timeout"])
        if "blockTrackers" in overrides:
            changes["block_trackers"] = bool(overrides["blockTrackers"])
        if overrides.get("blockImages"):
            changes["blocked_resource_types"] = ("image", "font", "media")
        return replace(self, **changes)


@dataclass
class BrowserHandle:
    """The Playwright objects behind one session."""

    browser: Browser
    context: BrowserContext
    page: Page
    extras: dict[str, Any] = field(default_factory=dict)


class BrowserLauncher(Protocol):
    async def launch(self, options: LaunchOptions) -> BrowserHandle: ...

    async def stop(self) -> None: ...


def is_blocked(url: str) -> bool:
    return any(pattern in url for pattern in BLOCKED_URL_PATTERNS)


class PlaywrightLauncher:
    """Starts one Chromium process per session from a shared Playwright driver."""

    def __init__(self) -> None:
        self._playwright: Playwright | None = None
        self._lock = asyncio.Lock()

    async def _driver(self) -> Playwright:
        async with self._lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            return self._playwright

    async def launch(self, options: LaunchOptions) -> BrowserHandle:
        playwright = await self._driver()
        browser = await playwright.chromium.launch(headless=options.headless, args=BROWSER_ARGS)
        try:
            context = await browser.new_context(
                viewport=options.viewport,
                user_agent=options.user_agent,
                locale="en-US",
            )
            if options.block_trackers or options.blocked_resource_types:
                await context.route("**/*", self._route_handler(options))

            page = await context.new_page()
            page.set_default_timeout(options.default_timeout_ms)
            page.set_default_navigation_timeout(options.navigation_timeout_ms)
        except Exception:
            await browser.close()
            raise

        return BrowserHandle(browser=browser, context=context, page=page)

    def _route_handler(self, options: LaunchOptions):
        async def handle(route: Route) -> None:
            request = route.request
            if (options.block_trackers and is_blocked(request.url)) or (
                request.resource_type in options.blocked_resource_types
            ):
                await route.abort()
            else:
                await route.continue_()

        return handle

    async def stop(self) -> None:
        async with self._lock:
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
