"""Headless browser sessions."""

from .launcher import BrowserHandle, BrowserLauncher, LaunchOptions, PlaywrightLauncher
from .pool import BrowserSessionPool
from .session import BrowserSession

__all__ = [
    "BrowserHandle",
    "BrowserLauncher",
    "LaunchOptions",
    "PlaywrightLauncher",
    "BrowserSessionPool",
    "BrowserSession",
]
