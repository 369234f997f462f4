"""
Browser session management on top of Playwright's async API.
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from quoteflow.utils.schema import RunOptions

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1280, "height": 800}

CHROME_CANDIDATES = [
    "C:/Program Files/Google/Chrome/Application/chrome.exe",
    "C:/Program Files (x86)/Google/Chrome/Application/chrome.exe",
    os.path.join(os.environ.get("LOCALAPPDATA", ""), "Google/Chrome/Application/chrome.exe"),
    "C:/Program Files (x86)/Microsoft/Edge/Application/msedge.exe",
    "C:/Program Files/Microsoft/Edge/Application/msedge.exe",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/usr/bin/chromium-browser",
    "/usr/bin/chromium",
    "/snap/bin/chromium",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
]


def detect_chrome_path(explicit: Optional[str] = None) -> Optional[str]:
    """Installed Chrome/Chromium/Edge executable, or None to use Playwright's bundled Chromium."""
    candidates = [explicit] if explicit else []
    candidates += CHROME_CANDIDATES
    for candidate in candidates:
        if candidate and os.path.isfile(candidate):
            return os.path.normpath(candidate)
    if explicit:
        logger.warning("[browser] chrome path %s not found, falling back", explicit)
    return None


@dataclass
class BrowserSession:
    """A launched browser with one context and its first page."""
    playwright: Any
    browser: Any
    context: Any
    page: Any
    chrome: Optional[str] = None

    async def close(self) -> None:
        for name, closer in (("context", self.context.close), ("browser", self.browser.close)):
            try:
                await closer()
            except PlaywrightError as e:
                logger.debug("[browser] %s close failed: %s", name, e)
        if self.playwright is not None:
            await self.playwright.stop()

    async def wait_closed(self, poll_ms: int = 500) -> None:
        """Block until the user closes the browser window(s)."""
        disconnected = asyncio.Event()
        self.browser.on("disconnected", lambda _: disconnected.set())
        while not disconnected.is_set():
            if not self.context.pages:
                logger.info("[browser] all pages closed")
                break
            try:
                await asyncio.wait_for(disconnected.wait(), timeout=poll_ms / 1000)
            except asyncio.TimeoutError:
                continue
        await self.close()


async def launch_browser(options: RunOptions, video_dir: Optional[Path] = None) -> BrowserSession:
    chrome = detect_chrome_path(options.chrome)
    launch_kwargs = {"headless": options.mode == "headless"}
    if chrome:
        launch_kwargs["executable_path"] = chrome
    if options.slow_mo:
        launch_kwargs["slow_mo"] = options.slow_mo

    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(**launch_kwargs)
        context_kwargs = {"viewport": VIEWPORT}
        if video_dir is not None:
            context_kwargs["record_video_dir"] = str(video_dir)
        context = await browser.new_context(**context_kwargs)
        context.set_default_timeout(options.default_timeout_ms)
        page = await context.new_page()
    except PlaywrightError:
        await playwright.stop()
        raise

    logger.info("[browser] launched %s (%s)", chrome or "bundled chromium", options.mode)
    return BrowserSession(playwright, browser, context, page, chrome)
