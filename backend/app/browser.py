"""
Headless Chromium management.

One Playwright driver per process. The OG pipeline shares a single lazily
launched browser (SharedBrowser); remote-control sessions each launch
their own browser process through launch_browser().
"""

import asyncio

from playwright.async_api import async_playwright, Browser, Playwright

from app.config import get_settings
from app.errors import EngineUnavailableError

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]

_playwright: Playwright | None = None
_playwright_lock = asyncio.Lock()


async def get_playwright() -> Playwright:
    global _playwright
    async with _playwright_lock:
        if _playwright is None:
            _playwright = await async_playwright().start()
            print("[browser] Playwright driver started")
    return _playwright


async def launch_browser() -> Browser:
    """Launch a new headless Chromium process with the fixed capability profile."""
    settings = get_settings()
    playwright = await get_playwright()
    return await playwright.chromium.launch(headless=settings.headless, args=BROWSER_ARGS)


class SharedBrowser:
    """
    Process-wide browser handle with single-flight launch.

    Concurrent callers of get() await the same launch. A failed launch is
    forgotten so the next caller retries, and a disconnect clears the handle
    so the next caller relaunches.
    """

    def __init__(self, launcher=launch_browser):
        self._launcher = launcher
        self._task: asyncio.Task | None = None
        self._browser: Browser | None = None

    async def _launch(self) -> Browser:
        browser = await self._launcher()
        browser.on("disconnected", self._on_disconnected)
        self._browser = browser
        print("[browser] Shared browser launched")
        return browser

    def _on_disconnected(self, browser=None):
        # Ignore late events from a browser that was already replaced
        if browser is not None and browser is not self._browser:
            return
        print("[browser] Shared browser disconnected, will relaunch on next request")
        self._task = None
        self._browser = None

    async def get(self) -> Browser:
        if self._task is None:
            self._task = asyncio.ensure_future(self._launch())
        task = self._task
        try:
            return await asyncio.shield(task)
        except Exception as e:
            if self._task is task:
                self._task = None
            print(f"[browser] Launch failed: {e}")
            raise EngineUnavailableError(f"Browser engine unavailable: {e}") from e

    def is_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def close(self):
        task, self._task = self._task, None
        if task is None:
            return
        try:
            browser = await task
        except Exception:
            # Launch never succeeded, nothing to close
            return
        self._browser = None
        try:
            await browser.close()
            print("[browser] Shared browser closed")
        except Exception as e:
            print(f"[browser] Error closing shared browser: {e}")


# Global singleton
shared_browser = SharedBrowser()


async def get_browser() -> Browser:
    return await shared_browser.get()


async def shutdown():
    """Close the shared browser and stop the driver. Call from server lifespan."""
    global _playwright
    await shared_browser.close()
    if _playwright is not None:
        try:
            await _playwright.stop()
        except Exception as e:
            print(f"[browser] Error stopping Playwright: {e}")
        _playwright = None
