"""Fake Playwright objects so tests never start a real Chromium."""
import asyncio
import io

import pytest
from PIL import Image


def make_png(width=64, height=32, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeMouse:
    def __init__(self, page):
        self._page = page

    async def click(self, x, y):
        if self._page.mouse_error is not None:
            raise self._page.mouse_error
        self._page.events.append(("click-start", x, y))
        await asyncio.sleep(0.01)
        self._page.events.append(("click-end", x, y))

    async def wheel(self, delta_x, delta_y):
        self._page.events.append(("wheel", delta_x, delta_y))


class FakeKeyboard:
    def __init__(self, page):
        self._page = page

    async def type(self, text):
        self._page.events.append(("type-start", text))
        for _ in text:
            await asyncio.sleep(0.001)
        self._page.events.append(("type-end", text))


class FakePage:
    def __init__(self, html="<html><head><title>Blank</title></head></html>"):
        self.url = "about:blank"
        self.html = html
        self.events = []
        self.mouse = FakeMouse(self)
        self.keyboard = FakeKeyboard(self)
        self.goto_error = None
        self.evaluate_result = None
        self.evaluate_error = None
        self.evaluate_hangs = False
        self.mouse_error = None
        self.route_handler = None
        self.goto_kwargs = None
        self.closed = False

    async def goto(self, url, **kwargs):
        self.goto_kwargs = kwargs
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url

    async def title(self):
        return f"Title of {self.url}"

    async def screenshot(self, **kwargs):
        return make_png()

    async def evaluate(self, script):
        self.events.append(("evaluate", script))
        if self.evaluate_hangs:
            await asyncio.sleep(3600)
        if self.evaluate_error is not None:
            raise self.evaluate_error
        return self.evaluate_result

    async def wait_for_timeout(self, ms):
        pass

    async def route(self, pattern, handler):
        self.route_handler = handler

    async def content(self):
        return self.html

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, browser, page):
        self._browser = browser
        self.page = page
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        if not self.closed:
            self.closed = True
            self._browser.open_contexts -= 1


class FakeBrowser:
    def __init__(self, page=None):
        self.page = page or FakePage()
        self.closed = False
        self.close_calls = 0
        self.handlers = {}
        self.open_contexts = 0
        self.context_kwargs = None
        self.new_page_error = None

    def on(self, event, handler):
        self.handlers[event] = handler

    def is_connected(self):
        return not self.closed

    async def new_page(self, **kwargs):
        if self.new_page_error is not None:
            raise self.new_page_error
        return self.page

    async def new_context(self, **kwargs):
        self.context_kwargs = kwargs
        self.open_contexts += 1
        return FakeContext(self, self.page)

    async def close(self):
        self.close_calls += 1
        self.closed = True

    def disconnect(self):
        handler = self.handlers.get("disconnected")
        if handler:
            handler(self)


class FakeLauncher:
    """Callable stand-in for launch_browser that records every browser it creates."""

    def __init__(self, error=None, new_page_error=None):
        self.error = error
        self.new_page_error = new_page_error
        self.browsers = []

    async def __call__(self):
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        browser = FakeBrowser()
        browser.new_page_error = self.new_page_error
        self.browsers.append(browser)
        return browser


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def short_timeout(monkeypatch):
    """Shrink the per-operation deadline so hung fakes fail fast."""
    from app.config import get_settings
    monkeypatch.setattr(get_settings(), "operation_timeout", 50)
