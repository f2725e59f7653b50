"""
Remote-controlled browser sessions.

Every session owns a dedicated Chromium process and a single page. All
work on a session runs under that session's lock, so interactions are
applied in order and an explicit close or the idle monitor never tears
down a page that another request is still using.
"""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

from playwright.async_api import Browser, Page, Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from app.browser import launch_browser
from app.config import get_settings
from app.errors import (
    EngineError,
    NavigationError,
    NavigationTimeoutError,
    OperationTimeoutError,
    ScriptEvaluationError,
    SessionInitError,
    SessionNotFoundError,
)
from app.image_utils import screenshot_to_data_uri


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass
class BrowserSession:
    session_id: str
    browser: Browser
    page: Page
    created_at: float
    last_activity: float
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    closed: bool = False

    def touch(self):
        # Never move backwards, even if the wall clock does
        self.last_activity = max(self.last_activity, time.time())

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.last_activity > ttl_seconds

    def info(self) -> dict:
        return {
            "sessionId": self.session_id,
            "createdAt": _iso(self.created_at),
            "lastActivity": _iso(self.last_activity),
        }


class SessionManager:
    def __init__(self, launcher=launch_browser):
        self._launcher = launcher
        self._sessions: dict[str, BrowserSession] = {}
        self._monitor_task: asyncio.Task | None = None

    @property
    def count(self) -> int:
        return len(self._sessions)

    def list_sessions(self) -> list[dict]:
        return [s.info() for s in self._sessions.values() if not s.closed]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create(self) -> str:
        """Launch a dedicated browser + page. Nothing is stored if setup fails."""
        settings = get_settings()
        browser = None
        try:
            browser = await self._launcher()
            page = await browser.new_page(
                viewport={"width": settings.viewport_width, "height": settings.viewport_height},
            )
        except Exception as e:
            print(f"[session] Init failed: {e}")
            if browser is not None:
                try:
                    await browser.close()
                except Exception as close_err:
                    print(f"[session] Error closing half-initialized browser: {close_err}")
            raise SessionInitError(f"Failed to initialize browser session: {e}") from e

        session_id = uuid.uuid4().hex
        while session_id in self._sessions:
            session_id = uuid.uuid4().hex

        now = time.time()
        self._sessions[session_id] = BrowserSession(
            session_id=session_id,
            browser=browser,
            page=page,
            created_at=now,
            last_activity=now,
        )
        print(f"[session] Created {session_id[:12]} ({self.count} active)")
        return session_id

    async def close(self, session_id: str):
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        async with session.lock:
            if session.closed:
                raise SessionNotFoundError(session_id)
            await self._teardown(session)
        print(f"[session] Closed {session_id[:12]} ({self.count} active)")

    async def _teardown(self, session: BrowserSession):
        """Caller must hold session.lock."""
        session.closed = True
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]
        try:
            await session.browser.close()
        except Exception as e:
            print(f"[session] Error closing browser for {session.session_id[:12]}: {e}")

    @asynccontextmanager
    async def _use(self, session_id: str):
        """Hold the session's lock for one operation and refresh its activity."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        async with session.lock:
            if session.closed:
                raise SessionNotFoundError(session_id)
            session.touch()
            try:
                yield session
            except PlaywrightTimeout as e:
                raise OperationTimeoutError(f"Browser operation timed out: {e}") from e
            except PlaywrightError as e:
                raise EngineError(f"Browser operation failed: {e}") from e
            finally:
                session.touch()

    async def _bounded(self, awaitable, what: str, timeout_ms: int | None = None):
        """Await a page call with a deadline so a hung page can't hold the lock forever."""
        if timeout_ms is None:
            timeout_ms = get_settings().operation_timeout
        try:
            return await asyncio.wait_for(awaitable, timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(f"{what} did not finish within {timeout_ms}ms") from e

    # ------------------------------------------------------------------
    # Page state
    # ------------------------------------------------------------------

    async def _snapshot(self, session: BrowserSession) -> dict:
        settings = get_settings()
        page = session.page
        png = await self._bounded(page.screenshot(type="png"), "Screenshot")
        return {
            "title": await self._bounded(page.title(), "Reading the page title"),
            "url": page.url,
            "screenshot": screenshot_to_data_uri(png, max_width=settings.screenshot_max_width),
            "sessionId": session.session_id,
        }

    async def _settle(self, page: Page):
        ms = get_settings().interaction_settle_ms
        if ms > 0:
            await self._bounded(page.wait_for_timeout(ms), "Waiting for the page to settle")

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------

    async def screenshot(self, session_id: str) -> dict:
        async with self._use(session_id) as session:
            return await self._snapshot(session)

    async def navigate(self, session_id: str, url: str) -> dict:
        settings = get_settings()
        async with self._use(session_id) as session:
            try:
                # goto enforces its own timeout; the outer deadline only catches a stuck driver
                await self._bounded(
                    session.page.goto(
                        url, wait_until="domcontentloaded", timeout=settings.page_load_timeout,
                    ),
                    f"Loading {url}",
                    timeout_ms=settings.page_load_timeout + settings.operation_timeout,
                )
            except PlaywrightTimeout as e:
                raise NavigationTimeoutError(
                    f"Timed out loading {url} after {settings.page_load_timeout}ms"
                ) from e
            except PlaywrightError as e:
                raise NavigationError(f"Failed to load {url}: {e}") from e
            return await self._snapshot(session)

    async def click(self, session_id: str, x: float, y: float) -> dict:
        async with self._use(session_id) as session:
            await self._bounded(session.page.mouse.click(x, y), "Click")
            await self._settle(session.page)
            return await self._snapshot(session)

    async def type_text(self, session_id: str, text: str) -> dict:
        async with self._use(session_id) as session:
            await self._bounded(session.page.keyboard.type(text), "Typing")
            await self._settle(session.page)
            return await self._snapshot(session)

    async def scroll(self, session_id: str, delta_y: float) -> dict:
        async with self._use(session_id) as session:
            await self._bounded(session.page.mouse.wheel(0, delta_y), "Scroll")
            await self._settle(session.page)
            return await self._snapshot(session)

    async def execute(self, session_id: str, script: str) -> tuple:
        """Evaluate script in the page. Returns (result, snapshot)."""
        async with self._use(session_id) as session:
            try:
                result = await self._bounded(session.page.evaluate(script), "Script execution")
            except PlaywrightError as e:
                raise ScriptEvaluationError(f"Script execution failed: {e}") from e
            return result, await self._snapshot(session)

    # ------------------------------------------------------------------
    # Idle session monitor
    # ------------------------------------------------------------------

    async def sweep_expired(self, now: float | None = None) -> list[str]:
        """
        Close every session idle for longer than the TTL. Returns the evicted ids.

        Sessions with an operation in flight are skipped and looked at again
        on the next pass, so one slow page never stalls the whole sweep.
        """
        ttl_seconds = get_settings().session_ttl_minutes * 60
        if now is None:
            now = time.time()

        evicted = []
        for session in list(self._sessions.values()):
            if not session.is_expired(now, ttl_seconds):
                continue
            if session.lock.locked():
                print(f"[session-monitor] {session.session_id[:12]} busy, retrying next pass")
                continue
            async with session.lock:
                # Re-check: it may have been used or closed in the meantime
                if session.closed or not session.is_expired(now, ttl_seconds):
                    continue
                idle_minutes = (now - session.last_activity) / 60
                await self._teardown(session)
            print(f"[session-monitor] Evicted {session.session_id[:12]} (idle {idle_minutes:.0f}m)")
            evicted.append(session.session_id)
        return evicted

    async def _monitor_loop(self):
        interval = get_settings().session_sweep_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep_expired()
            except Exception as e:
                print(f"[session-monitor] Loop error: {e}")

    def start_monitor(self):
        """Start the idle-session sweep. Call from server lifespan."""
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.create_task(self._monitor_loop())

    async def stop(self):
        """Cancel the monitor and close every remaining session."""
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        grace = get_settings().operation_timeout / 1000
        for session in list(self._sessions.values()):
            try:
                await asyncio.wait_for(session.lock.acquire(), grace)
            except asyncio.TimeoutError:
                # Shutting down anyway; don't wait on a page that never answers
                print(f"[session] {session.session_id[:12]} still busy at shutdown, closing anyway")
                if not session.closed:
                    await self._teardown(session)
                continue
            try:
                if not session.closed:
                    await self._teardown(session)
            finally:
                session.lock.release()


# Global singleton
session_manager = SessionManager()
