"""Tests for the shared browser handle — fake launcher, no Chromium."""
import asyncio

import pytest

from app.browser import SharedBrowser, BROWSER_ARGS
from app.errors import EngineUnavailableError
from conftest import FakeLauncher


def test_browser_args_profile():
    assert "--no-sandbox" in BROWSER_ARGS
    assert "--disable-gpu" in BROWSER_ARGS
    assert "--disable-dev-shm-usage" in BROWSER_ARGS


@pytest.mark.asyncio
async def test_concurrent_get_launches_once():
    launcher = FakeLauncher()
    shared = SharedBrowser(launcher)

    results = await asyncio.gather(*[shared.get() for _ in range(5)])

    assert len(launcher.browsers) == 1
    assert all(b is launcher.browsers[0] for b in results)
    assert shared.is_connected()


@pytest.mark.asyncio
async def test_failed_launch_is_not_memoized():
    launcher = FakeLauncher(error=RuntimeError("chromium binary missing"))
    shared = SharedBrowser(launcher)

    with pytest.raises(EngineUnavailableError, match="chromium binary missing"):
        await shared.get()

    launcher.error = None
    browser = await shared.get()
    assert browser is launcher.browsers[0]


@pytest.mark.asyncio
async def test_disconnect_triggers_relaunch():
    launcher = FakeLauncher()
    shared = SharedBrowser(launcher)

    first = await shared.get()
    first.closed = True
    first.disconnect()
    assert not shared.is_connected()

    second = await shared.get()
    assert second is not first
    assert len(launcher.browsers) == 2


@pytest.mark.asyncio
async def test_stale_disconnect_ignored():
    launcher = FakeLauncher()
    shared = SharedBrowser(launcher)

    first = await shared.get()
    first.disconnect()
    second = await shared.get()

    # A late event from the old browser must not drop the new one
    first.disconnect()
    assert await shared.get() is second
    assert len(launcher.browsers) == 2


@pytest.mark.asyncio
async def test_close():
    launcher = FakeLauncher()
    shared = SharedBrowser(launcher)
    browser = await shared.get()

    await shared.close()

    assert browser.close_calls == 1
    assert not shared.is_connected()
    await shared.close()  # no-op
    assert browser.close_calls == 1
