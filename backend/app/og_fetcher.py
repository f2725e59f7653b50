"""
Open Graph fetcher.

Loads a URL in the shared headless browser with scripts disabled and every
subresource blocked, then extracts preview metadata from the static markup.
"""

from playwright.async_api import Route, Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from app.browser import get_browser
from app.config import get_settings
from app.errors import EngineUnavailableError, OgFetchError
from app.og_extractor import extract_metadata


async def _block_subresources(route: Route):
    """Only the top-level document may load; images, css, fonts, xhr etc. are aborted."""
    if route.request.resource_type == "document":
        await route.continue_()
    else:
        await route.abort()


async def fetch_og(url: str, browser=None) -> dict:
    """
    Fetch OG metadata for url. Raises OgFetchError on failure.

    Each call gets its own browser context so cookies and storage never leak
    between requests; the context is always closed on the way out.
    """
    settings = get_settings()

    try:
        if browser is None:
            browser = await get_browser()
    except EngineUnavailableError as e:
        raise OgFetchError("engine_unavailable", str(e)) from e

    try:
        context = await browser.new_context(
            java_script_enabled=False,
            user_agent=settings.og_user_agent,
        )
    except PlaywrightError as e:
        raise OgFetchError("engine_unavailable", f"Could not open browser context: {e}") from e

    try:
        page = await context.new_page()
        await page.route("**/*", _block_subresources)
        await page.goto(url, wait_until="domcontentloaded", timeout=settings.page_load_timeout)
        html = await page.content()
        await page.close()
    except PlaywrightTimeout as e:
        print(f"[og] Timeout loading {url}")
        raise OgFetchError(
            "timeout", f"Timed out loading {url} after {settings.page_load_timeout}ms"
        ) from e
    except PlaywrightError as e:
        print(f"[og] Failed to load {url}: {e}")
        raise OgFetchError("navigation_failed", f"Failed to load {url}: {e}") from e
    finally:
        try:
            await context.close()
        except Exception as e:
            print(f"[og] Error closing context for {url}: {e}")

    return extract_metadata(html, url)
