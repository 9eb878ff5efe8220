"""Shared headless browser used for rendered retrieval."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from playwright.async_api import (
    Browser,
    Error as PlaywrightError,
    Page,
    Playwright,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)
from playwright_stealth import Stealth

from backend.config import ACCEPT_LANGUAGE, NAVIGATION_TIMEOUT_MS, USER_AGENT
from backend.extraction.document import parse_selector_hint
from backend.models import FetchResult
from backend.retrieval.base import clamp_wait_ms, failed, fetched, validate_url

logger = logging.getLogger(__name__)

# Sub-resources that never change the DOM we extract from
BLOCKED_RESOURCE_TYPES = frozenset({"image", "media", "font"})

# Waited for when the offer has no selector of its own
PRICE_SELECTORS = (
    'meta[property="product:price:amount"]',
    'meta[property="og:price:amount"]',
    '[itemprop="price"]',
    '[class*="price"]',
    '[id*="price"]',
    "[data-price]",
)

_stealth = Stealth()


def _get_proxy_config() -> dict | None:
    """Build Playwright proxy config from environment variables."""
    proxy_url = os.environ.get("HTTPS_PROXY") or os.environ.get("HTTP_PROXY")
    if not proxy_url:
        return None
    parsed = urlparse(proxy_url)
    config: dict = {"server": f"{parsed.scheme}://{parsed.hostname}:{parsed.port}"}
    if parsed.username:
        config["username"] = parsed.username
    if parsed.password:
        config["password"] = parsed.password
    return config


async def _block_heavy_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserManager:
    """Process-wide Chromium instance, launched on first use.

    Concurrent first callers share one launch. A browser that has crashed or
    disconnected is replaced on the next request.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    async def get_browser(self) -> Browser:
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                logger.warning("Browser disconnected, relaunching")
                await self._shutdown()

            self._playwright = await async_playwright().start()
            try:
                self._browser = await self._playwright.chromium.launch(
                    headless=True,
                    args=[
                        "--no-sandbox",
                        "--disable-setuid-sandbox",
                        "--disable-dev-shm-usage",
                        "--disable-gpu",
                    ],
                    proxy=_get_proxy_config(),
                )
            except BaseException:
                # Includes cancellation; never keep a driver without a browser
                await self._shutdown()
                raise
            logger.info("Headless browser launched")
            return self._browser

    @asynccontextmanager
    async def page(self, user_agent: str | None = None):
        """Yield a fresh page in its own context; the context is always closed.

        Usage::

            async with browser_manager.page() as page:
                await page.goto(...)
        """
        browser = await self.get_browser()
        context = await browser.new_context(
            user_agent=user_agent or USER_AGENT,
            viewport={"width": 1280, "height": 1024},
            ignore_https_errors=True,
            extra_http_headers={
                "Accept-Language": ACCEPT_LANGUAGE,
                "Cache-Control": "no-cache",
            },
        )
        try:
            await _stealth.apply_stealth_async(context)
            page = await context.new_page()
            page.set_default_navigation_timeout(NAVIGATION_TIMEOUT_MS)
            page.set_default_timeout(NAVIGATION_TIMEOUT_MS)
            # Routing also turns off the browser HTTP cache for this page
            await page.route("**/*", _block_heavy_resources)
            yield page
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug("Error closing browser context: %s", e)

    async def close(self) -> None:
        async with self._lock:
            await self._shutdown()

    async def _shutdown(self) -> None:
        browser, pw = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        if browser is not None:
            try:
                await browser.close()
                logger.info("Headless browser closed")
            except PlaywrightError as e:
                logger.debug("Error closing browser: %s", e)
        if pw is not None:
            try:
                await pw.stop()
            except PlaywrightError as e:
                logger.debug("Error stopping playwright: %s", e)


browser_manager = BrowserManager()


async def _wait_for_price(page: Page, selector: str, wait_ms: int) -> None:
    try:
        await page.wait_for_selector(selector, timeout=wait_ms, state="attached")
    except PlaywrightTimeoutError:
        logger.debug("No price element after %dms on %s", wait_ms, page.url)
    except PlaywrightError as e:
        # e.g. an offer selector Playwright cannot parse; the markup is still usable
        logger.debug("Wait for %r failed: %s", selector, e)


async def retrieve_rendered(
    url: str,
    wait_selector: str | None = None,
    wait_ms: int | None = None,
    user_agent: str | None = None,
    manager: BrowserManager | None = None,
) -> FetchResult:
    """Load *url* in the shared browser and return the markup after scripts ran.

    Waits up to *wait_ms* (clamped) for *wait_selector* or a common price
    element; running out of time is not an error.
    """
    url = validate_url(url)
    wait = clamp_wait_ms(wait_ms)
    manager = manager or browser_manager

    selector = ", ".join(PRICE_SELECTORS)
    if wait_selector:
        selector = parse_selector_hint(wait_selector).base_selector or selector

    try:
        async with manager.page(user_agent) as page:
            response = await page.goto(url, wait_until="domcontentloaded")
            if wait > 0:
                # Playwright treats a zero timeout as "wait forever"
                await _wait_for_price(page, selector, wait)
            html = await page.content()
            status = response.status if response is not None else 200
    except PlaywrightTimeoutError:
        logger.warning("Render timed out for %s", url)
        return failed(url, "Render timed out", rendered=True)
    except PlaywrightError as e:
        logger.warning("Render failed for %s: %s", url, e)
        return failed(url, e.message or "Render failed", rendered=True)

    if not 200 <= status < 300:
        logger.warning("Render of %s returned HTTP %d", url, status)
        return failed(url, f"HTTP {status}", rendered=True, status=status)
    return fetched(url, status, html, rendered=True)
