"""Headless browser rendering of live pages."""

import asyncio
import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Playwright, Route, async_playwright

from site_snapshot.config import Config
from site_snapshot.exceptions import RenderError

logger = logging.getLogger(__name__)

# Streams a static snapshot never needs and that may never finish loading
BLOCKED_RESOURCE_TYPES = {"media", "eventsource", "websocket"}

LAZY_IMAGE_ATTRIBUTES = ("data-src", "data-lazy", "data-original", "data-url")

PROMOTE_LAZY_IMAGES_JS = """
(attributes) => {
  for (const img of Array.from(document.images)) {
    const src = img.getAttribute("src");
    if (src && !src.startsWith("data:")) continue;
    for (const name of attributes) {
      const value = img.getAttribute(name);
      if (value) {
        img.setAttribute("src", value);
        break;
      }
    }
  }
}
"""

BROWSER_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


async def _filter_request(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class PageRenderer:
    """Loads a URL in a fresh headless Chromium and returns the rendered HTML."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()

    async def _navigate(self, page: Page, url: str) -> None:
        """Go to ``url``, retrying once with a stricter wait condition."""
        try:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.config.navigation_timeout * 1000,
            )
        except PlaywrightError as e:
            logger.warning("First navigation to %s failed (%s), retrying", url, e)
            await asyncio.sleep(self.config.retry_delay)
            try:
                await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=self.config.retry_navigation_timeout * 1000,
                )
            except PlaywrightError as retry_error:
                raise RenderError(f"Could not load {url}") from retry_error

    async def render(self, url: str) -> str:
        """Render ``url`` and return the serialized document."""
        playwright = await async_playwright().start()
        try:
            return await self._render_with(playwright, url)
        finally:
            try:
                await playwright.stop()
            except Exception as e:
                logger.debug("Error stopping Playwright: %s", e)

    async def _render_with(self, playwright: Playwright, url: str) -> str:
        browser = await playwright.chromium.launch(
            headless=self.config.headless, args=BROWSER_ARGS
        )
        page = None
        try:
            page = await browser.new_page()
            await page.route("**/*", _filter_request)
            logger.info("Loading %s", url)
            await self._navigate(page, url)
            if self.config.settle_delay:
                await page.wait_for_timeout(int(self.config.settle_delay * 1000))
            await page.evaluate(PROMOTE_LAZY_IMAGES_JS, list(LAZY_IMAGE_ATTRIBUTES))
            return await page.content()
        finally:
            await self._close(page, browser)

    async def _close(self, page, browser) -> None:
        """Release browser resources; failures here never reach the caller."""
        if page is not None:
            try:
                await page.close()
            except Exception as e:
                logger.debug("Error closing page: %s", e)
        try:
            await browser.close()
        except Exception as e:
            logger.debug("Error closing browser: %s", e)
