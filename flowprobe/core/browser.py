"""Browser session lifecycle.

One browser and one context per run. Pages are created per unit of work
and closed by the caller; the browser itself is closed exactly once.
"""

from __future__ import annotations

import logging

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from flowprobe.errors import BrowserLaunchError
from flowprobe.utils.smart_wait import wait_for_network_idle


logger = logging.getLogger("flowprobe.browser")

NAV_TIMEOUT_MS = 30000
NETWORK_IDLE_SOFT_MS = 5000

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class BrowserManager:

    def __init__(self, headless: bool = True, viewport: dict | None = None,
                 user_agent: str = DEFAULT_USER_AGENT):
        self.headless = headless
        self.viewport = viewport or {"width": 1280, "height": 720}
        self.user_agent = user_agent
        self._pw: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    @property
    def is_open(self) -> bool:
        return self._context is not None

    async def launch(self):
        if self._context is not None:
            return
        try:
            self._pw = await async_playwright().start()
            self._browser = await self._pw.chromium.launch(headless=self.headless)
            self._context = await self._browser.new_context(
                viewport=self.viewport,
                user_agent=self.user_agent,
            )
        except Exception as e:
            await self.close()
            raise BrowserLaunchError(f"Could not launch browser: {str(e)[:300]}") from e
        logger.debug("Browser launched (headless=%s)", self.headless)

    async def new_page(self, url: str | None = None) -> Page:
        """Open a page, optionally navigating to url.

        DOM-ready is the hard gate; network idle is a soft 5s wait.
        """
        if self._context is None:
            raise BrowserLaunchError("Browser not launched")
        page = await self._context.new_page()
        if url:
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)
            except Exception:
                await page.close()
                raise
            await wait_for_network_idle(page, NETWORK_IDLE_SOFT_MS)
        return page

    async def close(self):
        """Close everything. Safe to call more than once."""
        context, browser, pw = self._context, self._browser, self._pw
        self._context = self._browser = self._pw = None
        for closer in (context, browser):
            if closer is None:
                continue
            try:
                await closer.close()
            except Exception as e:
                logger.debug("Error while closing browser: %s", str(e)[:200])
        if pw is not None:
            try:
                await pw.stop()
            except Exception as e:
                logger.debug("Error while stopping playwright: %s", str(e)[:200])

    async def __aenter__(self) -> BrowserManager:
        await self.launch()
        return self

    async def __aexit__(self, *exc):
        await self.close()
