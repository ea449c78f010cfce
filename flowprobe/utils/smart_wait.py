"""Soft waits.

Every wait here is bounded and non-fatal: timing out simply means the
caller proceeds with whatever state the page is in.
"""

from __future__ import annotations

from playwright.async_api import Page


ROUTE_BUFFER = "__flowprobe_routes"


async def wait_for_network_idle(page: Page, timeout_ms: int = 5000) -> bool:
    """Wait for network idle. Returns False on timeout, which is expected on busy sites."""
    try:
        await page.wait_for_load_state("networkidle", timeout=timeout_ms)
        return True
    except Exception:
        return False


async def wait_for_dom_ready(page: Page, timeout_ms: int = 3000) -> bool:
    try:
        await page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
        return True
    except Exception:
        return False


async def wait_for_navigation_or_route_change(page: Page, start_url: str,
                                              start_routes: int, timeout_ms: int = 3000) -> bool:
    """Wait until the URL changes or the history hook records a new route."""
    try:
        await page.wait_for_function(
            """([startUrl, startRoutes, buffer]) => {
                const routes = window[buffer] || [];
                return window.location.href !== startUrl || routes.length > startRoutes;
            }""",
            arg=[start_url, start_routes, ROUTE_BUFFER],
            timeout=timeout_ms,
        )
        return True
    except Exception:
        return await wait_for_dom_ready(page, timeout_ms)
