"""Page load metrics: Largest Contentful Paint, DOMContentLoaded, total load."""

from __future__ import annotations

from playwright.async_api import Page

from flowprobe.models.types import PerformanceMetrics


LCP_SETTLE_MS = 3000

_METRICS_JS = """(settleMs) => new Promise((resolve) => {
    const nav = performance.getEntriesByType('navigation')[0];
    const timing = {
        domContentLoaded: nav ? Math.round(nav.domContentLoadedEventEnd - nav.startTime) : 0,
        totalLoadTime: nav ? Math.round((nav.loadEventEnd || nav.duration) - nav.startTime) : 0,
    };
    let lcp = 0;
    try {
        const observer = new PerformanceObserver((list) => {
            for (const entry of list.getEntries()) {
                lcp = Math.max(lcp, entry.renderTime || entry.loadTime || entry.startTime);
            }
        });
        observer.observe({ type: 'largest-contentful-paint', buffered: true });
        setTimeout(() => {
            observer.disconnect();
            resolve({ ...timing, lcp: Math.round(lcp) });
        }, settleMs);
    } catch {
        resolve({ ...timing, lcp: 0 });
    }
})"""


async def collect_performance(page: Page, settle_ms: int = LCP_SETTLE_MS) -> PerformanceMetrics:
    """Collect metrics from the current page. Zeros on failure."""
    url = page.url
    try:
        timing = await page.evaluate(_METRICS_JS, settle_ms)
    except Exception:
        return PerformanceMetrics(url=url)

    if not timing:
        return PerformanceMetrics(url=url)

    return PerformanceMetrics(
        url=url,
        lcp=max(0, int(timing.get("lcp", 0) or 0)),
        dom_content_loaded=max(0, int(timing.get("domContentLoaded", 0) or 0)),
        total_load_time=max(0, int(timing.get("totalLoadTime", 0) or 0)),
    )
