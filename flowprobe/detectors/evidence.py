"""Evidence capture for failed workflow steps."""

from __future__ import annotations

import logging

from playwright.async_api import Page

from flowprobe.core.screenshots import ScreenshotStore
from flowprobe.models.context import ErrorCollector, ErrorEvidence
from flowprobe.utils.sanitizer import redact_sensitive_url


logger = logging.getLogger("flowprobe.evidence")

RECENT_LIMIT = 5


def _safe_page_url(page: Page) -> str:
    try:
        return redact_sensitive_url(page.url)
    except Exception:
        return ""


async def capture_error_evidence(page: Page, collector: ErrorCollector, step_index: int,
                                 screenshots: ScreenshotStore | None = None) -> ErrorEvidence:
    """Snapshot screenshot, recent errors and URL. Never raises."""
    try:
        screenshot_ref = None
        if screenshots is not None:
            screenshot_ref = await screenshots.capture(page, f"error-step-{step_index}")

        return ErrorEvidence(
            screenshot_ref=screenshot_ref,
            console_errors=[e["message"] for e in collector.console_errors[-RECENT_LIMIT:]],
            network_failures=[
                {"url": f["url"], "status": f["status"]}
                for f in collector.network_failures[-RECENT_LIMIT:]
            ],
            page_url=_safe_page_url(page),
        )
    except Exception as e:
        logger.warning("Evidence capture failed for step %d: %s", step_index, str(e)[:200])
        return ErrorEvidence(page_url=_safe_page_url(page))
