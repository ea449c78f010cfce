"""Passive error detection: console errors, failed responses, broken images.

Listeners are attached for the lifetime of a page and write into an
ErrorCollector. All captured text is redacted before it is stored.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Callable

from playwright.async_api import ConsoleMessage, Page, Response

from flowprobe.models.context import ErrorCollector
from flowprobe.models.discovery import utc_now_iso
from flowprobe.utils.sanitizer import redact_sensitive_data, redact_sensitive_url


logger = logging.getLogger("flowprobe.errors")

# Framework-internal image optimizer retries; not user-visible defects.
NOISE_PATTERNS = [re.compile(r"/_next/image")]

IMAGE_URL_PATTERN = re.compile(r"\.(jpg|jpeg|png|gif|svg|webp|ico|avif)(\?|$)", re.I)

_FIND_IMAGE_JS = """(url) => {
    const target = new URL(url, location.href).href;
    for (const img of document.querySelectorAll('img')) {
        const src = img.getAttribute('src');
        if (!src) continue;
        let resolved = '';
        try { resolved = new URL(src, location.href).href; } catch { continue; }
        if (resolved !== target && img.currentSrc !== target) continue;
        if (img.id) return 'img#' + CSS.escape(img.id);
        const cls = (img.getAttribute('class') || '').trim().split(/\\s+/)[0];
        if (cls) return 'img.' + CSS.escape(cls);
        return `img[src="${src.replace(/"/g, '\\\\"')}"]`;
    }
    return null;
}"""


def is_noise(text: str) -> bool:
    return any(p.search(text) for p in NOISE_PATTERNS)


class ErrorDetector:
    """Owns the listeners for one page and the collector they fill."""

    def __init__(self, page: Page):
        self.page = page
        self.collector = ErrorCollector()
        self._pending: set[asyncio.Task] = set()
        self._attached = False

    def attach(self):
        if self._attached:
            return
        self.page.on("console", self._on_console)
        self.page.on("pageerror", self._on_page_error)
        self.page.on("response", self._on_response)
        self._attached = True

    async def detach(self):
        """Remove listeners and settle any in-flight broken-image checks."""
        if self._attached:
            for event, handler in (("console", self._on_console),
                                   ("pageerror", self._on_page_error),
                                   ("response", self._on_response)):
                try:
                    self.page.remove_listener(event, handler)
                except Exception:
                    pass
            self._attached = False
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
            self._pending.clear()

    def _page_url(self) -> str:
        try:
            return self.page.url
        except Exception:
            return ""

    def _on_console(self, msg: ConsoleMessage):
        if msg.type != "error":
            return
        text = msg.text
        if is_noise(text):
            return
        self.collector.console_errors.append({
            "message": redact_sensitive_data(text[:1000]),
            "url": redact_sensitive_url(self._page_url()),
            "timestamp": utc_now_iso(),
        })

    def _on_page_error(self, error):
        name = getattr(error, "name", None) or "Error"
        message = getattr(error, "message", None) or str(error)
        self.collector.console_errors.append({
            "message": redact_sensitive_data(f"Uncaught {name}: {message}"[:1000]),
            "url": redact_sensitive_url(self._page_url()),
            "timestamp": utc_now_iso(),
        })

    def _on_response(self, response: Response):
        status = response.status
        if status < 400:
            return
        url = response.url
        if is_noise(url):
            return

        request = response.request
        resource_type = request.resource_type
        self.collector.network_failures.append({
            "url": redact_sensitive_url(url),
            "status": status,
            "method": request.method,
            "resourceType": resource_type,
            "pageUrl": redact_sensitive_url(self._page_url()),
        })

        if resource_type == "image" or IMAGE_URL_PATTERN.search(url):
            try:
                task = asyncio.get_running_loop().create_task(self._record_broken_image(url, status))
            except RuntimeError:
                return
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _record_broken_image(self, url: str, status: int):
        """Only report the image if an <img> for it is still in the DOM."""
        try:
            selector = await self.page.evaluate(_FIND_IMAGE_JS, url)
        except Exception:
            return
        if not selector:
            logger.debug("Ignoring phantom image failure %s", url[:200])
            return
        self.collector.broken_images.append({
            "url": redact_sensitive_url(url),
            "selector": selector,
            "status": status,
            "pageUrl": redact_sensitive_url(self._page_url()),
        })


def attach_error_listeners(page: Page) -> tuple[ErrorCollector, Callable[[], Awaitable[None]]]:
    """Start collecting errors on a page. Returns the collector and an async detach()."""
    detector = ErrorDetector(page)
    detector.attach()
    return detector.collector, detector.detach
