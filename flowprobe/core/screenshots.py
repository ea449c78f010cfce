"""In-memory screenshot store with content-hash deduplication.

Screenshots are kept as base64 JPEG strings. Capturing a page whose pixels
match an earlier capture returns the existing reference instead of storing
a second copy.
"""

from __future__ import annotations

import base64
import hashlib
import logging

from playwright.async_api import Page

from flowprobe.models.types import ScreenshotRef


logger = logging.getLogger("flowprobe.screenshots")


class ScreenshotStore:

    def __init__(self, quality: int = 60, full_page: bool = False):
        self.quality = quality
        self.full_page = full_page
        self._by_hash: dict[str, ScreenshotRef] = {}

    def __len__(self) -> int:
        return len(self._by_hash)

    def add(self, name: str, data: bytes) -> ScreenshotRef:
        content_hash = hashlib.sha256(data).hexdigest()
        existing = self._by_hash.get(content_hash)
        if existing is not None:
            return existing
        ref = ScreenshotRef(
            name=name,
            content_hash=content_hash,
            data_b64=base64.b64encode(data).decode(),
        )
        self._by_hash[content_hash] = ref
        return ref

    async def capture(self, page: Page, name: str) -> ScreenshotRef | None:
        """Screenshot the page. Returns None if the capture itself fails."""
        try:
            data = await page.screenshot(type="jpeg", quality=self.quality, full_page=self.full_page)
        except Exception as e:
            logger.debug("Screenshot %s failed: %s", name, str(e)[:200])
            return None
        return self.add(name, data)

    def all(self) -> dict[str, str]:
        """Map content hash -> base64 data, for report embedding."""
        return {h: ref.data_b64 for h, ref in self._by_hash.items()}
