"""Link validation with SSRF protection.

Checks the HTTP status of a page's internal links. Link budgets are kept
in a caller-owned LinkValidationState so separate scans never share caps.
Every request target, and every post-redirect destination, must resolve to
a public address; anything else is reported as a broken link with status 0.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

from playwright.async_api import Page

from flowprobe.errors import SSRFError
from flowprobe.models.discovery import BrokenLink, LinkInfo
from flowprobe.utils.network import ensure_public_url


logger = logging.getLogger("flowprobe.link_validator")

MAX_LINKS_PER_PAGE = 50
MAX_TOTAL_LINKS = 500
BATCH_SIZE = 10
REQUEST_TIMEOUT_MS = 5000

SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")


@dataclass
class LinkValidationState:
    """Link-check budget for one scan."""

    checked_count: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return max(0, MAX_TOTAL_LINKS - self.checked_count)

    def warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)


def link_key(href: str) -> str:
    """Dedup key: origin + path without trailing slash + query."""
    parsed = urlparse(href)
    origin = f"{parsed.scheme}://{parsed.netloc}".lower()
    path = parsed.path.rstrip("/")
    return origin + path + (f"?{parsed.query}" if parsed.query else "")


def _is_checkable(href: str) -> bool:
    lowered = href.strip().lower()
    if not lowered or lowered.startswith("#"):
        return False
    if lowered.startswith(SKIPPED_SCHEMES):
        return False
    return True


def select_links(links: list[LinkInfo], base_url: str) -> list[str]:
    """Internal, HTTP(S), de-duplicated absolute hrefs, in page order."""
    seen: set[str] = set()
    selected: list[str] = []
    for link in links:
        if not link.is_internal or not _is_checkable(link.href):
            continue
        href = urljoin(base_url, link.href) if base_url else link.href
        if urlparse(href).scheme not in ("http", "https"):
            continue
        key = link_key(href)
        if key in seen:
            continue
        seen.add(key)
        selected.append(href)
    return selected


async def validate_links(links: list[LinkInfo], page: Page, state: LinkValidationState,
                         source_url: str | None = None) -> list[BrokenLink]:
    """Check links and return the broken ones."""
    if source_url is None:
        source_url = page.url

    candidates = select_links(links, source_url)
    if not candidates:
        return []

    if len(candidates) > MAX_LINKS_PER_PAGE:
        state.warn(
            f"Per-page link cap reached on {source_url}: checking {MAX_LINKS_PER_PAGE} "
            f"of {len(candidates)} links, {len(candidates) - MAX_LINKS_PER_PAGE} skipped"
        )
        candidates = candidates[:MAX_LINKS_PER_PAGE]

    if state.remaining == 0:
        state.warn(
            f"Session link cap of {MAX_TOTAL_LINKS} reached: skipped {len(candidates)} "
            f"links on {source_url}"
        )
        return []
    if len(candidates) > state.remaining:
        state.warn(
            f"Session link cap of {MAX_TOTAL_LINKS} reached on {source_url}: "
            f"skipped {len(candidates) - state.remaining} links"
        )
        candidates = candidates[:state.remaining]

    state.checked_count += len(candidates)

    dns_cache: dict[str, str | None] = {}
    broken: list[BrokenLink] = []
    for i in range(0, len(candidates), BATCH_SIZE):
        batch = candidates[i:i + BATCH_SIZE]
        results = await asyncio.gather(
            *(check_link(page, href, source_url, dns_cache) for href in batch),
            return_exceptions=True,
        )
        for href, result in zip(batch, results):
            if isinstance(result, BaseException):
                broken.append(BrokenLink(href, source_url, 0, str(result)[:300]))
            elif result is not None:
                broken.append(result)
    return broken


async def check_link(page: Page, href: str, source_url: str,
                     dns_cache: dict[str, str | None] | None = None) -> BrokenLink | None:
    """Check a single link. Returns a BrokenLink, or None if it is fine."""
    try:
        await ensure_public_url(href, dns_cache)
    except SSRFError as e:
        return BrokenLink(href, source_url, 0, str(e)[:300])

    try:
        response = await page.request.get(href, timeout=REQUEST_TIMEOUT_MS)
    except Exception as e:
        return BrokenLink(href, source_url, 0, str(e)[:300])

    final_url = response.url
    if final_url and final_url != href:
        try:
            await ensure_public_url(final_url, dns_cache)
        except SSRFError:
            return BrokenLink(href, source_url, 0,
                              "SSRF protection: Redirect destination failed validation")

    if response.status >= 400:
        return BrokenLink(href, source_url, response.status, response.status_text or "")
    return None
