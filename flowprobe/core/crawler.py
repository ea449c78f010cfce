"""Site discovery crawler.

Breadth-first traversal over same-hostname pages:
- Canonical URL normalization so each page is visited once
- Bounded parallelism: pages are processed in batches of max_concurrency
- Per-page failures are isolated; a failing page never aborts its batch
- Exclusion patterns are applied before a URL is fetched
- Transient failures are retried a bounded number of times
"""

from __future__ import annotations

import asyncio
import logging
import time
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from playwright.async_api import Page

from flowprobe.core.browser import BrowserManager
from flowprobe.models.discovery import (
    CrawlResult, FormInfo, InteractiveElement, LinkInfo, PageData, SPAFramework,
)
from flowprobe.models.graph import PageProcessor, ProgressCallback


logger = logging.getLogger("flowprobe.crawler")

DEFAULT_PORTS = {"http": 80, "https": 443}
UNLIMITED_WARNING_AT = 50


def normalize_url(url: str) -> str:
    """Canonical form of a URL.

    Strips the fragment, lowercases the hostname, drops the default port,
    sorts query parameters by key and strips a trailing slash (except root).
    """
    parsed = urlparse(url.strip())
    scheme = parsed.scheme.lower()
    hostname = (parsed.hostname or "").lower()
    if ":" in hostname:
        hostname = f"[{hostname}]"

    netloc = hostname
    try:
        port = parsed.port
    except ValueError:
        port = None
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{hostname}:{port}"
    if parsed.username:
        userinfo = parsed.username + (f":{parsed.password}" if parsed.password else "")
        netloc = f"{userinfo}@{netloc}"

    path = parsed.path or "/"
    if path != "/":
        path = path.rstrip("/") or "/"

    params = sorted(parse_qsl(parsed.query, keep_blank_values=True), key=lambda kv: kv[0])
    query = urlencode(params)

    return urlunparse((scheme, netloc, path, parsed.params, query, ""))


def should_exclude(url: str, patterns) -> bool:
    """Match url against exclusion patterns.

    "*x*" contains, "*x" ends with, "x*" starts with; anything else matches
    as an exact URL or a substring.
    """
    for pattern in patterns:
        if not pattern:
            continue
        if pattern.startswith("*") and pattern.endswith("*") and len(pattern) > 1:
            if pattern[1:-1] in url:
                return True
        elif pattern.startswith("*"):
            if url.endswith(pattern[1:]):
                return True
        elif pattern.endswith("*"):
            if url.startswith(pattern[:-1]):
                return True
        elif url == pattern or pattern in url:
            return True
    return False


_EXTRACT_LINKS_JS = """() => {
    const links = [];
    const seen = new Set();
    for (const a of document.querySelectorAll('a[href]')) {
        try {
            const url = new URL(a.getAttribute('href'), window.location.href);
            if (url.protocol !== 'http:' && url.protocol !== 'https:') continue;
            url.hash = '';
            if (seen.has(url.href)) continue;
            seen.add(url.href);
            links.push({ href: url.href, text: (a.textContent || '').trim().substring(0, 120) });
        } catch {}
    }
    return links;
}"""


class SiteCrawler:
    """BFS crawler that renders every same-hostname page in a real browser."""

    def __init__(
        self,
        browser: BrowserManager,
        base_url: str,
        max_pages: int = 0,
        max_concurrency: int = 3,
        exclude_patterns: list[str] | tuple[str, ...] = (),
        page_processor: PageProcessor | None = None,
        max_retries: int = 1,
        on_progress: ProgressCallback | None = None,
    ):
        self.browser = browser
        self.base_url = base_url
        self.hostname = (urlparse(base_url).hostname or "").lower()
        self.max_pages = max_pages
        self.max_concurrency = max(1, max_concurrency)
        self.exclude_patterns = list(exclude_patterns)
        self.page_processor = page_processor
        self.max_retries = max(0, max_retries)
        self._on_progress = on_progress

        self.visited: set[str] = set()
        self.queue: list[str] = []
        self._queued: set[str] = set()
        self._failures: dict[str, int] = {}
        self._lock = asyncio.Lock()
        self._pages: list[PageData] = []
        self._visits = 0
        self._warnings: list[str] = []
        self._warned_unlimited = False

    async def crawl(self, additional_seed_urls=()) -> CrawlResult:
        """Crawl from base_url plus any same-hostname additional seeds."""
        start = time.monotonic()

        for seed in [self.base_url, *additional_seed_urls]:
            if self._is_internal(seed):
                self._enqueue(seed)

        while self.queue and not self._limit_reached():
            batch = await self._take_batch()
            if not batch:
                break
            results = await asyncio.gather(
                *(self._crawl_page(url) for url in batch),
                return_exceptions=True,
            )
            for url, outcome in zip(batch, results):
                if isinstance(outcome, BaseException):
                    logger.warning("Unexpected crawl error on %s: %s", url, str(outcome)[:300])

        return CrawlResult(
            pages=list(self._pages),
            total_pages_discovered=len(self.visited) + len(self.queue),
            crawl_duration=int((time.monotonic() - start) * 1000),
            warnings=list(self._warnings),
        )

    def _limit_reached(self) -> bool:
        return self.max_pages > 0 and len(self.visited) >= self.max_pages

    async def _take_batch(self) -> list[str]:
        """Pop up to max_concurrency URLs and mark them visited before fetching."""
        async with self._lock:
            batch: list[str] = []
            while self.queue and len(batch) < self.max_concurrency and not self._limit_reached():
                url = self.queue.pop(0)
                key = normalize_url(url)
                self._queued.discard(key)
                if key in self.visited:
                    continue
                self.visited.add(key)
                batch.append(url)
            return batch

    def _enqueue(self, url: str) -> bool:
        key = normalize_url(url)
        if key in self.visited or key in self._queued:
            return False
        if should_exclude(url, self.exclude_patterns):
            logger.debug("Excluded %s", url)
            return False
        self.queue.append(url)
        self._queued.add(key)
        return True

    def _is_internal(self, url: str) -> bool:
        parsed = urlparse(url)
        return parsed.scheme in ("http", "https") and (parsed.hostname or "").lower() == self.hostname

    async def _crawl_page(self, url: str):
        async with self._lock:
            self._visits += 1
            visit = self._visits
            discovered = len(self.visited) + len(self.queue)
        self._emit("visiting_page", {
            "url": url,
            "page_number": visit,
            "total_discovered": discovered,
        })

        page: Page | None = None
        try:
            page = await self.browser.new_page(url)
            title = await page.title()
            raw_links = await page.evaluate(_EXTRACT_LINKS_JS)
            links = [
                LinkInfo(href=link["href"], text=link.get("text", ""),
                         is_internal=self._is_internal(link["href"]))
                for link in raw_links
            ]
            extra = await self.page_processor(page, url) if self.page_processor else {}
            page_data = _build_page_data(url, title, links, extra or {})
        except Exception as e:
            await self._record_failure(url, e)
            return
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception:
                    pass

        async with self._lock:
            self._pages.append(page_data)
            added = 0
            for link in page_data.links:
                if link.is_internal and self._enqueue(urljoin(url, link.href)):
                    added += 1
            crawled = len(self._pages)

        if self.max_pages == 0 and crawled >= UNLIMITED_WARNING_AT and not self._warned_unlimited:
            self._warned_unlimited = True
            message = f"Crawled {crawled} pages with no page limit; consider setting max_pages"
            logger.warning(message)
            self._warnings.append(message)

        self._emit("page_crawled", {
            "url": url,
            "title": page_data.title,
            "page_number": crawled,
            "links": len(page_data.links),
            "new_links": added,
        })

    async def _record_failure(self, url: str, error: Exception):
        """Log the failure and re-queue the URL while it has retries left."""
        key = normalize_url(url)
        message = str(error)[:300]
        async with self._lock:
            count = self._failures.get(key, 0) + 1
            self._failures[key] = count
            retry = count <= self.max_retries
            if retry:
                self.visited.discard(key)
                self._enqueue(url)
            else:
                self._warnings.append(f"Failed to crawl {url}: {message}")

        logger.warning("Failed to crawl %s (attempt %d): %s", url, count, message)
        self._emit("page_failed", {"url": url, "error": message, "will_retry": retry})

    def _emit(self, event_type: str, data: dict):
        if self._on_progress:
            try:
                self._on_progress(event_type, data)
            except Exception:
                pass


def _build_page_data(url: str, title: str, links: list[LinkInfo], extra: dict) -> PageData:
    """Merge the crawler's own findings with the page processor's partial result."""
    processor_links = extra.get("links")
    spa = extra.get("spa_framework")
    return PageData(
        url=url,
        title=title or "",
        forms=tuple(_as_list(extra.get("forms"), FormInfo)),
        buttons=tuple(_as_list(extra.get("buttons"), InteractiveElement)),
        links=tuple(processor_links) if processor_links else tuple(links),
        menus=tuple(_as_list(extra.get("menus"), InteractiveElement)),
        other_interactive=tuple(_as_list(extra.get("other_interactive"), InteractiveElement)),
        screenshot_ref=extra.get("screenshot_ref"),
        spa_framework=spa if isinstance(spa, SPAFramework) else None,
    )


def _as_list(value, kind) -> list:
    if not value:
        return []
    return [v for v in value if isinstance(v, kind)]
