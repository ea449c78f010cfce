"""End-to-end probe: discover, crawl, plan, execute, score.

SPA route discovery seeds the crawler; the crawler's page processor
inventories elements, checks links and takes a screenshot of every page;
the sitemap goes to an external planner; the executor runs the plans; the
artifact is scored and its issues prioritized and de-duplicated.

A run always completes with a best-effort result. Only a browser that
cannot be launched or an invalid configuration is fatal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from playwright.async_api import Page

from flowprobe.config import ScanConfig
from flowprobe.core.browser import BrowserManager
from flowprobe.core.crawler import SiteCrawler
from flowprobe.core.elements import discover_elements
from flowprobe.core.flow_runner import WorkflowExecutor, recalculate_execution_summary
from flowprobe.core.link_validator import LinkValidationState, validate_links
from flowprobe.core.screenshots import ScreenshotStore
from flowprobe.core.scoring import calculate_health_score, deduplicate_issues, prioritize_issues
from flowprobe.core.sitemap import build_sitemap
from flowprobe.core.spa_detector import discover_spa_routes
from flowprobe.models.discovery import BrokenLink, CrawlResult, SitemapNode, SPAFramework
from flowprobe.models.flow import WorkflowPlan
from flowprobe.models.graph import ProgressCallback
from flowprobe.models.types import ExecutionArtifact, HealthScore, PrioritizedIssue


logger = logging.getLogger("flowprobe.pipeline")


class WorkflowPlanner(Protocol):
    async def generate_plans(self, sitemap: SitemapNode, hints: list[str]) -> list[WorkflowPlan]:
        ...


class StaticPlanner:
    """Planner that returns a fixed list of plans, e.g. loaded from a JSON file."""

    def __init__(self, plans: list[WorkflowPlan]):
        self.plans = list(plans)

    @classmethod
    def from_dicts(cls, data: list[dict]) -> StaticPlanner:
        return cls([WorkflowPlan.from_dict(d) for d in data])

    async def generate_plans(self, sitemap: SitemapNode, hints: list[str]) -> list[WorkflowPlan]:
        return list(self.plans)


@dataclass
class ProbeResult:
    crawl: CrawlResult
    sitemap: SitemapNode
    plans: list[WorkflowPlan]
    artifact: ExecutionArtifact
    health: HealthScore
    issues: list[PrioritizedIssue] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "crawl": self.crawl.to_dict(),
            "plans": [p.to_dict() for p in self.plans],
            "artifact": self.artifact.to_dict(),
            "health": self.health.to_dict(),
            "issues": [i.to_dict() for i in self.issues],
        }


async def resolve_workflow_plans(planner: WorkflowPlanner | None, sitemap: SitemapNode,
                                 hints: list[str]) -> list[WorkflowPlan]:
    """Ask the planner for plans. Planning is best-effort: any failure yields []."""
    if planner is None:
        return []
    try:
        plans = await planner.generate_plans(sitemap, hints)
    except Exception as e:
        logger.warning("Workflow planning failed, continuing without plans: %s", str(e)[:300])
        return []
    return [p for p in (plans or []) if isinstance(p, WorkflowPlan)]


def merge_discovery_broken_links(artifact: ExecutionArtifact,
                                 broken_links: list[BrokenLink]) -> ExecutionArtifact:
    """Add crawl-time broken links to the artifact, once per (url, source, status)."""
    seen = {(b.url, b.source_url, b.status_code) for b in artifact.broken_links}
    for link in broken_links:
        key = (link.url, link.source_url, link.status_code)
        if key in seen:
            continue
        seen.add(key)
        artifact.broken_links.append(link)
    return artifact


class FlowProbe:
    """Runs the whole probe against one site."""

    def __init__(self, config: ScanConfig, planner: WorkflowPlanner | None = None,
                 on_progress: ProgressCallback | None = None):
        self.config = config
        self.planner = planner
        self._on_progress = on_progress
        self.screenshots = ScreenshotStore()
        self.link_state = LinkValidationState()
        self._broken_links: list[BrokenLink] = []

    async def run(self) -> ProbeResult:
        browser = BrowserManager(
            headless=self.config.headless,
            viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
        )
        await browser.launch()
        try:
            crawl = await self._discover(browser)
            sitemap = build_sitemap(crawl.pages, self.config.url)

            self._emit("planning_started", {"pages": len(crawl.pages)})
            plans = await resolve_workflow_plans(self.planner, sitemap, self.config.hints)
            self._emit("plans_ready", {"count": len(plans), "workflows": [p.workflow_name for p in plans]})

            executor = WorkflowExecutor(
                browser,
                self.config.url,
                credentials=self.config.credentials,
                screenshots=self.screenshots,
                on_progress=self._on_progress,
                session_id=self.config.session_id,
            )
            artifact = await executor.execute(plans)
        finally:
            await browser.close()

        merge_discovery_broken_links(artifact, crawl.broken_links)
        recalculate_execution_summary(artifact)

        health = calculate_health_score(artifact)
        issues = deduplicate_issues(prioritize_issues(artifact))
        self._emit("probe_complete", {
            "pages": len(crawl.pages),
            "workflows": len(artifact.workflow_results),
            "issues": len(issues),
            "score": health.overall,
        })
        return ProbeResult(crawl=crawl, sitemap=sitemap, plans=plans, artifact=artifact,
                           health=health, issues=issues)

    async def _discover(self, browser: BrowserManager) -> CrawlResult:
        framework, routes = SPAFramework(), []
        if self.config.discover_spa_routes:
            framework, routes = await self._discover_routes(browser)

        crawler = SiteCrawler(
            browser,
            self.config.url,
            max_pages=self.config.max_pages,
            max_concurrency=self.config.max_concurrency,
            exclude_patterns=self.config.exclude_patterns,
            page_processor=self._process_page,
            max_retries=self.config.max_page_retries,
            on_progress=self._on_progress,
        )
        crawl = await crawler.crawl(additional_seed_urls=routes)
        crawl.spa_detected = framework
        crawl.broken_links = list(self._broken_links)
        crawl.total_links_checked = self.link_state.checked_count
        crawl.warnings.extend(self.link_state.warnings)
        return crawl

    async def _discover_routes(self, browser: BrowserManager) -> tuple[SPAFramework, list[str]]:
        try:
            page = await browser.new_page(self.config.url)
        except Exception as e:
            logger.warning("SPA route discovery skipped: %s", str(e)[:300])
            return SPAFramework(), []
        try:
            framework, routes = await discover_spa_routes(page, self.config.url)
        except Exception as e:
            logger.warning("SPA route discovery failed: %s", str(e)[:300])
            return SPAFramework(), []
        finally:
            try:
                await page.close()
            except Exception:
                pass
        if framework.detected:
            self._emit("spa_detected", {"framework": framework.framework, "routes": len(routes)})
        return framework, routes

    async def _process_page(self, page: Page, url: str) -> dict:
        extra = await discover_elements(page, url)
        self._emit("elements_found", {
            "url": url,
            "forms": len(extra["forms"]),
            "buttons": len(extra["buttons"]),
            "links": len(extra["links"]),
        })
        broken = await validate_links(extra["links"], page, self.link_state, source_url=url)
        self._broken_links.extend(broken)
        for link in broken:
            self._emit("broken_link", {"url": link.url, "status": link.status_code, "source": url})
        extra["screenshot_ref"] = await self.screenshots.capture(page, f"page {url}")
        return extra

    def _emit(self, event_type: str, data: dict):
        if self._on_progress:
            try:
                self._on_progress(event_type, data)
            except Exception:
                pass


async def run_probe(config: ScanConfig, planner: WorkflowPlanner | None = None,
                    on_progress: ProgressCallback | None = None) -> ProbeResult:
    return await FlowProbe(config, planner, on_progress).run()
