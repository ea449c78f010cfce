"""Discovery data structures.

PageData, LinkInfo, BrokenLink and friends describe what the crawler
found on a site. SitemapNode arranges the crawled pages into a path tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


SPA_FRAMEWORKS = ("react", "vue", "angular", "next", "svelte", "nuxt", "none")


@dataclass
class FormField:
    """One input, textarea or select inside a form."""

    type: str
    name: str
    label: str = ""
    required: bool = False
    placeholder: str = ""
    disabled: bool = False
    read_only: bool = False
    hidden: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> FormField:
        return cls(
            type=data.get("type", "text"),
            name=data.get("name", ""),
            label=data.get("label", ""),
            required=bool(data.get("required", False)),
            placeholder=data.get("placeholder", ""),
            disabled=bool(data.get("disabled", False)),
            read_only=bool(data.get("readOnly", False)),
            hidden=bool(data.get("hidden", False)),
        )

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "name": self.name,
            "label": self.label,
            "required": self.required,
            "placeholder": self.placeholder,
            "disabled": self.disabled,
            "readOnly": self.read_only,
            "hidden": self.hidden,
        }


@dataclass
class FormInfo:
    action: str
    method: str
    selector: str
    fields: list[FormField] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "method": self.method,
            "selector": self.selector,
            "fields": [f.to_dict() for f in self.fields],
        }


@dataclass
class InteractiveElement:
    """Any clickable element: button, menu, tab, modal trigger."""

    type: str          # button | link | input | select | menu | tab | modal-trigger
    selector: str
    text: str
    visible: bool = True
    attributes: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "selector": self.selector,
            "text": self.text,
            "visible": self.visible,
            "attributes": self.attributes,
        }


@dataclass
class LinkInfo:
    href: str
    text: str = ""
    is_internal: bool = True
    status_code: int | None = None

    def to_dict(self) -> dict:
        d = {"href": self.href, "text": self.text, "isInternal": self.is_internal}
        if self.status_code is not None:
            d["statusCode"] = self.status_code
        return d


@dataclass
class SPAFramework:
    framework: str = "none"   # react | vue | angular | next | svelte | nuxt | none
    version: str | None = None
    router: str | None = None

    @property
    def detected(self) -> bool:
        return self.framework != "none"

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"framework": self.framework}
        if self.version:
            d["version"] = self.version
        if self.router:
            d["router"] = self.router
        return d


@dataclass(frozen=True)
class PageData:
    """Everything discovered about a single crawled page. Immutable."""

    url: str
    title: str = ""
    forms: tuple[FormInfo, ...] = ()
    buttons: tuple[InteractiveElement, ...] = ()
    links: tuple[LinkInfo, ...] = ()
    menus: tuple[InteractiveElement, ...] = ()
    other_interactive: tuple[InteractiveElement, ...] = ()
    screenshot_ref: Any = None
    spa_framework: SPAFramework | None = None
    crawled_at: str = field(default_factory=utc_now_iso)

    @property
    def element_count(self) -> int:
        return (len(self.forms) + len(self.buttons) + len(self.links)
                + len(self.menus) + len(self.other_interactive))

    def to_dict(self) -> dict:
        d = {
            "url": self.url,
            "title": self.title,
            "forms": [f.to_dict() for f in self.forms],
            "buttons": [b.to_dict() for b in self.buttons],
            "links": [link.to_dict() for link in self.links],
            "menus": [m.to_dict() for m in self.menus],
            "otherInteractive": [o.to_dict() for o in self.other_interactive],
            "crawledAt": self.crawled_at,
        }
        if self.screenshot_ref is not None:
            d["screenshotRef"] = self.screenshot_ref.to_dict()
        if self.spa_framework is not None:
            d["spaFramework"] = self.spa_framework.to_dict()
        return d


@dataclass
class BrokenLink:
    """A link that failed validation. status_code 0 means network or security rejection."""

    url: str
    source_url: str
    status_code: int
    status_text: str

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "sourceUrl": self.source_url,
            "statusCode": self.status_code,
            "statusText": self.status_text,
        }


@dataclass
class CrawlResult:
    pages: list[PageData] = field(default_factory=list)
    broken_links: list[BrokenLink] = field(default_factory=list)
    total_pages_discovered: int = 0
    total_links_checked: int = 0
    crawl_duration: int = 0   # ms
    spa_detected: SPAFramework = field(default_factory=SPAFramework)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "pages": [p.to_dict() for p in self.pages],
            "brokenLinks": [b.to_dict() for b in self.broken_links],
            "totalPagesDiscovered": self.total_pages_discovered,
            "totalLinksChecked": self.total_links_checked,
            "crawlDuration": self.crawl_duration,
            "spaDetected": self.spa_detected.to_dict(),
            "warnings": self.warnings,
        }


@dataclass
class SitemapNode:
    """A node in the path-hierarchical sitemap tree."""

    url: str
    title: str
    path: str
    depth: int
    page_data: PageData
    children: list[SitemapNode] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "title": self.title,
            "path": self.path,
            "depth": self.depth,
            "pageData": self.page_data.to_dict(),
            "children": [c.to_dict() for c in self.children],
        }
