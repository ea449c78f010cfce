"""Hand-written fakes for the parts of the Playwright Page API flowprobe uses."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest


DOM_SIZE_MARKER = "getElementsByTagName('*')"


@dataclass
class FakeAPIResponse:
    url: str
    status: int = 200
    status_text: str = "OK"


class FakeRequestContext:
    """page.request: maps href -> FakeAPIResponse or an exception to raise."""

    def __init__(self, responses: dict | None = None):
        self.responses = responses or {}
        self.calls: list[str] = []

    async def get(self, href: str, timeout: int | None = None):
        self.calls.append(href)
        outcome = self.responses.get(href)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return FakeAPIResponse(url=href)
        return outcome


class FakeKeyboard:
    def __init__(self):
        self.pressed: list[str] = []

    async def press(self, key: str):
        self.pressed.append(key)


class FakeLocator:
    def __init__(self, page: FakePage, selector: str):
        self.page = page
        self.selector = selector

    @property
    def first(self) -> FakeLocator:
        return self

    async def count(self) -> int:
        return self.page.locator_counts.get(self.selector, 0)

    async def is_visible(self, timeout: int | None = None) -> bool:
        return False

    async def click(self, timeout: int | None = None):
        await self.page.click(self.selector, timeout=timeout)

    async def fill(self, value: str, timeout: int | None = None):
        await self.page.fill(self.selector, value, timeout=timeout)

    async def evaluate(self, expression: str, arg=None, timeout: int | None = None):
        return self.page.locator_evaluations.get(self.selector)

    async def all(self) -> list:
        return []


@dataclass
class FakeConsoleMessage:
    type: str
    text: str


@dataclass
class FakeRequest:
    url: str = ""
    resource_type: str = "fetch"
    method: str = "GET"


@dataclass
class FakeResponse:
    url: str
    status: int
    request: FakeRequest = field(default_factory=FakeRequest)


@dataclass
class FakePageError:
    name: str
    message: str


class FakePage:
    """Scriptable page.

    `scripted` maps a substring of an evaluated expression to a value (or a
    callable taking the argument). `on_click` maps a selector to a callable
    run against the page when it is clicked.
    """

    def __init__(self, url: str = "about:blank", title: str = "", dom_size: int = 100):
        self.url = url
        self._title = title
        self.dom_size = dom_size
        self.scripted: dict = {}
        self.on_click: dict = {}
        self.fail_selectors: dict[str, str] = {}
        self.locator_counts: dict[str, int] = {}
        self.locator_evaluations: dict = {}
        self.visible: set[str] = set()
        self.handlers: dict[str, list] = {}
        self.request = FakeRequestContext()
        self.keyboard = FakeKeyboard()
        self.gotos: list[str] = []
        self.clicks: list[str] = []
        self.fills: list[tuple[str, str]] = []
        self.closed = False
        self.screenshot_error: Exception | None = None

    def on(self, event: str, handler):
        self.handlers.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler):
        if handler in self.handlers.get(event, []):
            self.handlers[event].remove(handler)

    def emit(self, event: str, payload):
        for handler in list(self.handlers.get(event, [])):
            handler(payload)

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    async def evaluate(self, expression: str, arg=None):
        if DOM_SIZE_MARKER in expression:
            return self.dom_size
        for marker, result in self.scripted.items():
            if marker in expression:
                return result(arg) if callable(result) else result
        return None

    async def goto(self, url: str, wait_until: str | None = None, timeout: int | None = None):
        self.gotos.append(url)
        self.url = url

    async def go_back(self, timeout: int | None = None):
        return None

    async def click(self, selector: str, timeout: int | None = None):
        if selector in self.fail_selectors:
            raise TimeoutError(self.fail_selectors[selector])
        self.clicks.append(selector)
        action = self.on_click.get(selector)
        if action is not None:
            action(self)

    async def fill(self, selector: str, value: str, timeout: int | None = None):
        if selector in self.fail_selectors:
            raise TimeoutError(self.fail_selectors[selector])
        self.fills.append((selector, value))

    async def select_option(self, selector: str, value=None, timeout: int | None = None):
        self.fills.append((selector, value))

    async def wait_for_selector(self, selector: str, timeout: int | None = None):
        if selector not in self.visible:
            raise TimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def is_visible(self, selector: str) -> bool:
        return selector in self.visible

    async def wait_for_timeout(self, ms: int):
        return None

    async def wait_for_load_state(self, state: str = "load", timeout: int | None = None):
        return None

    async def title(self) -> str:
        return self._title

    async def screenshot(self, **kwargs) -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        return f"pixels:{self.url}".encode()

    def is_closed(self) -> bool:
        return self.closed

    async def close(self):
        self.closed = True


class FakeBrowser:
    """BrowserManager stand-in. `site` maps URL -> list of hrefs linked from it."""

    def __init__(self, site: dict[str, list[str]] | None = None, failing: dict[str, int] | None = None,
                 page_factory=None):
        self.site = site or {}
        self.failing = dict(failing or {})
        self.page_factory = page_factory
        self.opened: list[str] = []
        self.pages: list[FakePage] = []

    async def new_page(self, url: str | None = None) -> FakePage:
        if url is not None:
            self.opened.append(url)
            if self.failing.get(url, 0) > 0:
                self.failing[url] -= 1
                raise TimeoutError(f"Timeout 30000ms exceeded navigating to {url}")
        page = self.page_factory() if self.page_factory else FakePage()
        if url is not None:
            page.url = url
            page._title = f"Title of {url}"
            links = self.site.get(url, [])
            page.scripted["url.protocol"] = [{"href": h, "text": h} for h in links]
        self.pages.append(page)
        return page


@pytest.fixture
def page() -> FakePage:
    return FakePage(url="https://example.com/")
