"""SPA framework detection and client-side route discovery.

Runs once against the seed page before crawling. Framework markers are
checked meta-framework first (Next.js before React, Nuxt before Vue)
because a meta-framework page also carries its base framework's markers.

Route discovery hooks history.pushState/replaceState and popstate into an
in-page buffer, then clicks through navigation links and records every URL
the app routes to. It is best-effort: any interaction failure is skipped.
"""

from __future__ import annotations

import logging
import time
from urllib.parse import urljoin, urlparse

from playwright.async_api import Page

from flowprobe.models.discovery import SPAFramework
from flowprobe.utils.smart_wait import ROUTE_BUFFER, wait_for_navigation_or_route_change


logger = logging.getLogger("flowprobe.spa")

DISCOVERY_BUDGET_S = 30.0
CLICK_TIMEOUT_MS = 2000
SETTLE_TIMEOUT_MS = 3000
BACK_TIMEOUT_MS = 3000
RENAVIGATE_TIMEOUT_MS = 5000

SKIP_WORDS = ["delete", "remove", "cancel", "submit", "download", "logout", "log out", "sign out"]

NAV_CANDIDATES = 'nav a, [role="navigation"] a, header a'


_DETECT_FRAMEWORK_JS = """() => {
    const w = window;
    const nextData = document.querySelector('script#__NEXT_DATA__');
    if (nextData || w.__NEXT_DATA__ || w.next) {
        let version = null;
        try { version = (w.next && w.next.version) || null; } catch {}
        return { framework: 'next', version, router: 'next-router' };
    }
    if (w.__NUXT__ || w.$nuxt || document.querySelector('[data-n-head], #__nuxt')) {
        return { framework: 'nuxt', version: null, router: 'nuxt-router' };
    }
    const roots = [document.getElementById('root'), document.getElementById('app'), document.body];
    const reactRoot = roots.some(el => el && Object.keys(el).some(k => k.startsWith('__reactContainer') || k.startsWith('_reactRootContainer')));
    const hook = w.__REACT_DEVTOOLS_GLOBAL_HOOK__;
    if (reactRoot || (hook && hook.renderers && hook.renderers.size > 0)) {
        let version = null;
        try {
            if (hook && hook.renderers) {
                for (const r of hook.renderers.values()) { version = r.version || null; break; }
            }
        } catch {}
        return { framework: 'react', version, router: 'react-router' };
    }
    if (w.__VUE__ || w.Vue || document.querySelector('[data-v-app]') || document.querySelector('[data-server-rendered]')) {
        const version = (w.Vue && w.Vue.version) || null;
        return { framework: 'vue', version, router: 'vue-router' };
    }
    const ngEl = document.querySelector('[ng-version]');
    if (ngEl || w.ng || w.getAllAngularRootElements || document.querySelector('app-root')) {
        return { framework: 'angular', version: ngEl ? ngEl.getAttribute('ng-version') : null, router: 'angular-router' };
    }
    if (document.querySelector('[data-svelte-h]') || w.__svelte || w.__sveltekit_dev || document.querySelector('[data-sveltekit-preload-data]')) {
        return { framework: 'svelte', version: null, router: 'sveltekit' };
    }
    return { framework: 'none', version: null, router: null };
}"""


_INTERCEPT_ROUTES_JS = """(buffer) => {
    if (window[buffer + '_installed']) return;
    window[buffer + '_installed'] = true;
    window[buffer] = window[buffer] || [];
    const record = (url) => {
        try {
            if (url) window[buffer].push(new URL(String(url), location.href).href);
        } catch {}
    };
    const origPush = history.pushState;
    const origReplace = history.replaceState;
    history.pushState = function(state, title, url) {
        record(url);
        return origPush.apply(this, arguments);
    };
    history.replaceState = function(state, title, url) {
        record(url);
        return origReplace.apply(this, arguments);
    };
    window.addEventListener('popstate', () => record(location.href));
}"""


async def detect_framework(page: Page) -> SPAFramework:
    try:
        raw = await page.evaluate(_DETECT_FRAMEWORK_JS)
    except Exception as e:
        logger.debug("Framework detection failed: %s", str(e)[:200])
        return SPAFramework()
    if not raw:
        return SPAFramework()
    return SPAFramework(
        framework=raw.get("framework") or "none",
        version=raw.get("version"),
        router=raw.get("router"),
    )


def _is_internal_href(href: str, hostname: str) -> bool:
    if href.startswith("/") and not href.startswith("//"):
        return True
    return (urlparse(href).hostname or "").lower() == hostname


def _has_skip_word(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in SKIP_WORDS)


async def _read_routes(page: Page) -> list[str]:
    try:
        routes = await page.evaluate(f"() => window.{ROUTE_BUFFER} || []")
        return [r for r in routes if isinstance(r, str)]
    except Exception:
        return []


async def _install_interceptor(page: Page):
    """Hook history for the current document and every future one."""
    script = f"({_INTERCEPT_ROUTES_JS})({ROUTE_BUFFER!r})"
    try:
        await page.add_init_script(script=script)
    except Exception:
        pass
    try:
        await page.evaluate(_INTERCEPT_ROUTES_JS, ROUTE_BUFFER)
    except Exception:
        pass


async def _candidate_hrefs(page: Page, hostname: str) -> list[tuple[str, str]]:
    """(href, text) for nav/header links and role=link elements, filtered."""
    candidates: list[tuple[str, str]] = []
    seen: set[str] = set()
    for locator in (page.locator(NAV_CANDIDATES), page.get_by_role("link")):
        try:
            elements = await locator.all()
        except Exception:
            continue
        for el in elements:
            try:
                href = await el.get_attribute("href") or ""
                text = (await el.text_content() or "").strip()
            except Exception:
                continue
            if not href or href in seen or href.startswith("#"):
                continue
            if _has_skip_word(text) or not _is_internal_href(href, hostname):
                continue
            seen.add(href)
            candidates.append((href, text))
    return candidates


async def intercept_route_changes(page: Page, base_url: str | None = None,
                                  budget_s: float = DISCOVERY_BUDGET_S) -> list[str]:
    """Click through navigation links and return every route the app moved to."""
    deadline = time.monotonic() + budget_s
    original_url = base_url or page.url
    hostname = (urlparse(original_url).hostname or "").lower()
    discovered: list[str] = []

    def add(url: str):
        absolute = urljoin(original_url, url)
        if (urlparse(absolute).hostname or "").lower() != hostname:
            return
        absolute = absolute.split("#", 1)[0]
        if absolute not in discovered and absolute.rstrip("/") != original_url.rstrip("/"):
            discovered.append(absolute)

    await _install_interceptor(page)
    candidates = await _candidate_hrefs(page, hostname)

    for href, text in candidates:
        if time.monotonic() >= deadline:
            logger.info("Route discovery budget exhausted after %d routes", len(discovered))
            break
        try:
            selector = f'a[href="{href}"]'
            start_url = page.url
            start_routes = len(await _read_routes(page))
            await page.locator(selector).first.click(timeout=CLICK_TIMEOUT_MS)
            await wait_for_navigation_or_route_change(page, start_url, start_routes, SETTLE_TIMEOUT_MS)
        except Exception as e:
            logger.debug("Route click on %r failed: %s", text[:40], str(e)[:120])
            continue

        for route in await _read_routes(page):
            add(route)
        if page.url != original_url:
            add(page.url)
            if not await _restore(page, original_url):
                break

    return discovered


async def _restore(page: Page, original_url: str) -> bool:
    """Return to the original URL: back first, then direct navigation."""
    try:
        await page.go_back(timeout=BACK_TIMEOUT_MS)
        if page.url.rstrip("/") == original_url.rstrip("/"):
            return True
    except Exception:
        pass
    try:
        await page.goto(original_url, wait_until="domcontentloaded", timeout=RENAVIGATE_TIMEOUT_MS)
        return True
    except Exception as e:
        logger.debug("Could not return to %s: %s", original_url, str(e)[:120])
        return False


async def discover_spa_routes(page: Page, base_url: str | None = None) -> tuple[SPAFramework, list[str]]:
    framework = await detect_framework(page)
    routes: list[str] = []
    if framework.detected:
        routes = await intercept_route_changes(page, base_url)
        logger.info("Detected %s; discovered %d client-side routes", framework.framework, len(routes))
    return framework, routes
