"""Interactive element discovery for crawled pages.

Inventories forms (with fields), buttons, links, navigation menus and
other interactive controls in a single DOM pass. Elements whose text
suggests a destructive action are left out.
"""

from __future__ import annotations

from urllib.parse import urlparse

from playwright.async_api import Page

from flowprobe.models.discovery import FormField, FormInfo, InteractiveElement, LinkInfo
from flowprobe.utils.selectors import ANCESTRY_JS, css_path


DESTRUCTIVE_KEYWORDS = [
    "delete", "remove", "destroy", "reset", "clear", "drop", "purge", "revoke",
    "terminate", "unsubscribe", "cancel-account", "close-account",
    "logout", "log out", "sign out",
]


def is_destructive(text: str) -> bool:
    lowered = text.lower().strip()
    return any(k in lowered for k in DESTRUCTIVE_KEYWORDS)


_DISCOVER_ELEMENTS_JS = """() => {
""" + ANCESTRY_JS + """
    const esc = (v) => v.replace(/\\\\/g, '\\\\\\\\').replace(/"/g, '\\\\"');
    const textOf = (el) => (el.textContent || el.getAttribute('aria-label') || '').replace(/\\s+/g, ' ').trim().substring(0, 120);
    const isVisible = (el) => {
        const r = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        return (r.width > 0 || r.height > 0) && style.visibility !== 'hidden' && style.display !== 'none';
    };

    const forms = [];
    [...document.querySelectorAll('form')].forEach((form) => {
        let selector;
        if (form.id) selector = 'form#' + CSS.escape(form.id);
        else if (form.getAttribute('name')) selector = `form[name="${esc(form.getAttribute('name'))}"]`;
        else selector = '';

        const fields = [];
        for (const el of form.querySelectorAll('input, select, textarea')) {
            const tag = el.tagName.toLowerCase();
            const type = tag === 'select' ? 'select' : tag === 'textarea' ? 'textarea'
                       : (el.getAttribute('type') || 'text').toLowerCase();
            let label = el.getAttribute('aria-label') || '';
            if (!label && el.id) {
                const lbl = document.querySelector(`label[for="${CSS.escape(el.id)}"]`);
                if (lbl) label = lbl.textContent || '';
            }
            if (!label && el.closest('label')) label = el.closest('label').textContent || '';
            fields.push({
                type,
                name: (el.name || el.id || '').trim(),
                label: label.replace(/\\s+/g, ' ').trim().substring(0, 100),
                required: !!el.required,
                placeholder: el.placeholder || '',
                disabled: !!el.disabled,
                readOnly: !!el.readOnly,
                hidden: type === 'hidden' || el.hidden || el.getAttribute('aria-hidden') === 'true' || !isVisible(el),
            });
        }
        forms.push({
            action: form.action || location.href,
            method: (form.getAttribute('method') || 'GET').toUpperCase(),
            selector,
            path: selector ? [] : ancestry(form),
            fields,
        });
    });

    const buttons = [];
    [...document.querySelectorAll('button, [role="button"], input[type="submit"], input[type="button"]')].forEach((b) => {
        const text = textOf(b) || b.value || '';
        const aria = b.getAttribute('aria-label') || '';
        let selector;
        if (b.id) selector = '#' + CSS.escape(b.id);
        else if (text && b.tagName === 'BUTTON') selector = `button:has-text("${esc(text)}")`;
        else if (aria) selector = `[aria-label="${esc(aria)}"]`;
        else selector = '';
        buttons.push({
            type: 'button',
            selector,
            path: selector ? [] : ancestry(b),
            text: text || aria,
            visible: isVisible(b),
            attributes: { type: b.getAttribute('type') || 'button', disabled: String(!!b.disabled) },
        });
    });

    const links = [];
    const seen = new Set();
    for (const a of document.querySelectorAll('a[href]')) {
        try {
            const url = new URL(a.getAttribute('href'), location.href);
            url.hash = '';
            if (seen.has(url.href)) continue;
            seen.add(url.href);
            links.push({ href: url.href, text: textOf(a) });
        } catch {}
    }

    const menus = [];
    [...document.querySelectorAll('nav, [role="navigation"], [role="menubar"]')].forEach((nav) => {
        menus.push({
            type: 'menu',
            selector: nav.id ? '#' + CSS.escape(nav.id) : '',
            path: nav.id ? [] : ancestry(nav),
            text: (nav.getAttribute('aria-label') || textOf(nav)).substring(0, 80),
            visible: isVisible(nav),
            attributes: { items: String(nav.querySelectorAll('a, button').length) },
        });
    });

    const other = [];
    const otherSel = '[role="tab"], [aria-haspopup], [data-toggle="modal"], [data-bs-toggle="modal"], details > summary';
    [...document.querySelectorAll(otherSel)].forEach((el) => {
        const role = el.getAttribute('role');
        const type = role === 'tab' ? 'tab'
                   : (el.getAttribute('data-toggle') === 'modal' || el.getAttribute('data-bs-toggle') === 'modal') ? 'modal-trigger'
                   : 'menu';
        other.push({
            type,
            selector: el.id ? '#' + CSS.escape(el.id) : '',
            path: el.id ? [] : ancestry(el),
            text: textOf(el),
            visible: isVisible(el),
            attributes: {},
        });
    });

    return { forms, buttons, links, menus, other };
}"""


def _selector_of(d: dict) -> str:
    return d.get("selector") or css_path(d.get("path") or [])


async def discover_elements(page: Page, page_url: str) -> dict:
    """Return partial PageData fields for the page's interactive elements."""
    raw = await page.evaluate(_DISCOVER_ELEMENTS_JS)
    hostname = (urlparse(page_url).hostname or "").lower()

    def element(d: dict) -> InteractiveElement:
        return InteractiveElement(
            type=d.get("type", "button"),
            selector=_selector_of(d),
            text=d.get("text", ""),
            visible=bool(d.get("visible", True)),
            attributes={k: str(v) for k, v in (d.get("attributes") or {}).items()},
        )

    forms = [
        FormInfo(
            action=f.get("action", ""),
            method=f.get("method", "GET"),
            selector=_selector_of(f),
            fields=[FormField.from_dict(x) for x in f.get("fields", [])],
        )
        for f in raw.get("forms", [])
    ]
    buttons = [element(b) for b in raw.get("buttons", []) if not is_destructive(b.get("text", ""))]
    links = [
        LinkInfo(
            href=link["href"],
            text=link.get("text", ""),
            is_internal=(urlparse(link["href"]).hostname or "").lower() == hostname,
        )
        for link in raw.get("links", [])
    ]
    menus = [element(m) for m in raw.get("menus", [])]
    other = [element(o) for o in raw.get("other", []) if not is_destructive(o.get("text", ""))]

    return {
        "forms": forms,
        "buttons": buttons,
        "links": links,
        "menus": menus,
        "other_interactive": other,
    }
