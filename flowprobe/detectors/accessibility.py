"""Basic accessibility audit using DOM queries.

Each rule produces at most one violation per page, carrying the number of
offending nodes. Impact levels follow the usual critical/serious/moderate/
minor scale so the health scorer can weight them.
"""

from __future__ import annotations

import logging

from playwright.async_api import Page

from flowprobe.models.types import AccessibilityReport, AccessibilityViolation, Impact


logger = logging.getLogger("flowprobe.accessibility")

HELP_BASE = "https://dequeuniversity.com/rules/axe/4.8/"

RULES: dict[str, tuple[Impact, str]] = {
    "image-alt": (Impact.CRITICAL, "Images must have alternate text"),
    "label": (Impact.CRITICAL, "Form elements must have labels"),
    "button-name": (Impact.CRITICAL, "Buttons must have discernible text"),
    "html-has-lang": (Impact.SERIOUS, "<html> element must have a lang attribute"),
    "document-title": (Impact.SERIOUS, "Documents must have <title> element to aid in navigation"),
    "link-name": (Impact.SERIOUS, "Links must have discernible text"),
}

_AUDIT_JS = """() => {
    const visible = (el) => {
        const r = el.getBoundingClientRect();
        return r.width > 0 || r.height > 0;
    };
    const named = (el) => {
        const text = (el.textContent || '').trim();
        if (text) return true;
        if (el.getAttribute('aria-label') || el.getAttribute('aria-labelledby') || el.getAttribute('title')) return true;
        const img = el.querySelector('img[alt]:not([alt=""])');
        return !!img;
    };

    const imageAlt = [...document.images].filter(img => img.src && !img.hasAttribute('alt')).length;

    let label = 0;
    const inputs = document.querySelectorAll(
        'input:not([type="hidden"]):not([type="submit"]):not([type="button"]):not([type="reset"]):not([type="image"]), select, textarea'
    );
    for (const input of inputs) {
        const hasFor = input.id && document.querySelector(`label[for="${CSS.escape(input.id)}"]`);
        const hasAria = input.hasAttribute('aria-label') || input.hasAttribute('aria-labelledby');
        const wrapped = input.closest('label');
        if (!hasFor && !hasAria && !wrapped && !input.hasAttribute('title')) label++;
    }

    const buttonName = [...document.querySelectorAll('button, [role="button"]')]
        .filter(b => visible(b) && !named(b) && !b.getAttribute('value')).length;
    const linkName = [...document.querySelectorAll('a[href]')]
        .filter(a => visible(a) && !named(a)).length;

    return {
        'image-alt': imageAlt,
        'label': label,
        'button-name': buttonName,
        'html-has-lang': document.documentElement.lang ? 0 : 1,
        'document-title': (document.title || '').trim() ? 0 : 1,
        'link-name': linkName,
    };
}"""


async def audit_accessibility(page: Page) -> AccessibilityReport:
    """Run the DOM checks on the current page. Returns an empty report on failure."""
    url = page.url
    try:
        counts = await page.evaluate(_AUDIT_JS)
    except Exception as e:
        logger.debug("Accessibility audit failed on %s: %s", url, str(e)[:200])
        return AccessibilityReport(url=url, incomplete=len(RULES))
    if not counts:
        return AccessibilityReport(url=url, incomplete=len(RULES))

    report = AccessibilityReport(url=url)
    for rule_id, (impact, description) in RULES.items():
        nodes = int(counts.get(rule_id, 0) or 0)
        if nodes > 0:
            report.violations.append(AccessibilityViolation(
                id=rule_id,
                impact=impact,
                description=description,
                nodes=nodes,
                help_url=HELP_BASE + rule_id,
            ))
        else:
            report.passes += 1
    return report
