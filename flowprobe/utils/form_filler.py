"""Deterministic form filling.

Reads a form's fields from the DOM, looks each one up in the test-data
table and fills it. Fields that cannot be filled are reported as skipped
with a reason rather than treated as errors.
"""

from __future__ import annotations

import re

from playwright.async_api import Page

from flowprobe.models.discovery import FormField, FormInfo
from flowprobe.models.flow import FillResult
from flowprobe.utils.test_data import get_test_value_for_field


FIELD_TIMEOUT_MS = 5000

LOGIN_EMAIL_PATTERN = re.compile(r"email|username|user", re.I)
LOGIN_PASSWORD_PATTERN = re.compile(r"password|pass", re.I)


_EXTRACT_FORM_JS = """(formSelector) => {
    const form = document.querySelector(formSelector);
    if (!form) return null;
    const fields = [];
    for (const el of form.querySelectorAll('input, select, textarea')) {
        const tag = el.tagName.toLowerCase();
        const type = tag === 'select' ? 'select'
                   : tag === 'textarea' ? 'textarea'
                   : (el.getAttribute('type') || 'text').toLowerCase();
        const name = el.name || el.id || '';
        if (!name) continue;

        let label = el.getAttribute('aria-label') || '';
        if (!label && el.id) {
            const lbl = document.querySelector(`label[for="${el.id}"]`);
            if (lbl) label = lbl.textContent.trim().substring(0, 100);
        }
        if (!label) {
            const parent = el.closest('label');
            if (parent) label = parent.textContent.trim().substring(0, 100);
        }

        const rect = el.getBoundingClientRect();
        fields.push({
            type,
            name,
            label: label.replace(/\\s+/g, ' ').trim(),
            required: !!el.required,
            placeholder: el.placeholder || '',
            disabled: !!el.disabled,
            readOnly: !!el.readOnly,
            hidden: type === 'hidden' || el.hidden || el.getAttribute('aria-hidden') === 'true'
                    || (rect.width === 0 && rect.height === 0),
        });
    }
    return {
        action: form.action || location.href,
        method: (form.getAttribute('method') || 'GET').toUpperCase(),
        fields,
    };
}"""


async def extract_form(page: Page, form_selector: str) -> FormInfo | None:
    """Read a form's field inventory from the live DOM."""
    raw = await page.evaluate(_EXTRACT_FORM_JS, form_selector)
    if not raw:
        return None
    return FormInfo(
        action=raw.get("action", ""),
        method=raw.get("method", "GET"),
        selector=form_selector,
        fields=[FormField.from_dict(f) for f in raw.get("fields", [])],
    )


def field_selector(form: FormInfo, f: FormField) -> str:
    escaped = f.name.replace('"', '\\"')
    return f'{form.selector} [name="{escaped}"], {form.selector} #{_css_ident(f.name)}'


def _css_ident(value: str) -> str:
    return re.sub(r"([^A-Za-z0-9_-])", r"\\\1", value)


def credential_value_for(f: FormField, credentials) -> str | None:
    """Pick the supplied login credential for a login-like field, if any."""
    if credentials is None:
        return None
    haystack = f"{f.name} {f.label} {f.placeholder}"
    if f.type == "password" or LOGIN_PASSWORD_PATTERN.search(haystack):
        return credentials.password
    if f.type == "email" or LOGIN_EMAIL_PATTERN.search(haystack):
        return credentials.email
    return None


async def fill_field(page: Page, form: FormInfo, f: FormField, credentials=None) -> str | None:
    """Fill one field. Returns a skip reason, or None when the field was filled."""
    if f.hidden:
        return "Field is hidden"
    if f.disabled or f.read_only:
        return "Field is disabled or read-only"

    value = credential_value_for(f, credentials) or get_test_value_for_field(f.name, f.type)
    if value is None:
        return f"No test data for type: {f.type}"

    locator = page.locator(field_selector(form, f)).first
    try:
        if await locator.count() == 0:
            return "Field not found"
        if f.type in ("checkbox", "radio"):
            await locator.check(timeout=FIELD_TIMEOUT_MS)
        elif f.type == "select":
            try:
                await locator.select_option(value, timeout=FIELD_TIMEOUT_MS)
            except Exception:
                await locator.select_option(index=1, timeout=FIELD_TIMEOUT_MS)
        else:
            await locator.fill(value, timeout=FIELD_TIMEOUT_MS)
    except Exception as e:
        return f"Fill failed: {str(e)[:200]}"
    return None


async def fill_form_fields(page: Page, form: FormInfo, credentials=None) -> FillResult:
    result = FillResult()
    for f in form.fields:
        reason = await fill_field(page, form, f, credentials)
        if reason is None:
            result.filled += 1
        else:
            result.skipped.append({"selector": f.name, "reason": reason})
    return result
