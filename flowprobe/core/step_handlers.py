"""Workflow step dispatch and click/form heuristics.

execute_step() runs a single planned step and always returns a StepResult:
exceptions become a failed result, never propagate. The dead-button and
broken-form checks compare page state before and after an interaction.
"""

from __future__ import annotations

import time

from playwright.async_api import Page

from flowprobe.errors import ValidationError
from flowprobe.models.flow import (
    BrokenFormResult, ClickStateSnapshot, DeadButtonResult, StepResult, StepStatus, WorkflowStep,
)
from flowprobe.utils.form_filler import extract_form, fill_form_fields
from flowprobe.utils.popup_guard import dismiss_modal_if_present
from flowprobe.utils.selectors import is_submit_button_selector, normalize_step_selector
from flowprobe.utils.validation import (
    resolve_navigation_target, sanitize_value, validate_navigation_url, validate_selector, validate_url,
)


STEP_TIMEOUT_MS = 10000
NAV_TIMEOUT_MS = 30000
SETTLE_WAIT_MS = 1000

_DOM_SIZE_JS = "() => document.getElementsByTagName('*').length"

SUBMIT_CONTROLS = 'button[type="submit"], input[type="submit"], button:not([type])'


class StepSkipped(Exception):
    """Raised inside a handler when a step should be skipped rather than failed."""


async def _navigate(page: Page, step: WorkflowStep, value: str | None, base_url: str | None):
    target = resolve_navigation_target(value or step.selector, base_url)
    if base_url:
        target = validate_navigation_url(target, base_url)
    else:
        target = validate_url(target)
    await page.goto(target, wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)


async def _click(page: Page, selector: str):
    if is_submit_button_selector(selector) and await page.locator(selector).count() == 0:
        raise StepSkipped(f"Skipping submit click: no submit control matches {selector[:120]}")
    await page.click(selector, timeout=STEP_TIMEOUT_MS)


async def _expect(page: Page, selector: str):
    if not await page.is_visible(selector):
        raise ValidationError(f"Expected element not found: {selector}")


async def execute_step(page: Page, step: WorkflowStep, step_index: int,
                       base_url: str | None = None) -> StepResult:
    """Run one step: pending -> running -> passed | failed | skipped."""
    result = StepResult(step_index=step_index, action=step.action, selector=step.selector)
    start = time.monotonic()
    result.status = StepStatus.RUNNING

    try:
        await dismiss_modal_if_present(page)
        validate_selector(step.selector)
        value = sanitize_value(step.value) if step.value is not None else None

        if step.action == "navigate":
            await _navigate(page, step, value, base_url)
        else:
            selector = normalize_step_selector(step.selector)
            if step.action == "click":
                await _click(page, selector)
            elif step.action == "fill":
                await page.fill(selector, value or "", timeout=STEP_TIMEOUT_MS)
            elif step.action == "select":
                await page.select_option(selector, value or "", timeout=STEP_TIMEOUT_MS)
            elif step.action == "wait":
                await page.wait_for_selector(selector, timeout=STEP_TIMEOUT_MS)
            elif step.action == "expect":
                await _expect(page, selector)
            else:
                raise ValidationError(f"Unknown action: {step.action}")

        result.status = StepStatus.PASSED
    except StepSkipped as e:
        result.status = StepStatus.SKIPPED
        result.error = str(e)
    except Exception as e:
        result.status = StepStatus.FAILED
        result.error = str(e)[:1000]

    result.duration = int((time.monotonic() - start) * 1000)
    return result


async def capture_click_state(page: Page, had_network_activity: bool = False) -> ClickStateSnapshot:
    """Observable state for dead-button comparison. Network activity is tracked by the caller."""
    try:
        dom_size = await page.evaluate(_DOM_SIZE_JS)
    except Exception:
        dom_size = -1
    return ClickStateSnapshot(url=page.url, dom_size=int(dom_size), had_network_activity=had_network_activity)


def check_dead_button(selector: str, before: ClickStateSnapshot, after: ClickStateSnapshot) -> DeadButtonResult:
    """Dead when URL, DOM size and network activity are all unchanged by the click."""
    url_changed = before.url != after.url
    dom_changed = before.dom_size != after.dom_size
    network_changed = before.had_network_activity != after.had_network_activity
    if not url_changed and not dom_changed and not network_changed:
        return DeadButtonResult(
            is_dead=True,
            selector=selector,
            reason="No URL change, DOM change, or network activity detected",
        )
    return DeadButtonResult(is_dead=False, selector=selector)


async def detect_broken_form(page: Page, form_selector: str, credentials=None,
                             wait_ms: int = SETTLE_WAIT_MS) -> BrokenFormResult:
    """Fill and submit a form; broken if nothing observable follows."""
    try:
        if await page.locator(form_selector).count() == 0:
            return BrokenFormResult(is_broken=False, form_selector=form_selector, reason="Form not found")

        form = await extract_form(page, form_selector)
        if form is None:
            return BrokenFormResult(is_broken=False, form_selector=form_selector,
                                    reason="Could not extract form data")

        fill = await fill_form_fields(page, form, credentials)

        before = await capture_click_state(page)
        requests: list[str] = []

        def on_request(request):
            requests.append(request.url)

        page.on("request", on_request)
        try:
            submit = page.locator(
                ", ".join(f"{form_selector} {c.strip()}" for c in SUBMIT_CONTROLS.split(","))
            ).first
            if await submit.count() > 0:
                await submit.click(timeout=STEP_TIMEOUT_MS)
            else:
                await page.evaluate(
                    """(sel) => {
                        const form = document.querySelector(sel);
                        if (!form) return;
                        if (form.requestSubmit) form.requestSubmit(); else form.submit();
                    }""",
                    form_selector,
                )
            await page.wait_for_timeout(wait_ms)
        finally:
            page.remove_listener("request", on_request)

        after = await capture_click_state(page, had_network_activity=bool(requests))
        navigated = before.url != after.url
        dom_changed = before.dom_size != after.dom_size

        if not navigated and not requests and not dom_changed:
            return BrokenFormResult(
                is_broken=True,
                form_selector=form_selector,
                reason="Form submission caused no navigation, network request, or DOM change",
                filled_fields=fill.filled,
                skipped_fields=len(fill.skipped),
            )
        return BrokenFormResult(
            is_broken=False,
            form_selector=form_selector,
            filled_fields=fill.filled,
            skipped_fields=len(fill.skipped),
        )
    except Exception as e:
        return BrokenFormResult(is_broken=False, form_selector=form_selector,
                                reason=f"Detection failed: {str(e)[:300]}")
