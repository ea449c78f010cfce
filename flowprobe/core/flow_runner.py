"""Workflow execution engine.

Runs each WorkflowPlan on its own fresh page, step by step:
- Passive error listeners for the lifetime of the workflow
- Evidence (screenshot, recent errors, URL) captured for every failed step
- Dead-button detection around every click that succeeds
- Broken-form detection when a fill is followed by a submit-like click
- Accessibility and performance audits for the first and last page reached

A failed step never aborts its workflow; later steps still run.
"""

from __future__ import annotations

import dataclasses
import logging
import re
import time
import uuid

from playwright.async_api import Page

from flowprobe.core.browser import BrowserManager
from flowprobe.core.screenshots import ScreenshotStore
from flowprobe.core.step_handlers import (
    capture_click_state, check_dead_button, detect_broken_form, execute_step,
)
from flowprobe.detectors.accessibility import audit_accessibility
from flowprobe.detectors.errors import attach_error_listeners
from flowprobe.detectors.evidence import capture_error_evidence
from flowprobe.detectors.performance import collect_performance
from flowprobe.models.context import ErrorEvidence
from flowprobe.models.flow import StepResult, StepStatus, WorkflowPlan, WorkflowStep
from flowprobe.models.graph import ProgressCallback
from flowprobe.models.types import (
    ExecutionArtifact, Impact, PageAudit, WorkflowExecutionResult,
)
from flowprobe.utils.popup_guard import install_dialog_dismisser
from flowprobe.utils.selectors import (
    ANCESTRY_JS, css_path, is_submit_button_selector, normalize_step_selector,
)


logger = logging.getLogger("flowprobe.executor")

CLICK_SETTLE_MS = 1000
NAV_TIMEOUT_MS = 30000

LOGIN_NAME_PATTERN = re.compile(r"login|log in|sign in|signin", re.I)
LOGIN_DESCRIPTION_PATTERN = re.compile(r"authentication", re.I)
EMAIL_STEP_PATTERN = re.compile(r"email|username|user", re.I)
PASSWORD_STEP_PATTERN = re.compile(r"password|pass", re.I)
SUBMIT_LIKE_PATTERN = re.compile(
    r"submit|sign ?in|log ?in|sign ?up|register|send|subscribe|continue|save|search", re.I,
)


_FORM_OF_FIELD_JS = """(el) => {
""" + ANCESTRY_JS + """
    const form = el.closest('form');
    if (!form) return null;
    if (form.id) return 'form#' + CSS.escape(form.id);
    const name = form.getAttribute('name');
    if (name) return `form[name="${name.replace(/"/g, '\\\\"')}"]`;
    return ancestry(form);
}"""


def is_login_workflow(plan: WorkflowPlan) -> bool:
    return bool(
        LOGIN_NAME_PATTERN.search(plan.workflow_name)
        or LOGIN_DESCRIPTION_PATTERN.search(plan.description)
    )


def inject_credentials(step: WorkflowStep, credentials) -> WorkflowStep:
    """Replace a login fill step's value with the supplied credential."""
    if credentials is None or step.action != "fill":
        return step
    target = f"{step.selector} {step.expected_result}"
    if PASSWORD_STEP_PATTERN.search(target):
        return dataclasses.replace(step, value=credentials.password)
    if EMAIL_STEP_PATTERN.search(target):
        return dataclasses.replace(step, value=credentials.email)
    return step


def is_submit_like_click(step: WorkflowStep) -> bool:
    return step.action == "click" and (
        is_submit_button_selector(step.selector) or bool(SUBMIT_LIKE_PATTERN.search(step.selector))
    )


def recalculate_execution_summary(artifact: ExecutionArtifact) -> ExecutionArtifact:
    """Recompute total_issues and exit_code from everything the artifact holds."""
    failed_steps = sum(w.failed_steps for w in artifact.workflow_results)
    passive = sum(w.errors.total for w in artifact.workflow_results)
    dead = sum(1 for d in artifact.dead_buttons if d.is_dead)
    broken_forms = sum(1 for f in artifact.broken_forms if f.is_broken)
    a11y = sum(
        a.accessibility.count(Impact.CRITICAL) + a.accessibility.count(Impact.SERIOUS)
        for a in artifact.page_audits if a.accessibility is not None
    )
    artifact.total_issues = failed_steps + passive + dead + broken_forms + a11y + len(artifact.broken_links)
    any_failed = any(w.overall_status == "failed" for w in artifact.workflow_results)
    artifact.exit_code = 1 if any_failed or artifact.total_issues > 0 else 0
    return artifact


class WorkflowExecutor:
    """Executes planned workflows and collects an ExecutionArtifact."""

    def __init__(
        self,
        browser: BrowserManager,
        base_url: str,
        credentials=None,
        screenshots: ScreenshotStore | None = None,
        on_progress: ProgressCallback | None = None,
        session_id: str | None = None,
    ):
        self.browser = browser
        self.base_url = base_url
        self.credentials = credentials
        self.screenshots = screenshots
        self._on_progress = on_progress
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._audited: set[str] = set()

    async def execute(self, plans: list[WorkflowPlan]) -> ExecutionArtifact:
        artifact = ExecutionArtifact(session_id=self.session_id, target_url=self.base_url)
        self._audited = set()

        for index, plan in enumerate(plans):
            self._emit("workflow_started", {
                "workflow": plan.workflow_name,
                "index": index,
                "total": len(plans),
                "steps": len(plan.steps),
            })
            result = await self._execute_workflow(plan, index, artifact)
            artifact.workflow_results.append(result)
            self._emit("workflow_completed", {
                "workflow": plan.workflow_name,
                "status": result.overall_status,
                "passed": result.passed_steps,
                "failed": result.failed_steps,
                "skipped": result.skipped_steps,
                "duration_ms": result.duration,
            })

        return recalculate_execution_summary(artifact)

    async def _execute_workflow(self, plan: WorkflowPlan, index: int,
                                artifact: ExecutionArtifact) -> WorkflowExecutionResult:
        start = time.monotonic()
        result = WorkflowExecutionResult(workflow_name=plan.workflow_name, description=plan.description)

        try:
            page = await self.browser.new_page()
        except Exception as e:
            logger.warning("Could not open a page for %r: %s", plan.workflow_name, str(e)[:300])
            result.step_results = self._page_open_failed(plan.steps, f"Could not open page: {str(e)[:200]}")
            result.duration = int((time.monotonic() - start) * 1000)
            return result

        install_dialog_dismisser(page)
        collector, detach = attach_error_listeners(page)
        activity = {"requests": 0}

        def on_request(_request):
            activity["requests"] += 1

        page.on("request", on_request)
        login = is_login_workflow(plan)
        visited: list[str] = []

        try:
            try:
                await page.goto(self.base_url, wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)
                visited.append(page.url)
            except Exception as e:
                logger.debug("Initial navigation for %r failed: %s", plan.workflow_name, str(e)[:200])

            previous: WorkflowStep | None = None
            for i, step in enumerate(plan.steps):
                if page.is_closed():
                    result.step_results.extend(self._skip_remaining(plan.steps, i, "Page closed"))
                    break

                if login:
                    step = inject_credentials(step, self.credentials)

                step_result = await self._run_step(page, step, i, previous, activity, artifact)
                if step_result.status == StepStatus.FAILED:
                    step_result.evidence = await capture_error_evidence(page, collector, i, self.screenshots)
                result.step_results.append(step_result)

                self._emit("step_completed", {
                    "workflow": plan.workflow_name,
                    "step_index": i,
                    "action": step.action,
                    "status": step_result.status.value,
                    "error": step_result.error,
                })

                if not page.is_closed() and (not visited or visited[-1] != page.url):
                    visited.append(page.url)
                previous = step

            if not page.is_closed():
                if self.screenshots is not None:
                    result.screenshot_ref = await self.screenshots.capture(page, f"workflow-{index}-end")
                await self._audit_pages(page, visited, artifact)
        finally:
            try:
                page.remove_listener("request", on_request)
            except Exception:
                pass
            await detach()
            result.errors = collector.snapshot()
            try:
                await page.close()
            except Exception:
                pass

        result.duration = int((time.monotonic() - start) * 1000)
        return result

    async def _run_step(self, page: Page, step: WorkflowStep, index: int, previous: WorkflowStep | None,
                        activity: dict, artifact: ExecutionArtifact) -> StepResult:
        if step.action != "click":
            return await execute_step(page, step, index, self.base_url)

        before = await capture_click_state(page)
        activity["requests"] = 0
        step_result = await execute_step(page, step, index, self.base_url)
        if step_result.status != StepStatus.PASSED or page.is_closed():
            return step_result

        try:
            await page.wait_for_timeout(CLICK_SETTLE_MS)
        except Exception:
            pass
        after = await capture_click_state(page, had_network_activity=activity["requests"] > 0)
        dead = check_dead_button(step.selector, before, after)
        if not dead.is_dead:
            return step_result

        if previous is not None and previous.action == "fill" and is_submit_like_click(step):
            form_selector = await self._form_of(page, previous.selector)
            if form_selector:
                form_result = await detect_broken_form(page, form_selector, self.credentials)
                if form_result.is_broken:
                    artifact.broken_forms.append(form_result)
                    self._emit("broken_form", {"form": form_selector, "reason": form_result.reason})
                    return step_result

        artifact.dead_buttons.append(dead)
        self._emit("dead_button", {"selector": step.selector, "reason": dead.reason})
        return step_result

    async def _form_of(self, page: Page, field_selector: str) -> str | None:
        """Selector of the form that contains a filled field."""
        try:
            locator = page.locator(normalize_step_selector(field_selector)).first
            found = await locator.evaluate(_FORM_OF_FIELD_JS, timeout=2000)
        except Exception:
            return None
        if isinstance(found, list):
            return css_path(found) if found else None
        return found

    async def _audit_pages(self, page: Page, visited: list[str], artifact: ExecutionArtifact):
        """Audit the last and first URLs reached, each at most once per run."""
        if not visited:
            return
        targets = [visited[-1]] if len(visited) == 1 else [visited[-1], visited[0]]
        for url in targets:
            if url in self._audited:
                continue
            self._audited.add(url)
            try:
                if page.url != url:
                    await page.goto(url, wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)
                accessibility = await audit_accessibility(page)
                performance = await collect_performance(page)
            except Exception as e:
                logger.warning("Audit of %s failed: %s", url, str(e)[:300])
                continue
            artifact.page_audits.append(PageAudit(url=url, accessibility=accessibility, performance=performance))

    @staticmethod
    def _skip_remaining(steps, start: int, reason: str) -> list[StepResult]:
        return [
            StepResult(step_index=i, action=s.action, selector=s.selector,
                       status=StepStatus.SKIPPED, error=reason)
            for i, s in enumerate(steps) if i >= start
        ]

    def _page_open_failed(self, steps, reason: str) -> list[StepResult]:
        """The workflow never ran: its first step fails, the rest are skipped."""
        first = steps[0] if steps else WorkflowStep(action="navigate", selector=self.base_url)
        failed = StepResult(step_index=0, action=first.action, selector=first.selector,
                            status=StepStatus.FAILED, error=reason,
                            evidence=ErrorEvidence(page_url=self.base_url))
        return [failed] + self._skip_remaining(steps, 1, reason)

    def _emit(self, event_type: str, data: dict):
        if self._on_progress:
            try:
                self._on_progress(event_type, data)
            except Exception:
                pass
