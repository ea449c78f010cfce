import pytest

from flowprobe.config import Credentials
from flowprobe.core.flow_runner import (
    WorkflowExecutor, inject_credentials, is_login_workflow, is_submit_like_click,
    recalculate_execution_summary,
)
from flowprobe.core.scoring import calculate_health_score
from flowprobe.core.screenshots import ScreenshotStore
from flowprobe.models.context import ErrorCollector
from flowprobe.models.discovery import BrokenLink
from flowprobe.models.flow import BrokenFormResult, DeadButtonResult, StepStatus, WorkflowPlan, WorkflowStep
from flowprobe.models.types import (
    AccessibilityReport, AccessibilityViolation, ExecutionArtifact, Impact, PageAudit, WorkflowExecutionResult,
)
from tests.conftest import FakeBrowser, FakeConsoleMessage, FakePage, FakeRequest


BASE = "https://example.com"
FORM_MARKER = "querySelectorAll('input, select, textarea')"


def plan(name: str, *steps: WorkflowStep, description: str = "") -> WorkflowPlan:
    return WorkflowPlan(workflow_name=name, description=description, steps=tuple(steps))


def click(selector: str) -> WorkflowStep:
    return WorkflowStep(action="click", selector=selector)


def fill(selector: str, value: str, expected: str = "") -> WorkflowStep:
    return WorkflowStep(action="fill", selector=selector, value=value, expected_result=expected)


class ScriptedBrowser(FakeBrowser):
    """Hands out one pre-configured page per workflow."""

    def __init__(self, *pages: FakePage):
        super().__init__()
        self._queue = list(pages)

    async def new_page(self, url=None):
        page = self._queue.pop(0) if self._queue else FakePage()
        self.pages.append(page)
        return page


class BrokenBrowser(FakeBrowser):
    async def new_page(self, url=None):
        raise RuntimeError("browser has been closed")


def executor(browser, **kwargs) -> WorkflowExecutor:
    return WorkflowExecutor(browser, BASE, session_id="test", **kwargs)


class TestHelpers:

    @pytest.mark.parametrize("name,description,expected", [
        ("Login", "", True),
        ("Sign in to dashboard", "", True),
        ("Account", "Tests authentication", True),
        ("Checkout", "Buy a product", False),
    ])
    def test_is_login_workflow(self, name, description, expected):
        assert is_login_workflow(plan(name, description=description)) is expected

    def test_inject_credentials(self):
        creds = Credentials(email="me@site.com", password="s3cret")

        assert inject_credentials(fill("#email", "x"), creds).value == "me@site.com"
        assert inject_credentials(fill("input[name=pass]", "x"), creds).value == "s3cret"
        assert inject_credentials(fill("#field", "x", expected="Password accepted"), creds).value == "s3cret"
        assert inject_credentials(fill("#city", "Paris"), creds).value == "Paris"
        assert inject_credentials(click("#email"), creds).value is None
        assert inject_credentials(fill("#email", "x"), None).value == "x"

    def test_password_checked_before_email(self):
        creds = Credentials(email="me@site.com", password="s3cret")
        assert inject_credentials(fill("#user-password", "x"), creds).value == "s3cret"

    @pytest.mark.parametrize("selector,expected", [
        ('button[type="submit"], input[type="submit"]', True),
        ("getByRole('button', { name: 'Sign Up' })", True),
        ("#subscribe-btn", True),
        ("#menu-toggle", False),
    ])
    def test_is_submit_like_click(self, selector, expected):
        assert is_submit_like_click(click(selector)) is expected

    def test_fill_is_never_submit_like(self):
        assert not is_submit_like_click(fill("#submit", "x"))


class TestRecalculateSummary:

    def test_clean_artifact(self):
        artifact = recalculate_execution_summary(ExecutionArtifact(session_id="s", target_url=BASE))

        assert artifact.total_issues == 0
        assert artifact.exit_code == 0

    def test_counts_every_kind_of_issue(self):
        failed = WorkflowExecutionResult(workflow_name="A", errors=ErrorCollector(
            console_errors=[{"message": "x"}], network_failures=[{"url": "u", "status": 500}],
        ))
        artifact = ExecutionArtifact(
            session_id="s", target_url=BASE,
            workflow_results=[failed],
            dead_buttons=[DeadButtonResult(is_dead=True, selector="#a"), DeadButtonResult(is_dead=False, selector="#b")],
            broken_forms=[BrokenFormResult(is_broken=True, form_selector="form#c")],
            broken_links=[BrokenLink(url=f"{BASE}/x", source_url=BASE, status_code=404, status_text="Not Found")],
            page_audits=[PageAudit(url=BASE, accessibility=AccessibilityReport(url=BASE, violations=[
                AccessibilityViolation(id="image-alt", impact=Impact.CRITICAL, description="d"),
                AccessibilityViolation(id="region", impact=Impact.MINOR, description="d"),
            ]))],
        )
        recalculate_execution_summary(artifact)

        assert artifact.total_issues == 6
        assert artifact.exit_code == 1


class TestWorkflowExecutor:

    @pytest.mark.asyncio
    async def test_dead_click_recorded(self):
        browser = ScriptedBrowser(FakePage())
        artifact = await executor(browser).execute([plan("Browse", click("#noop"))])

        result = artifact.workflow_results[0]
        assert result.overall_status == "passed"
        assert [d.selector for d in artifact.dead_buttons] == ["#noop"]
        assert artifact.total_issues == 1
        assert artifact.exit_code == 1

    @pytest.mark.asyncio
    async def test_dom_change_is_not_dead(self):
        page = FakePage()

        def open_menu(p):
            p.dom_size += 12

        page.on_click["#menu"] = open_menu
        artifact = await executor(ScriptedBrowser(page)).execute([plan("Menu", click("#menu"))])

        assert artifact.dead_buttons == []
        assert artifact.exit_code == 0

    @pytest.mark.asyncio
    async def test_network_request_is_not_dead(self):
        page = FakePage()
        page.on_click["#like"] = lambda p: p.emit("request", FakeRequest(url=f"{BASE}/api/like"))
        artifact = await executor(ScriptedBrowser(page)).execute([plan("Like", click("#like"))])

        assert artifact.dead_buttons == []

    @pytest.mark.asyncio
    async def test_failed_step_captures_evidence_and_continues(self):
        page = FakePage()
        page.fail_selectors["#buy"] = "Timeout 10000ms exceeded"
        store = ScreenshotStore()
        steps = (click("#buy"), WorkflowStep(action="navigate", selector="/pricing"))

        artifact = await executor(ScriptedBrowser(page), screenshots=store).execute([plan("Checkout", *steps)])

        result = artifact.workflow_results[0]
        assert [s.status for s in result.step_results] == [StepStatus.FAILED, StepStatus.PASSED]
        assert result.step_results[0].evidence.page_url == BASE
        assert result.step_results[0].evidence.screenshot_ref is not None
        assert result.overall_status == "failed"
        assert artifact.exit_code == 1
        assert page.gotos[:2] == [BASE, f"{BASE}/pricing"]

    @pytest.mark.asyncio
    async def test_silent_form_submit_reported_as_broken_form(self):
        page = FakePage()
        page.locator_evaluations["#email"] = "form#signup"
        page.locator_counts["form#signup"] = 1
        page.scripted[FORM_MARKER] = {
            "action": f"{BASE}/signup", "method": "POST",
            "fields": [{"type": "email", "name": "email"}],
        }
        steps = (fill("#email", "a@b.com"), click("getByRole('button', { name: 'Sign Up' })"))

        artifact = await executor(ScriptedBrowser(page)).execute([plan("Sign up", *steps)])

        assert [f.form_selector for f in artifact.broken_forms] == ["form#signup"]
        assert artifact.dead_buttons == []

    @pytest.mark.asyncio
    async def test_broken_form_without_id_located_by_ancestry(self):
        page = FakePage()
        signup = "html > body > main > form"
        page.locator_evaluations["#email"] = [
            {"tag": "body", "id": "", "nth": 1, "siblings": 1},
            {"tag": "main", "id": "", "nth": 1, "siblings": 1},
            {"tag": "form", "id": "", "nth": 1, "siblings": 1},
        ]
        page.locator_counts[signup] = 1
        page.scripted[FORM_MARKER] = {
            "action": f"{BASE}/signup", "method": "POST",
            "fields": [{"type": "email", "name": "email"}],
        }
        steps = (fill("#email", "a@b.com"), click("getByRole('button', { name: 'Sign Up' })"))

        artifact = await executor(ScriptedBrowser(page)).execute([plan("Sign up", *steps)])

        assert [f.form_selector for f in artifact.broken_forms] == [signup]
        assert artifact.dead_buttons == []

    @pytest.mark.asyncio
    async def test_login_workflow_uses_credentials(self):
        page = FakePage()
        page.on_click["#login"] = lambda p: setattr(p, "url", f"{BASE}/dashboard")
        steps = (fill("#email", "placeholder@x.com"), fill("#password", "placeholder"), click("#login"))
        creds = Credentials(email="me@site.com", password="s3cret")

        artifact = await executor(ScriptedBrowser(page), credentials=creds).execute([plan("Login", *steps)])

        assert page.fills == [("#email", "me@site.com"), ("#password", "s3cret")]
        assert artifact.workflow_results[0].overall_status == "passed"

    @pytest.mark.asyncio
    async def test_non_login_workflow_keeps_planned_values(self):
        page = FakePage()
        creds = Credentials(email="me@site.com", password="s3cret")
        await executor(ScriptedBrowser(page), credentials=creds).execute([plan("Contact", fill("#email", "a@b.com"))])

        assert page.fills == [("#email", "a@b.com")]

    @pytest.mark.asyncio
    async def test_closed_page_skips_rest(self):
        page = FakePage()
        page.on_click["#close"] = lambda p: setattr(p, "closed", True)
        steps = (click("#close"), click("#a"), click("#b"))

        artifact = await executor(ScriptedBrowser(page)).execute([plan("Popup", *steps)])

        statuses = [s.status for s in artifact.workflow_results[0].step_results]
        assert statuses == [StepStatus.PASSED, StepStatus.SKIPPED, StepStatus.SKIPPED]
        assert artifact.workflow_results[0].step_results[1].error == "Page closed"

    @pytest.mark.asyncio
    async def test_page_open_failure_fails_workflow(self):
        artifact = await executor(BrokenBrowser()).execute([plan("A", click("#a"), click("#b"))])

        result = artifact.workflow_results[0]
        assert [s.status for s in result.step_results] == [StepStatus.FAILED, StepStatus.SKIPPED]
        assert result.step_results[0].error.startswith("Could not open page")
        assert result.step_results[0].evidence.page_url == BASE
        assert result.overall_status == "failed"
        assert artifact.exit_code == 1

        health = calculate_health_score(artifact)
        assert health.overall <= 50
        assert health.checks_passed == 0

    @pytest.mark.asyncio
    async def test_page_open_failure_without_steps(self):
        artifact = await executor(BrokenBrowser()).execute([plan("Empty")])

        result = artifact.workflow_results[0]
        assert [(s.action, s.status) for s in result.step_results] == [("navigate", StepStatus.FAILED)]
        assert result.overall_status == "failed"

    @pytest.mark.asyncio
    async def test_errors_collected_per_workflow(self):
        noisy, quiet = FakePage(), FakePage()
        noisy.on_click["#boom"] = lambda p: p.emit("console", FakeConsoleMessage(type="error", text="boom"))
        for p in (noisy, quiet):
            p.dom_size = 10

        artifact = await executor(ScriptedBrowser(noisy, quiet)).execute([
            plan("Noisy", click("#boom")), plan("Quiet", WorkflowStep(action="navigate", selector="/")),
        ])

        assert [m["message"] for m in artifact.workflow_results[0].errors.console_errors] == ["boom"]
        assert artifact.workflow_results[1].errors.total == 0
        assert all(p.closed for p in (noisy, quiet))

    @pytest.mark.asyncio
    async def test_pages_audited_once_per_run(self):
        steps = (WorkflowStep(action="navigate", selector="/pricing"),)
        artifact = await executor(ScriptedBrowser(FakePage(), FakePage())).execute([
            plan("One", *steps), plan("Two", *steps),
        ])

        assert sorted(a.url for a in artifact.page_audits) == [BASE, f"{BASE}/pricing"]

    @pytest.mark.asyncio
    async def test_progress_events(self):
        events = []
        await executor(ScriptedBrowser(FakePage()), on_progress=lambda t, d: events.append(t)).execute(
            [plan("Browse", click("#noop"))],
        )

        assert events == ["workflow_started", "dead_button", "step_completed", "workflow_completed"]

    @pytest.mark.asyncio
    async def test_failing_progress_callback_is_ignored(self):
        def explode(event, data):
            raise RuntimeError("ui gone")

        artifact = await executor(ScriptedBrowser(FakePage()), on_progress=explode).execute([plan("A")])
        assert len(artifact.workflow_results) == 1

    @pytest.mark.asyncio
    async def test_no_plans(self):
        artifact = await executor(ScriptedBrowser()).execute([])

        assert artifact.workflow_results == []
        assert artifact.exit_code == 0
        assert artifact.session_id == "test"
