import io
import sys

import pytest
from rich.console import Console

from flowprobe.core.pipeline import ProbeResult
from flowprobe.core.report import print_report
from flowprobe.core.scoring import calculate_health_score
from flowprobe.core.sitemap import build_sitemap
from flowprobe.models.discovery import CrawlResult, PageData
from flowprobe.models.flow import StepResult, StepStatus
from flowprobe.models.types import ExecutionArtifact, IssuePriority, PrioritizedIssue, WorkflowExecutionResult
from scan import _exit_code, main


BASE = "https://example.com/"


def probe_result(issues=(), statuses=(StepStatus.PASSED,), warnings=()) -> ProbeResult:
    pages = [PageData(url=BASE, title="Home"), PageData(url=f"{BASE}about", title="About")]
    workflow = WorkflowExecutionResult(
        workflow_name="Browse",
        step_results=[StepResult(step_index=i, action="click", selector="#a", status=s)
                      for i, s in enumerate(statuses)],
    )
    artifact = ExecutionArtifact(session_id="s", target_url=BASE, workflow_results=[workflow])
    return ProbeResult(
        crawl=CrawlResult(pages=pages, warnings=list(warnings)),
        sitemap=build_sitemap(pages, BASE),
        plans=[],
        artifact=artifact,
        health=calculate_health_score(artifact),
        issues=list(issues),
    )


def render(result: ProbeResult) -> str:
    buffer = io.StringIO()
    print_report(result, console=Console(file=buffer, width=140, color_system=None))
    return buffer.getvalue()


class TestReport:

    def test_clean_run(self):
        output = render(probe_result())

        assert "Health Score: 100/100 (good)" in output
        assert "No issues found." in output
        assert "Browse" in output
        assert "About" in output

    def test_issues_listed(self):
        issues = [
            PrioritizedIssue(priority=IssuePriority.HIGH, category="Dead Button",
                             summary="Submit button doesn't do anything when clicked",
                             location=BASE, occurrence_count=3),
            PrioritizedIssue(priority=IssuePriority.LOW, category="Broken Image",
                             summary="Image failed to load", location=f"{BASE}about"),
        ]
        output = render(probe_result(issues=issues))

        assert "1 high" in output
        assert "1 low" in output
        assert "Dead Button" in output
        assert "Submit button doesn't do anything" in output

    def test_warnings_capped(self):
        output = render(probe_result(warnings=[f"warning number {i}" for i in range(8)]))

        assert "Warnings: 8" in output
        assert "warning number 4" in output
        assert "warning number 5" not in output


class TestExitCode:

    def test_clean(self):
        assert _exit_code(probe_result()) == 0

    def test_failed_workflow(self):
        assert _exit_code(probe_result(statuses=(StepStatus.PASSED, StepStatus.FAILED))) == 1

    def test_high_priority_issue(self):
        issue = PrioritizedIssue(priority=IssuePriority.HIGH, category="Console Error", summary="boom")
        assert _exit_code(probe_result(issues=[issue])) == 1

    def test_only_low_priority_issues(self):
        issue = PrioritizedIssue(priority=IssuePriority.LOW, category="Broken Image", summary="img")
        assert _exit_code(probe_result(issues=[issue])) == 0


class TestCommandLine:

    @pytest.mark.parametrize("flags", [["--email", "me@site.com"], ["--password", "s3cret"]])
    def test_partial_credentials_rejected(self, monkeypatch, capsys, flags):
        monkeypatch.setattr(sys, "argv", ["scan.py", "https://example.com", *flags])

        with pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 2
        assert "--email and --password must be given together" in capsys.readouterr().err
