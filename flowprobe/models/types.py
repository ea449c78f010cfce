from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from flowprobe.models.context import ErrorCollector
from flowprobe.models.discovery import BrokenLink, utc_now_iso
from flowprobe.models.flow import (
    BrokenFormResult, DeadButtonResult, StepResult, StepStatus,
)


class IssuePriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Impact(str, Enum):
    CRITICAL = "critical"
    SERIOUS = "serious"
    MODERATE = "moderate"
    MINOR = "minor"


@dataclass(frozen=True)
class ScreenshotRef:
    name: str
    content_hash: str
    data_b64: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "contentHash": self.content_hash}


@dataclass
class AccessibilityViolation:
    id: str
    impact: Impact
    description: str
    nodes: int = 1
    help_url: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "impact": self.impact.value,
            "description": self.description,
            "nodes": self.nodes,
            "helpUrl": self.help_url,
        }


@dataclass
class AccessibilityReport:
    url: str
    violations: list[AccessibilityViolation] = field(default_factory=list)
    passes: int = 0
    incomplete: int = 0

    @property
    def violation_count(self) -> int:
        return len(self.violations)

    def count(self, impact: Impact) -> int:
        return sum(1 for v in self.violations if v.impact == impact)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "violationCount": self.violation_count,
            "violations": [v.to_dict() for v in self.violations],
            "passes": self.passes,
            "incomplete": self.incomplete,
        }


@dataclass
class PerformanceMetrics:
    url: str
    lcp: int = 0                  # ms
    dom_content_loaded: int = 0   # ms
    total_load_time: int = 0      # ms

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "lcp": self.lcp,
            "domContentLoaded": self.dom_content_loaded,
            "totalLoadTime": self.total_load_time,
        }


@dataclass
class PageAudit:
    url: str
    accessibility: AccessibilityReport | None = None
    performance: PerformanceMetrics | None = None

    def to_dict(self) -> dict:
        d: dict = {"url": self.url}
        if self.accessibility is not None:
            d["accessibility"] = self.accessibility.to_dict()
        if self.performance is not None:
            d["performance"] = self.performance.to_dict()
        return d


@dataclass
class WorkflowExecutionResult:
    """Aggregate of one workflow's step results."""

    workflow_name: str
    description: str = ""
    step_results: list[StepResult] = field(default_factory=list)
    errors: ErrorCollector = field(default_factory=ErrorCollector)
    duration: int = 0   # ms
    screenshot_ref: ScreenshotRef | None = None

    @property
    def total_steps(self) -> int:
        return len(self.step_results)

    @property
    def passed_steps(self) -> int:
        return sum(1 for s in self.step_results if s.status == StepStatus.PASSED)

    @property
    def failed_steps(self) -> int:
        return sum(1 for s in self.step_results if s.status == StepStatus.FAILED)

    @property
    def skipped_steps(self) -> int:
        return sum(1 for s in self.step_results if s.status == StepStatus.SKIPPED)

    @property
    def overall_status(self) -> str:
        return "failed" if self.failed_steps > 0 else "passed"

    def to_dict(self) -> dict:
        d = {
            "workflowName": self.workflow_name,
            "description": self.description,
            "totalSteps": self.total_steps,
            "passedSteps": self.passed_steps,
            "failedSteps": self.failed_steps,
            "skippedSteps": self.skipped_steps,
            "stepResults": [s.to_dict() for s in self.step_results],
            "errors": self.errors.to_dict(),
            "overallStatus": self.overall_status,
            "duration": self.duration,
        }
        if self.screenshot_ref is not None:
            d["pageScreenshotRef"] = self.screenshot_ref.to_dict()
        return d


@dataclass
class ExecutionArtifact:
    """Complete output of a run. Scoring and reporting only read it."""

    session_id: str
    target_url: str
    workflow_results: list[WorkflowExecutionResult] = field(default_factory=list)
    page_audits: list[PageAudit] = field(default_factory=list)
    dead_buttons: list[DeadButtonResult] = field(default_factory=list)
    broken_forms: list[BrokenFormResult] = field(default_factory=list)
    broken_links: list[BrokenLink] = field(default_factory=list)
    total_issues: int = 0
    exit_code: int = 0
    version: str = "1.0.0"
    stage: str = "execution"
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "stage": self.stage,
            "timestamp": self.timestamp,
            "sessionId": self.session_id,
            "targetUrl": self.target_url,
            "workflowResults": [w.to_dict() for w in self.workflow_results],
            "pageAudits": [a.to_dict() for a in self.page_audits],
            "deadButtons": [d.to_dict() for d in self.dead_buttons],
            "brokenForms": [b.to_dict() for b in self.broken_forms],
            "brokenLinks": [b.to_dict() for b in self.broken_links],
            "totalIssues": self.total_issues,
            "exitCode": self.exit_code,
        }


@dataclass
class HealthScore:
    overall: int
    label: str   # good | needs-work | poor
    breakdown: dict[str, int] = field(default_factory=dict)
    checks_passed: int = 0
    checks_total: int = 0

    def to_dict(self) -> dict:
        return {
            "overall": self.overall,
            "label": self.label,
            "breakdown": self.breakdown,
            "checksPassed": self.checks_passed,
            "checksTotal": self.checks_total,
        }


@dataclass
class PrioritizedIssue:
    priority: IssuePriority
    category: str
    summary: str
    impact: str = ""
    fix_suggestion: str = ""
    location: str = ""
    selector: str | None = None
    screenshot_ref: ScreenshotRef | None = None
    technical_details: str | None = None
    occurrence_count: int | None = None

    def to_dict(self) -> dict:
        d = {
            "priority": self.priority.value,
            "category": self.category,
            "summary": self.summary,
            "impact": self.impact,
            "fixSuggestion": self.fix_suggestion,
            "location": self.location,
        }
        if self.selector is not None:
            d["selector"] = self.selector
        if self.screenshot_ref is not None:
            d["screenshotRef"] = self.screenshot_ref.to_dict()
        if self.technical_details is not None:
            d["technicalDetails"] = self.technical_details
        if self.occurrence_count is not None:
            d["occurrenceCount"] = self.occurrence_count
        return d
