"""Workflow data structures.

WorkflowPlan and WorkflowStep are produced by an external planner and
treated as read-only input. StepResult, DeadButtonResult and
BrokenFormResult are what the execution engine produces for them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from flowprobe.models.context import ErrorEvidence


ACTIONS = ("navigate", "click", "fill", "select", "wait", "expect")


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class WorkflowStep:
    """A single planned step."""

    action: str       # navigate | click | fill | select | wait | expect
    selector: str
    value: str | None = None
    expected_result: str = ""
    confidence: float = 1.0

    @classmethod
    def from_dict(cls, data: dict) -> WorkflowStep:
        return cls(
            action=data["action"],
            selector=data.get("selector", ""),
            value=data.get("value"),
            expected_result=data.get("expectedResult", data.get("expected_result", "")),
            confidence=float(data.get("confidence", 1.0)),
        )

    def to_dict(self) -> dict:
        d = {
            "action": self.action,
            "selector": self.selector,
            "expectedResult": self.expected_result,
            "confidence": self.confidence,
        }
        if self.value is not None:
            d["value"] = self.value
        return d


@dataclass(frozen=True)
class WorkflowPlan:
    """A user journey to test (e.g. Sign up, Checkout)."""

    workflow_name: str
    description: str = ""
    steps: tuple[WorkflowStep, ...] = ()
    priority: str = "important"          # critical | important | nice-to-have
    estimated_duration: int = 0
    source: str = "auto-discovered"      # auto-discovered | user-hint

    @classmethod
    def from_dict(cls, data: dict) -> WorkflowPlan:
        return cls(
            workflow_name=data.get("workflowName", data.get("workflow_name", "Unnamed workflow")),
            description=data.get("description", ""),
            steps=tuple(WorkflowStep.from_dict(s) for s in data.get("steps", [])),
            priority=data.get("priority", "important"),
            estimated_duration=int(data.get("estimatedDuration", data.get("estimated_duration", 0))),
            source=data.get("source", "auto-discovered"),
        )

    def to_dict(self) -> dict:
        return {
            "workflowName": self.workflow_name,
            "description": self.description,
            "steps": [s.to_dict() for s in self.steps],
            "priority": self.priority,
            "estimatedDuration": self.estimated_duration,
            "source": self.source,
        }


@dataclass
class StepResult:
    """Outcome of executing one step."""

    step_index: int
    action: str
    selector: str
    status: StepStatus = StepStatus.PENDING
    duration: int = 0     # ms
    error: str | None = None
    evidence: ErrorEvidence | None = None
    skipped_fields: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = {
            "stepIndex": self.step_index,
            "action": self.action,
            "selector": self.selector,
            "status": self.status.value,
            "duration": self.duration,
        }
        if self.error is not None:
            d["error"] = self.error
        if self.evidence is not None:
            d["evidence"] = self.evidence.to_dict()
        if self.skipped_fields:
            d["skippedFields"] = self.skipped_fields
        return d


@dataclass(frozen=True)
class ClickStateSnapshot:
    """Observable page state just before or just after a click."""

    url: str
    dom_size: int
    had_network_activity: bool = False


@dataclass
class DeadButtonResult:
    is_dead: bool
    selector: str
    reason: str | None = None

    def to_dict(self) -> dict:
        d = {"isDead": self.is_dead, "selector": self.selector}
        if self.reason:
            d["reason"] = self.reason
        return d


@dataclass
class BrokenFormResult:
    is_broken: bool
    form_selector: str
    reason: str | None = None
    filled_fields: int = 0
    skipped_fields: int = 0

    def to_dict(self) -> dict:
        d = {
            "isBroken": self.is_broken,
            "formSelector": self.form_selector,
            "filledFields": self.filled_fields,
            "skippedFields": self.skipped_fields,
        }
        if self.reason:
            d["reason"] = self.reason
        return d


@dataclass
class FillResult:
    """How many fields of a form were filled, and why the others were not."""

    filled: int = 0
    skipped: list[dict] = field(default_factory=list)   # [{"selector": ..., "reason": ...}]
