"""Health score, issue prioritization and de-duplication.

All three are pure functions of an ExecutionArtifact (or of the issue list
built from one): nothing here touches the browser.

Score weights: workflows 40%, errors 30%, accessibility 20%, performance 10%.
Any failed workflow caps the overall score at 50.
"""

from __future__ import annotations

import re
from typing import Callable
from urllib.parse import urlparse

from flowprobe.models.flow import StepStatus
from flowprobe.models.types import (
    ExecutionArtifact, HealthScore, Impact, IssuePriority, PrioritizedIssue,
)
from flowprobe.utils.sanitizer import redact_sensitive_data


WEIGHTS = {"workflows": 0.4, "errors": 0.3, "accessibility": 0.2, "performance": 0.1}
FAILED_WORKFLOW_CAP = 50

LCP_GOOD_MS = 2500
LCP_NEEDS_WORK_MS = 4000

PRIORITY_RANK = {IssuePriority.HIGH: 0, IssuePriority.MEDIUM: 1, IssuePriority.LOW: 2}

URL_PATTERN = re.compile(r"https?://[^\s)'\"]+")


# ─── Health score ───

def _performance_score(artifact: ExecutionArtifact) -> int:
    lcps = [a.performance.lcp for a in artifact.page_audits
            if a.performance is not None and a.performance.lcp > 0]
    if not lcps:
        return 100
    average = sum(lcps) / len(lcps)
    if average < LCP_GOOD_MS:
        return 100
    if average <= LCP_NEEDS_WORK_MS:
        return 75
    return 50


def score_label(score: int) -> str:
    if score >= 80:
        return "good"
    if score >= 50:
        return "needs-work"
    return "poor"


def calculate_health_score(artifact: ExecutionArtifact) -> HealthScore:
    workflows = artifact.workflow_results
    passed_workflows = sum(1 for w in workflows if w.overall_status == "passed")
    workflow_score = passed_workflows / len(workflows) * 100 if workflows else 100

    error_score = max(0, 100 - artifact.total_issues * 2)

    critical = serious = 0
    for audit in artifact.page_audits:
        if audit.accessibility is not None:
            critical += audit.accessibility.count(Impact.CRITICAL)
            serious += audit.accessibility.count(Impact.SERIOUS)
    accessibility_score = max(0, 100 - critical * 10 - serious * 5)

    performance_score = _performance_score(artifact)

    overall = round(
        workflow_score * WEIGHTS["workflows"]
        + error_score * WEIGHTS["errors"]
        + accessibility_score * WEIGHTS["accessibility"]
        + performance_score * WEIGHTS["performance"]
    )
    if any(w.overall_status == "failed" for w in workflows):
        overall = min(overall, FAILED_WORKFLOW_CAP)

    total_steps = sum(w.total_steps for w in workflows)
    passed_steps = sum(
        1 for w in workflows for s in w.step_results if s.status == StepStatus.PASSED
    )
    clean_audits = sum(
        1 for a in artifact.page_audits
        if a.accessibility is None or a.accessibility.count(Impact.CRITICAL) == 0
    )

    return HealthScore(
        overall=overall,
        label=score_label(overall),
        breakdown={
            "workflows": round(workflow_score),
            "errors": error_score,
            "accessibility": accessibility_score,
            "performance": performance_score,
        },
        checks_passed=passed_steps + clean_audits,
        checks_total=total_steps + len(artifact.page_audits),
    )


# ─── Issue building ───

def sanitize_issue_summary(raw: str) -> str:
    """Strip Playwright call logs and turn timeout dumps into one readable line."""
    cleaned = raw
    for marker in ("Call log:", "=== logs ==="):
        idx = cleaned.find(marker)
        if idx != -1:
            cleaned = cleaned[:idx]
    cleaned = re.sub(r"page\.click:\s*Timeout\s+\d+ms\s+exceeded\.?", "Click timed out on element", cleaned, flags=re.I)
    cleaned = re.sub(r"page\.fill:\s*Timeout\s+\d+ms\s+exceeded\.?", "Could not fill form field", cleaned, flags=re.I)
    cleaned = re.sub(r"page\.\w+:\s*Timeout\s+\d+ms\s+exceeded\.?", "Action timed out", cleaned, flags=re.I)
    cleaned = re.sub(r"[\s\-:]+$", "", cleaned.strip())
    if len(cleaned) > 120:
        cleaned = cleaned[:117] + "..."
    return redact_sensitive_data(cleaned or raw[:120])


def humanize_selector(selector: str) -> str:
    """'button:has-text("Subscribe")' -> '"Subscribe" button'."""
    match = re.search(r':?has-text\("([^"]+)"\)', selector)
    if match:
        return f'"{match.group(1)}" button'
    match = re.search(r'role=button\[name="([^"]+)"\]', selector)
    if match:
        return f'"{match.group(1)}" button'
    if '[type="submit"]' in selector:
        return "Submit button"
    if re.fullmatch(r"#[\w-]+", selector):
        return selector
    return "A button on the page"


def humanize_form_selector(selector: str) -> str:
    match = re.search(r"form[#.]([\w-]+)", selector)
    if match:
        name = re.sub(r"\bform\b", "", match.group(1).replace("-", " ").replace("_", " "), flags=re.I).strip()
        return f"{name} form" if name else "form"
    return "form"


def _path_of(url: str) -> str:
    return urlparse(url).path or url


def _accessibility_fix(violation_id: str, description: str, help_url: str) -> str:
    fixes = {
        "image-alt": "Add descriptive alt text to every <img>. Use alt=\"\" for decorative images.",
        "label": "Link a <label> to each form input with the \"for\" attribute, or wrap the input in a <label>.",
        "html-has-lang": "Add a lang attribute to the <html> tag, e.g. <html lang=\"en\">.",
        "document-title": "Give every page a descriptive <title>.",
        "button-name": "Add visible text or an aria-label to every <button>.",
        "link-name": "Give every link descriptive text that makes sense out of context.",
    }
    return fixes.get(violation_id, f"{description}. See {help_url} for guidance.")


def prioritize_issues(artifact: ExecutionArtifact) -> list[PrioritizedIssue]:
    """Turn everything an artifact found into plain-language issues, high priority first."""
    issues: list[PrioritizedIssue] = []
    fallback_screenshot = next(
        (w.screenshot_ref for w in artifact.workflow_results if w.screenshot_ref is not None), None,
    )

    for workflow in artifact.workflow_results:
        for step in workflow.step_results:
            if step.status != StepStatus.FAILED:
                continue
            evidence = step.evidence
            issues.append(PrioritizedIssue(
                priority=IssuePriority.HIGH,
                category="Workflow Error",
                summary=sanitize_issue_summary(f"{workflow.workflow_name}: {step.error or 'Step failed'}"),
                impact="This breaks a core user flow on your site",
                fix_suggestion=f"Check that {step.selector!r} exists and can be used ({step.action}) on this page.",
                location=(evidence.page_url if evidence and evidence.page_url else artifact.target_url),
                selector=step.selector,
                screenshot_ref=evidence.screenshot_ref if evidence else None,
                technical_details=redact_sensitive_data((step.error or "")[:500]) or None,
            ))

        for error in workflow.errors.console_errors:
            issues.append(PrioritizedIssue(
                priority=IssuePriority.HIGH,
                category="Console Error",
                summary=sanitize_issue_summary(error.get("message", "")),
                impact="This JavaScript error can break buttons, forms or dynamic content",
                fix_suggestion="Open the browser console on this page and fix the script that throws.",
                location=error.get("url") or artifact.target_url,
                technical_details=error.get("message"),
            ))

        for failure in workflow.errors.network_failures:
            status = failure.get("status", 0)
            issues.append(PrioritizedIssue(
                priority=IssuePriority.MEDIUM,
                category="Network Error",
                summary=f"Request failed with HTTP {status}: {failure.get('url', '')}",
                impact=("A resource is missing; users may see broken content" if status == 404
                        else "A request the page depends on is failing"),
                fix_suggestion="Check server logs for this endpoint, or remove the reference to it.",
                location=failure.get("pageUrl") or artifact.target_url,
                technical_details=f"HTTP {status}: {failure.get('url', '')}",
            ))

        for image in workflow.errors.broken_images:
            issues.append(PrioritizedIssue(
                priority=IssuePriority.LOW,
                category="Broken Image",
                summary=f"Image failed to load: {image.get('url', '')}",
                impact="Users see an empty box or a broken-image icon",
                fix_suggestion="Fix the image path or upload the missing file.",
                location=image.get("pageUrl") or artifact.target_url,
                selector=image.get("selector"),
                technical_details=f"HTTP {image.get('status', 0)}: {image.get('url', '')}",
            ))

    for dead in artifact.dead_buttons:
        if not dead.is_dead:
            continue
        name = humanize_selector(dead.selector)
        issues.append(PrioritizedIssue(
            priority=IssuePriority.HIGH,
            category="Dead Button",
            summary=f"{name} doesn't do anything when clicked",
            impact=f"Users will click {name} expecting something to happen, but nothing does",
            fix_suggestion=f"Add a click handler or link target to {name}.",
            location=artifact.target_url,
            selector=dead.selector,
            screenshot_ref=fallback_screenshot,
            technical_details=dead.reason,
        ))

    for form in artifact.broken_forms:
        if not form.is_broken:
            continue
        name = humanize_form_selector(form.form_selector)
        if form.skipped_fields > 0:
            fix = (f"The form at {form.form_selector!r} could not be fully filled "
                   f"({form.skipped_fields} fields skipped). Check field names and visibility.")
        else:
            fix = (f"The form at {form.form_selector!r} has no working submit path. Set an action URL "
                   "or add a submit handler that sends the data.")
        issues.append(PrioritizedIssue(
            priority=IssuePriority.HIGH,
            category="Broken Form",
            summary=f"The {name} doesn't work; submitting it has no effect",
            impact=f"Every submission of the {name} is lost",
            fix_suggestion=fix,
            location=f"{artifact.target_url} ({form.form_selector})",
            selector=form.form_selector,
            screenshot_ref=fallback_screenshot,
            technical_details=f"Filled fields: {form.filled_fields}, Skipped fields: {form.skipped_fields}",
        ))

    for link in artifact.broken_links:
        path = _path_of(link.url)
        text = (link.status_text or "").lower()
        is_timeout = link.status_code == 0 and ("timeout" in text or "exceeded" in text)
        if is_timeout:
            issues.append(PrioritizedIssue(
                priority=IssuePriority.LOW,
                category="Broken Link",
                summary=f"Link to {path} timed out (may be slow)",
                impact=f"The page at {path!r} took too long to respond",
                fix_suggestion=f"Check that {link.url} loads in a browser and responds quickly.",
                location=link.source_url,
                technical_details=f"Timeout: {link.url} (found on {link.source_url}). {link.status_text}",
            ))
            continue
        status_label = "unreachable" if link.status_code == 0 else str(link.status_code)
        if link.status_code == 404:
            fix = f"Create the missing page at {path}, or update the link."
        elif link.status_code == 0:
            fix = f"{link.url} could not be reached; check the URL."
        else:
            fix = f"The server returned {link.status_code} for {path}; check server logs."
        issues.append(PrioritizedIssue(
            priority=IssuePriority.MEDIUM,
            category="Broken Link",
            summary=f"Link to {path} is broken ({status_label})",
            impact=f"Visitors who follow the {path!r} link see an error instead of content",
            fix_suggestion=fix,
            location=link.source_url,
            technical_details=f"HTTP {link.status_code}: {link.url} (found on {link.source_url}). {link.status_text}",
        ))

    for audit in artifact.page_audits:
        if audit.accessibility is None:
            continue
        for violation in audit.accessibility.violations:
            if violation.impact == Impact.CRITICAL:
                priority = IssuePriority.HIGH
            elif violation.impact == Impact.SERIOUS:
                priority = IssuePriority.MEDIUM
            else:
                priority = IssuePriority.LOW
            issues.append(PrioritizedIssue(
                priority=priority,
                category="Accessibility",
                summary=violation.description,
                impact=f"{violation.nodes} element(s) are harder or impossible to use with assistive technology",
                fix_suggestion=_accessibility_fix(violation.id, violation.description, violation.help_url),
                location=audit.url,
                screenshot_ref=fallback_screenshot,
                technical_details=f"{violation.id}: {violation.nodes} element(s) affected",
            ))

    return sorted(issues, key=lambda i: PRIORITY_RANK[i.priority])


# ─── De-duplication ───

def _strip_urls(text: str) -> str:
    return URL_PATTERN.sub("<URL>", text)


def _summary_without_urls_key(issue: PrioritizedIssue) -> str:
    return f"{issue.category}|{_strip_urls(issue.summary)}|{issue.location}"


def _selector_key(issue: PrioritizedIssue) -> str:
    return f"{issue.category}|{issue.selector or issue.summary}"


def _exact_key(issue: PrioritizedIssue) -> str:
    return f"{issue.category}|{issue.summary}|{issue.location}"


DEDUP_KEYS: dict[str, Callable[[PrioritizedIssue], str]] = {
    "Console Error": _summary_without_urls_key,
    "Network Error": _summary_without_urls_key,
    "Workflow Error": _summary_without_urls_key,
    "Broken Image": _summary_without_urls_key,
    "Dead Button": _selector_key,
    "Broken Form": _selector_key,
    "Accessibility": _exact_key,
}


def dedup_key(issue: PrioritizedIssue) -> str:
    return DEDUP_KEYS.get(issue.category, _exact_key)(issue)


def deduplicate_issues(issues: list[PrioritizedIssue]) -> list[PrioritizedIssue]:
    """Collapse issues with the same key; keep the highest-priority sample of each group."""
    groups: dict[str, list[PrioritizedIssue]] = {}
    for issue in issues:
        groups.setdefault(dedup_key(issue), []).append(issue)

    result: list[PrioritizedIssue] = []
    for members in groups.values():
        best = min(members, key=lambda i: PRIORITY_RANK[i.priority])
        result.append(PrioritizedIssue(
            priority=best.priority,
            category=best.category,
            summary=best.summary,
            impact=best.impact,
            fix_suggestion=best.fix_suggestion,
            location=best.location,
            selector=best.selector,
            screenshot_ref=best.screenshot_ref,
            technical_details=best.technical_details,
            occurrence_count=len(members) if len(members) > 1 else None,
        ))

    return sorted(result, key=lambda i: PRIORITY_RANK[i.priority])
