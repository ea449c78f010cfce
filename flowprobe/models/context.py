"""Per-page error state.

ErrorCollector is filled by passive listeners for as long as a page is
open. ErrorEvidence is a snapshot of that state taken when a step fails.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from flowprobe.models.discovery import utc_now_iso


@dataclass
class ErrorCollector:
    console_errors: list[dict] = field(default_factory=list)    # {message, url, timestamp}
    network_failures: list[dict] = field(default_factory=list)  # {url, status, method, resourceType, pageUrl}
    broken_images: list[dict] = field(default_factory=list)     # {url, selector, status, pageUrl}

    @property
    def total(self) -> int:
        return len(self.console_errors) + len(self.network_failures) + len(self.broken_images)

    def snapshot(self) -> ErrorCollector:
        return ErrorCollector(
            console_errors=list(self.console_errors),
            network_failures=list(self.network_failures),
            broken_images=list(self.broken_images),
        )

    def to_dict(self) -> dict:
        return {
            "consoleErrors": list(self.console_errors),
            "networkFailures": list(self.network_failures),
            "brokenImages": list(self.broken_images),
        }


@dataclass
class ErrorEvidence:
    """What the page looked like at the moment a step failed."""

    screenshot_ref: Any = None
    console_errors: list[str] = field(default_factory=list)
    network_failures: list[dict] = field(default_factory=list)   # {url, status}
    page_url: str = ""
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        d = {
            "consoleErrors": self.console_errors,
            "networkFailures": self.network_failures,
            "pageUrl": self.page_url,
            "timestamp": self.timestamp,
        }
        if self.screenshot_ref is not None:
            d["screenshotRef"] = self.screenshot_ref.to_dict()
        return d
