"""Exceptions raised by flowprobe.

Per-unit failures (one page, one step, one link) never surface as
exceptions; they are converted into result objects. These types cover the
cases that do propagate: rejected input and browser launch failures.
"""

from __future__ import annotations


class FlowprobeError(Exception):
    """Base class for all flowprobe errors."""


class ValidationError(FlowprobeError, ValueError):
    """A URL, selector, or navigation target was rejected."""


class SSRFError(ValidationError):
    """A URL resolves to a private, loopback, or reserved address."""

    def __init__(self, message: str):
        if "SSRF protection" not in message:
            message = f"SSRF protection: {message}"
        super().__init__(message)


class BrowserLaunchError(FlowprobeError):
    """The browser could not be started. Fatal for the whole run."""
