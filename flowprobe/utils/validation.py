"""Input validation for URLs, selectors and step values.

These checks run on everything that comes from outside the engine: the
target URL, and steps produced by the planner.
"""

from __future__ import annotations

import math
import re
from urllib.parse import urljoin, urlparse

from flowprobe.errors import SSRFError, ValidationError
from flowprobe.utils.network import is_private_address, parse_ip


MAX_SELECTOR_LENGTH = 500
MAX_PAGES_CEILING = 500
DEFAULT_MAX_PAGES = 50

_SCRIPT_TAG = re.compile(r"<script\b[^>]*>[\s\S]*?</script>", re.I)
_JS_URI = re.compile(r"javascript\s*:", re.I)
_EVENT_HANDLER = re.compile(r"\bon\w+\s*=", re.I)


def validate_url(url: str) -> str:
    """Accept only http(s) URLs that do not point at a private IP literal."""
    trimmed = url.strip()
    try:
        parsed = urlparse(trimmed)
    except ValueError as e:
        raise ValidationError(f'Invalid URL: "{trimmed}". Must be a valid http:// or https:// URL.') from e

    if parsed.scheme not in ("http", "https"):
        if not parsed.scheme:
            raise ValidationError(f'Invalid URL: "{trimmed}". Must be a valid http:// or https:// URL.')
        raise ValidationError(
            f'Unsafe URL scheme "{parsed.scheme}:" in "{trimmed}". Only http:// and https:// are allowed.'
        )
    if not parsed.hostname:
        raise ValidationError(f'Invalid URL: "{trimmed}". Missing hostname.')

    literal = parse_ip(parsed.hostname)
    if literal is not None and is_private_address(literal):
        raise SSRFError(
            f'SSRF protection: URL "{trimmed}" resolves to private/loopback address '
            f'"{parsed.hostname}". Only public URLs are allowed.'
        )
    return trimmed


def resolve_navigation_target(target: str, base_url: str | None) -> str:
    """Resolve a relative navigate target ("/pricing") against the run's base URL."""
    target = target.strip()
    if base_url and not urlparse(target).scheme:
        return urljoin(base_url, target)
    return target


def validate_navigation_url(navigation_url: str, base_url: str) -> str:
    """Allow only the base hostname or its subdomains."""
    validated = validate_url(navigation_url)
    nav_host = (urlparse(validated).hostname or "").lower()
    base_host = (urlparse(base_url).hostname or "").lower()

    if nav_host != base_host and not nav_host.endswith("." + base_host):
        raise ValidationError(
            f'Navigation to "{nav_host}" blocked. Only same-origin navigation '
            f'allowed (base: "{base_host}").'
        )
    return validated


def validate_selector(selector: str) -> str:
    if len(selector) > MAX_SELECTOR_LENGTH:
        raise ValidationError(
            f"Selector too long ({len(selector)} chars, max {MAX_SELECTOR_LENGTH})."
        )
    return selector


def sanitize_value(value: str) -> str:
    """Strip script tags, javascript: URIs and inline event handlers."""
    sanitized = _SCRIPT_TAG.sub("", value)
    sanitized = _JS_URI.sub("", sanitized)
    return _EVENT_HANDLER.sub("", sanitized)


def validate_max_pages(value: int | float | None) -> int:
    """Clamp max_pages to [1, 500]. 0 means "as many as allowed" (500)."""
    if value is None:
        return DEFAULT_MAX_PAGES
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_MAX_PAGES
    if math.isnan(number) or number < 0:
        return DEFAULT_MAX_PAGES
    if number == 0:
        return MAX_PAGES_CEILING
    return min(max(int(number), 1), MAX_PAGES_CEILING)
