"""Secret redaction for captured text and URLs.

Everything the error listeners store passes through here first, so that
evidence can be persisted or handed to an external diagnosis step without
leaking API keys, bearer tokens or passwords.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


REDACTED = "[REDACTED]"

_SECRET_PATTERNS: list[tuple[re.Pattern, str]] = [
    # Anthropic before generic sk- so the longer prefix wins
    (re.compile(r"sk-ant-[A-Za-z0-9_\-]{10,}"), REDACTED),
    (re.compile(r"sk-[A-Za-z0-9_\-]{20,}"), REDACTED),
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}"), REDACTED),
    (re.compile(r"\bgithub_pat_[A-Za-z0-9_]{20,}"), REDACTED),
    (re.compile(r"\bAKIA[0-9A-Z]{16}\b"), REDACTED),
    (re.compile(r"\b(?:sk|rk)_(?:live|test)_[A-Za-z0-9]{10,}"), REDACTED),
    (re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.I), r"\1" + REDACTED),
    (re.compile(r"(Authorization[\"']?\s*[:=]\s*[\"']?)[^\s\"',;]+", re.I), r"\1" + REDACTED),
    (re.compile(
        r"\b(password|passwd|secret|token|apikey|api_key|access_token|auth_token)"
        r"([\"']?\s*[:=]\s*[\"']?)[^\s\"'&,;]+",
        re.I,
    ), r"\1\2" + REDACTED),
    (re.compile(r"\b[a-fA-F0-9]{40,}\b"), REDACTED),
]

# Long base64-ish runs are only secrets when they mix case and digits;
# plain words and paths of the same length are left alone.
_BASE64_CANDIDATE = re.compile(r"[A-Za-z0-9+/]{32,}={0,2}")

SENSITIVE_URL_PARAMS = {
    "token", "key", "apikey", "api_key", "secret", "password", "passwd",
    "access_token", "auth_token", "session", "jwt",
}


def _redact_base64(match: re.Match) -> str:
    value = match.group(0)
    if (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value)
            and re.search(r"[0-9]", value)):
        return REDACTED
    return value


def redact_sensitive_data(text: str) -> str:
    """Replace anything that looks like a credential with [REDACTED]."""
    if not text:
        return text
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return _BASE64_CANDIDATE.sub(_redact_base64, text)


def redact_sensitive_url(url: str) -> str:
    """Blank out sensitive query parameter values, then redact the rest."""
    if not url:
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return redact_sensitive_data(url)

    if parsed.query:
        params = [
            (k, REDACTED if k.lower() in SENSITIVE_URL_PARAMS else v)
            for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        ]
        query = urlencode(params, safe="[]")
        url = urlunparse(parsed._replace(query=query))

    return redact_sensitive_data(url)
