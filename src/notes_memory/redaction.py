"""
Secret masking applied to chunk text before it is embedded or stored.
"""

from __future__ import annotations

import re


_REDACTION_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(
            r"-----BEGIN(?: [A-Z]+)? PRIVATE KEY-----.*?-----END(?: [A-Z]+)? PRIVATE KEY-----",
            flags=re.DOTALL,
        ),
        "[REDACTED_PRIVATE_KEY]",
    ),
    (
        re.compile(r"\bBearer\s+[A-Za-z0-9._\-+/=]+\b", flags=re.IGNORECASE),
        "Bearer [REDACTED_TOKEN]",
    ),
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"), "[REDACTED_GITHUB_TOKEN]"),
    (re.compile(r"\bsk-[A-Za-z0-9]{16,}\b"), "[REDACTED_API_KEY]"),
    (re.compile(r"\bxox[baprs]-[A-Za-z0-9-]+\b"), "[REDACTED_SLACK_TOKEN]"),
    (re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b"), "[REDACTED_AWS_ACCESS_KEY]"),
    (
        re.compile(
            r"((?:api[_-]?key|secret|password|passwd|token|access[_-]?token|client[_-]?secret)"
            r"\s*[:=]\s*[\"']?)([^\"'\s]+)([\"']?)",
            flags=re.IGNORECASE,
        ),
        r"\1[REDACTED]\3",
    ),
)


def redact_sensitive_content(text: str | None) -> str:
    """Replace recognizable secrets with fixed placeholder tokens.

    Patterns are applied in priority order: private key blocks, bearer
    headers, well-known token prefixes, then generic ``key = value``
    assignments.
    """
    if not text:
        return ""
    redacted = text
    for pattern, replacement in _REDACTION_PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted
