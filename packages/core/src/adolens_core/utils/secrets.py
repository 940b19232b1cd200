"""Redact credentials from file content before it leaves the machine.

Every match is replaced by ``[REDACTED:<NAME>]``. Redaction never blocks a
review; the count is returned so callers can log it.

Patterns run in order over the progressively redacted text. A match that
lies wholly inside an existing placeholder is left alone, which keeps
redaction idempotent even for patterns like CONNECTION_STRING whose name
would otherwise match their own placeholder. A match that only partly
overlaps placeholders swallows them, so a connection string carrying an
already redacted key is still redacted as a whole.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SECRET_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("AWS_ACCESS_KEY", re.compile(r"AKIA[0-9A-Z]{16}")),
    ("GENERIC_API_KEY", re.compile(r"(?:api[_-]?key|apikey)\s*[=:]\s*['\"]?[A-Za-z0-9_\-]{16,}['\"]?", re.I)),
    (
        "GENERIC_SECRET",
        re.compile(r"(?:secret[_-]?key|client[_-]?secret)\s*[=:]\s*['\"]?[A-Za-z0-9_\-]{16,}['\"]?", re.I),
    ),
    ("CONNECTION_STRING", re.compile(r"(?:connection[_-]?string|database[_-]?url|mongodb(?:\+srv)?://)\S+", re.I)),
    ("BEARER_TOKEN", re.compile(r"Bearer\s+[A-Za-z0-9_\-.~+/]+=*")),
    (
        "PRIVATE_KEY",
        re.compile(
            r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----[\s\S]*?"
            r"-----END (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----"
        ),
    ),
    ("GITHUB_PAT", re.compile(r"gh[ps]_[A-Za-z0-9_]{36,}")),
    ("PASSWORD_ASSIGNMENT", re.compile(r"(?:password|passwd|pwd)\s*[=:]\s*['\"]?[^\s'\"]{8,}['\"]?", re.I)),
]

_PLACEHOLDER_RE = re.compile(r"\[REDACTED:[A-Z_]+\]")


@dataclass(frozen=True)
class RedactionResult:
    text: str
    count: int


def _placeholder(name: str) -> str:
    return f"[REDACTED:{name}]"


def redact_secrets(content: str) -> RedactionResult:
    """Replace every secret in ``content`` and count the replacements."""
    redacted = content
    total = 0
    for name, pattern in SECRET_PATTERNS:
        redacted, replaced = _redact_pattern(redacted, name, pattern)
        if replaced:
            logger.debug("Redacted %d %s match(es)", replaced, name)
        total += replaced
    return RedactionResult(text=redacted, count=total)


def _redact_pattern(text: str, name: str, pattern: re.Pattern) -> tuple[str, int]:
    protected = [m.span() for m in _PLACEHOLDER_RE.finditer(text)]
    pieces: list[str] = []
    last = 0
    replaced = 0
    for match in pattern.finditer(text):
        start, end = match.span()
        overlapping = [(p_start, p_end) for p_start, p_end in protected if start < p_end and p_start < end]
        if any(p_start <= start and end <= p_end for p_start, p_end in overlapping):
            continue
        if overlapping:
            start = min(start, overlapping[0][0])
            end = max(end, overlapping[-1][1])
        start = max(start, last)
        if end <= start:
            continue
        span = text[start:end]
        pieces.append(text[last:start])
        # Keep the line count so findings still point at the right lines.
        pieces.append(_placeholder(name) + "\n" * span.count("\n"))
        last = end
        replaced += 1
    pieces.append(text[last:])
    return "".join(pieces), replaced
