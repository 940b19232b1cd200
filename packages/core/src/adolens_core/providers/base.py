"""Base reviewer implementing the Template Method pattern.

All providers share the same review algorithm:
    review_file() → build_system_prompt() + build_file_prompt()
                  → _call_api()   ← only this differs per provider
                  → parse_review()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

Retrying is not done here. The orchestrator wraps the whole review_file()
call in with_retry, so a network error, a provider rejection and a response
that fails validation are all retried the same way.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod

from pydantic import ValidationError

from adolens_core.models import ChangedRange, ChangeKind, FileReview, line_in_ranges

logger = logging.getLogger(__name__)

_MAX_TOKENS = 4000


class ReviewResponseError(Exception):
    """The model answered, but not with a valid FileReview."""


class BaseReviewer(ABC):
    MAX_TOKENS: int = _MAX_TOKENS

    def __init__(self, model: str):
        self.model = model

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    async def review_file(
        self,
        file_path: str,
        content: str,
        change_kind: ChangeKind,
        changed_ranges: list[ChangedRange] | None,
    ) -> FileReview:
        """Review one file and return its validated findings.

        Raises on transport failure (from _call_api) and ReviewResponseError
        on malformed output. Findings on lines outside ``changed_ranges`` are
        dropped: the model was told not to report them.
        """
        system = build_system_prompt()
        user = build_file_prompt(file_path, content, change_kind, changed_ranges)
        raw = await self._call_api(system, user)
        review = parse_review(raw, file_path)

        kept = [f for f in review.findings if line_in_ranges(f.line, changed_ranges)]
        if len(kept) != len(review.findings):
            logger.debug("%s: dropped %d finding(s) on unchanged lines", file_path, len(review.findings) - len(kept))
            review = FileReview(findings=kept, summary=review.summary)
        return review

    # ------------------------------------------------------------------ #
    # Abstract: implemented by each provider                             #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        This is the only method subclasses must implement. It should raise
        on failure; the caller decides whether to retry.
        """


def build_system_prompt() -> str:
    return """You are a senior software engineer performing a code review on a pull request. \
Your task is to review ONLY the changed lines and identify issues.

Lines prefixed with ">" are CHANGED — these are the lines you must review.
Lines without ">" are UNCHANGED context — use them for understanding but do NOT report findings on unchanged lines.

For each issue you find, provide:
- The exact line number where the issue is located (must be a changed line)
- A severity level: "Critical" (bugs, security issues), "Warning" (code smells, potential issues), or "Info" (style, suggestions)
- A clear, concise description of the issue
- An optional suggestion for how to fix it, and optional replacement code for the flagged lines
- A brief explanation of why this matters

Focus on bugs and logic errors, security vulnerabilities, performance issues, error handling gaps
and maintainability. Do not comment on formatting, whitespace or subjective style preferences.

Be concise. If the changed code is clean, return an empty findings array."""


def number_lines(content: str, changed_ranges: list[ChangedRange] | None) -> str:
    """Prefix every line with its number; changed lines also get a ">" marker."""
    lines = content.split("\n")
    width = len(str(len(lines)))
    out = []
    for i, line in enumerate(lines, 1):
        marker = ">" if line_in_ranges(i, changed_ranges) else " "
        out.append(f"{marker} {str(i).rjust(width)} | {line}")
    return "\n".join(out)


def build_file_prompt(
    file_path: str,
    content: str,
    change_kind: ChangeKind,
    changed_ranges: list[ChangedRange] | None,
) -> str:
    numbered = number_lines(content, changed_ranges)
    if change_kind is ChangeKind.ADD or changed_ranges is None:
        intro = "Review the following new file. All lines are new and should be reviewed."
    else:
        intro = (
            "Review the changed lines in the following file. Lines prefixed with \">\" are CHANGED "
            "and should be reviewed. Other lines are context only."
        )
    return f"""{intro}

**File:** `{file_path}`

```
{numbered}
```

Line numbers in your findings must correspond to line numbers in the code block above.

### Output Format:
Respond with **only** a valid JSON object:

{{
  "findings": [
    {{
      "line": <line number (integer)>,
      "severity": "<Critical|Warning|Info>",
      "message": "<what is wrong>",
      "suggestion": "<how to fix it, or null>",
      "suggestedCode": "<replacement code for the flagged lines, or null>",
      "why": "<why this matters>"
    }}
  ],
  "summary": "<one-sentence summary of this file review>"
}}

Do not return any text outside the JSON object."""


# Field names some OpenAI-compatible servers use instead of ours.
_FIELD_ALIASES = {
    "lineNumber": "line",
    "line_number": "line",
    "description": "message",
    "codeBlock": "suggestedCode",
    "code_block": "suggestedCode",
    "suggested_code": "suggestedCode",
    "explanation": "why",
}


def _normalise_finding(raw) -> dict:
    if not isinstance(raw, dict):
        return raw
    return {_FIELD_ALIASES.get(k, k): v for k, v in raw.items()}


def parse_review(raw: str, file_path: str) -> FileReview:
    """Parse and validate the model's raw text response.

    Accepts either the requested object or a bare findings array. Any
    structural problem raises ReviewResponseError; findings are never
    partially accepted.
    """
    # Strip only the outer ```json ... ``` fence that the model wraps
    # the response in, not backticks inside string values.
    cleaned = re.sub(r"^```(?:json)?\s*", "", (raw or "").strip())
    cleaned = re.sub(r"\s*```$", "", cleaned.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ReviewResponseError(f"Model returned invalid JSON for {file_path}: {cleaned[:200]}") from e

    if isinstance(data, list):
        data = {"findings": data, "summary": f"Review found {len(data)} finding(s) in {file_path}"}
    if isinstance(data, dict) and isinstance(data.get("findings"), list):
        data = {**data, "findings": [_normalise_finding(f) for f in data["findings"]]}

    try:
        return FileReview.model_validate(data)
    except ValidationError as e:
        raise ReviewResponseError(f"Model response failed validation for {file_path}: {e}") from e
