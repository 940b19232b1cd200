"""Domain types shared by the review pipeline, the channel and the session.

Status-like fields are enums rather than strings so that every consumer can
dispatch on them explicitly. Findings are pydantic models because they are
the one type constructed from untrusted model output; everything produced
internally is a plain dataclass.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict, Field, field_validator

_PR_URL_RE = re.compile(r"^https?://dev\.azure\.com/([^/]+)/([^/]+)/_git/([^/]+)/pullrequest/(\d+)", re.IGNORECASE)


class ChangeKind(str, Enum):
    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    RENAME = "rename"


class Severity(str, Enum):
    """Finding severity, declared in descending order of urgency."""

    CRITICAL = "Critical"
    WARNING = "Warning"
    INFO = "Info"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [Severity.CRITICAL, Severity.WARNING, Severity.INFO]


class FileStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class PullRequestRef:
    """One review target on Azure DevOps."""

    org: str
    project: str
    repo: str
    pr_id: int

    @property
    def base_url(self) -> str:
        return f"https://dev.azure.com/{self.org}/{self.project}"

    @property
    def org_url(self) -> str:
        return f"https://dev.azure.com/{self.org}"

    @property
    def api_url(self) -> str:
        """Root of the pull request's REST resources."""
        return f"{self.base_url}/_apis/git/repositories/{self.repo}/pullRequests/{self.pr_id}"


def parse_pr_url(url: str) -> PullRequestRef | None:
    """Parse ``https://dev.azure.com/{org}/{project}/_git/{repo}/pullrequest/{id}``.

    Segments are percent-decoded and anything after the id (a query string or
    a tab such as /files) is ignored. Returns None for anything else.
    """
    match = _PR_URL_RE.match(url.strip())
    if not match:
        return None
    org, project, repo, pr_id = match.groups()
    return PullRequestRef(org=unquote(org), project=unquote(project), repo=unquote(repo), pr_id=int(pr_id))


def is_pull_request_url(url: str) -> bool:
    return _PR_URL_RE.match(url.strip()) is not None


@dataclass(frozen=True)
class ChangeEntry:
    path: str
    kind: ChangeKind


@dataclass(frozen=True)
class ChangedRange:
    """Inclusive, 1-based line interval in the new revision."""

    start_line: int
    end_line: int

    def __contains__(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


def line_in_ranges(line: int, ranges: list[ChangedRange] | None) -> bool:
    """Return True if ``line`` is changed. ``None`` ranges mean every line is."""
    if ranges is None:
        return True
    return any(line in r for r in ranges)


@dataclass(frozen=True)
class PrMetadata:
    source_revision: str
    target_revision: str
    title: str
    description: str = ""


class Finding(BaseModel):
    """One review comment candidate, exactly as the model must return it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    line: int = Field(ge=1)
    severity: Severity
    message: str = Field(min_length=1)
    suggestion: Optional[str] = None
    suggested_code: Optional[str] = Field(default=None, alias="suggestedCode")
    why: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _normalise_severity(cls, value):
        # Some providers answer "critical" or "WARNING".
        if isinstance(value, str):
            return value.strip().capitalize()
        return value


class FileReview(BaseModel):
    findings: list[Finding]
    summary: str


@dataclass(frozen=True)
class FileOutcome:
    """Terminal result of one eligible file in one review pass."""

    path: str
    status: FileStatus
    findings: tuple[Finding, ...] = ()
    error: str | None = None
    summary: str = ""

    @classmethod
    def success(cls, path: str, review: FileReview) -> FileOutcome:
        return cls(path=path, status=FileStatus.SUCCESS, findings=tuple(review.findings), summary=review.summary)

    @classmethod
    def failure(cls, path: str, message: str) -> FileOutcome:
        return cls(path=path, status=FileStatus.ERROR, error=message)


@dataclass
class ReviewSummary:
    total_files: int
    reviewed_files: int
    skipped_files: int
    error_files: int
    total_findings: int
    findings_by_severity: dict[Severity, int]
    duration_ms: int
    iteration_id: int | None
    pr_title: str


def summarize_outcomes(
    outcomes: list[FileOutcome],
    skipped_files: int = 0,
    duration_ms: int = 0,
    iteration_id: int | None = None,
    pr_title: str = "",
) -> ReviewSummary:
    """Aggregate outcomes by scanning the list; used for full and partial summaries alike."""
    reviewed = errors = 0
    by_severity = {s: 0 for s in Severity}
    for outcome in outcomes:
        if outcome.status is FileStatus.SUCCESS:
            reviewed += 1
            for finding in outcome.findings:
                by_severity[finding.severity] += 1
        elif outcome.status is FileStatus.ERROR:
            errors += 1
        elif outcome.status is FileStatus.SKIPPED:
            skipped_files += 1
        else:
            raise ValueError(f"Unhandled file status: {outcome.status!r}")
    return ReviewSummary(
        total_files=reviewed + errors + skipped_files,
        reviewed_files=reviewed,
        skipped_files=skipped_files,
        error_files=errors,
        total_findings=sum(by_severity.values()),
        findings_by_severity=by_severity,
        duration_ms=duration_ms,
        iteration_id=iteration_id,
        pr_title=pr_title,
    )


# --------------------------------------------------------------------------- #
# Event stream                                                                  #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class ProgressEvent:
    current_file: str
    file_index: int
    total_files: int


@dataclass(frozen=True)
class FileCompleteEvent:
    outcome: FileOutcome


@dataclass(frozen=True)
class ReviewCompleteEvent:
    summary: ReviewSummary


@dataclass(frozen=True)
class ReviewErrorEvent:
    message: str


ReviewEvent = Union[ProgressEvent, FileCompleteEvent, ReviewCompleteEvent, ReviewErrorEvent]

TERMINAL_EVENTS = (ReviewCompleteEvent, ReviewErrorEvent)


@dataclass
class ProviderConfig:
    """Active AI provider. ``api_key`` may be empty for local providers."""

    provider: str
    model: str
    api_key: str = ""
    base_url: str | None = None
