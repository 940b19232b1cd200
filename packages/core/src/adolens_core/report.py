"""Markdown rendering of review results, and posting them back to the PR."""

from __future__ import annotations

import logging

from adolens_core.ado.client import AdoClient
from adolens_core.ado.threads import PostScheduler, post_inline_comment, post_summary_comment
from adolens_core.models import FileOutcome, FileStatus, PullRequestRef, ReviewSummary, Severity

logger = logging.getLogger(__name__)

EXPORT_TITLE = "# adolens review results"


def _format_duration(duration_ms: int) -> str:
    seconds = duration_ms / 1000
    if seconds < 60:
        return f"{int(seconds)}s"
    return f"{seconds / 60:.1f} min"


def build_summary_markdown(outcomes: list[FileOutcome], summary: ReviewSummary) -> str:
    """Build the PR-level comment posted after the inline findings."""
    reviewed = [o for o in outcomes if o.status is FileStatus.SUCCESS]
    errors = [o for o in outcomes if o.status is FileStatus.ERROR]
    totals = summary.findings_by_severity

    lines = ["## adolens review summary\n"]
    if summary.pr_title:
        lines.append(f"_{summary.pr_title}_\n")

    if summary.total_findings == 0:
        verdict = "No issues found. The changes look good."
    else:
        issue_str = ", ".join(f"{totals[s]} {s.value.lower()}" for s in Severity if totals.get(s))
        flagged = sorted((o for o in reviewed if o.findings), key=lambda o: len(o.findings), reverse=True)
        top = f"`{flagged[0].path}`" if flagged else ""
        if totals.get(Severity.CRITICAL):
            verdict = f"{issue_str} finding(s), changes required. Most flagged: {top}."
        else:
            verdict = f"{issue_str} finding(s). Most flagged: {top}."
    lines.append(f"> {verdict}\n")

    lines.append(
        f"**{summary.reviewed_files}** file(s) reviewed"
        + (f", **{summary.skipped_files}** skipped" if summary.skipped_files else "")
        + (f", **{summary.error_files}** error(s)" if summary.error_files else "")
        + f" · **{summary.total_findings}** finding(s) · reviewed in {_format_duration(summary.duration_ms)}\n"
    )

    with_findings = [o for o in reviewed if o.findings]
    if with_findings:
        lines.append("| File | Critical | Warning | Info | Total |")
        lines.append("|------|:--------:|:-------:|:----:|:-----:|")
        for o in with_findings:
            counts = {s: sum(1 for f in o.findings if f.severity is s) for s in Severity}
            lines.append(
                f"| `{o.path}` "
                f"| {counts[Severity.CRITICAL] or '-'} "
                f"| {counts[Severity.WARNING] or '-'} "
                f"| {counts[Severity.INFO] or '-'} "
                f"| {len(o.findings)} |"
            )

    clean = [o for o in reviewed if not o.findings]
    if clean:
        lines.append(f"\n_Clean: {len(clean)} file(s) with no issues._")

    if errors:
        lines.append("\n**Could not review:**")
        for o in errors:
            lines.append(f"- `{o.path}`: {o.error}")

    return "\n".join(lines)


def build_export_markdown(outcomes: list[FileOutcome], summary: ReviewSummary | None) -> str:
    """Render findings as a standalone markdown document."""
    lines = [EXPORT_TITLE, ""]
    if summary is not None:
        counts = summary.findings_by_severity
        lines += [
            f"**{summary.reviewed_files}** files reviewed, **{summary.total_findings}** findings",
            "("
            + ", ".join(f"{s.value}: {counts.get(s, 0)}" for s in Severity)
            + ")",
            "",
        ]

    for outcome in outcomes:
        if outcome.status is not FileStatus.SUCCESS or not outcome.findings:
            continue
        lines += [f"## {outcome.path}", ""]
        for f in outcome.findings:
            lines.append(f"- **L{f.line}** [{f.severity.value}] {f.message}")
            if f.suggestion:
                lines.append(f"  - Suggestion: {f.suggestion}")
        lines.append("")

    return "\n".join(lines)


async def post_review(
    client: AdoClient,
    ref: PullRequestRef,
    outcomes: list[FileOutcome],
    summary: ReviewSummary,
    scheduler: PostScheduler | None = None,
) -> int:
    """Post every finding as a pending inline thread, then the summary thread.

    Returns the number of inline threads created. Stops at the first failed
    post; the caller reports the error.
    """
    if summary.iteration_id is None:
        raise ValueError("Cannot post a review without an iteration id")
    scheduler = scheduler or PostScheduler()

    posted = 0
    for outcome in outcomes:
        if outcome.status is not FileStatus.SUCCESS:
            continue
        for finding in outcome.findings:
            await post_inline_comment(client, ref, outcome.path, finding, summary.iteration_id, scheduler)
            posted += 1

    await post_summary_comment(client, ref, build_summary_markdown(outcomes, summary), scheduler)
    logger.info("Posted %d inline comment(s) and a summary to PR %d", posted, ref.pr_id)
    return posted
