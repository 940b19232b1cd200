"""review command — run AI review on an Azure DevOps pull request."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from adolens_core.ado.client import AdoApiError, AdoClient
from adolens_core.ado.threads import MIN_POST_INTERVAL_MS, PostScheduler
from adolens_core.channel import ReviewChannel
from adolens_core.config import get_provider_config
from adolens_core.models import FileStatus, PullRequestRef, Severity, is_pull_request_url, parse_pr_url
from adolens_core.report import post_review
from adolens_core.reviewer import make_review_runner
from adolens_core.session import Phase, ReviewSession, SessionError, SessionState

console = Console()
logger = logging.getLogger(__name__)

_SEVERITY_COLOR = {Severity.CRITICAL: "red", Severity.WARNING: "yellow", Severity.INFO: "blue"}


class ProgressPrinter:
    """Session observer that prints each file as it starts and finishes."""

    def __init__(self):
        self._seen_index = 0
        self._seen_outcomes = 0

    def __call__(self, state: SessionState) -> None:
        progress = state.progress
        if progress is not None and progress.file_index > self._seen_index:
            self._seen_index = progress.file_index
            console.print(f"\n[[{progress.file_index}/{progress.total_files}]] Reviewing: {progress.current_file}")

        for outcome in state.file_outcomes[self._seen_outcomes :]:
            if outcome.status is FileStatus.SUCCESS:
                console.print(f"  {len(outcome.findings)} finding(s).")
            else:
                console.print(f"  [red]Failed: {outcome.error}[/red]")
        self._seen_outcomes = len(state.file_outcomes)


def print_findings(state: SessionState) -> None:
    for outcome in state.file_outcomes:
        if outcome.status is not FileStatus.SUCCESS:
            continue
        for f in sorted(outcome.findings, key=lambda f: (f.severity.rank, f.line)):
            color = _SEVERITY_COLOR[f.severity]
            console.print(
                f"[bold cyan]{outcome.path}[/bold cyan]  line [bold]{f.line}[/bold]  "
                f"[{color}]{f.severity.value.upper()}[/{color}]"
            )
            console.print(f"  {f.message}")
            if f.suggestion:
                console.print(f"  [dim]Suggestion: {f.suggestion}[/dim]")
            console.print()


def print_summary(state: SessionState) -> None:
    summary = state.summary
    table = Table(title="Review summary", show_header=True, header_style="bold cyan")
    table.add_column("Reviewed", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Errors", justify="right")
    for sev in Severity:
        color = _SEVERITY_COLOR[sev]
        table.add_column(f"[{color}]{sev.value}[/{color}]", justify="right")
    table.add_row(
        str(summary.reviewed_files),
        str(summary.skipped_files),
        str(summary.error_files),
        *(str(summary.findings_by_severity.get(sev, 0)) for sev in Severity),
    )
    console.print(table)


class StopOnInterrupt:
    """Map Ctrl+C to the session's stop action while a review is running.

    Only the first interrupt issues a stop; later ones are ignored while it is
    pending or after it has settled the session.
    """

    def __init__(self, session: ReviewSession):
        self.session = session
        self.stop_task: asyncio.Task | None = None
        self._installed = False

    def __call__(self) -> None:
        if self.stop_task is not None or self.session.phase is not Phase.REVIEWING:
            return
        console.print("\n[yellow]Stopping after the current file...[/yellow]")
        self.stop_task = asyncio.get_running_loop().create_task(self.session.stop())

    def install(self) -> None:
        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGINT, self)
        except (NotImplementedError, RuntimeError):
            # No signal handlers outside the main thread or on Windows.
            return
        self._installed = True

    async def remove(self) -> None:
        if self._installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
            self._installed = False
        if self.stop_task is not None:
            try:
                await self.stop_task
            except SessionError:
                # The run settled on its own before the stop was handled.
                logger.debug("Stop request arrived after the review had finished")


async def run_session(
    ref: PullRequestRef,
    config: dict,
    client: AdoClient,
    auto_confirm: bool,
    shadow: bool,
    export_path: str | None,
) -> SessionState:
    scheduler = PostScheduler(config.get("min_post_interval_ms") or MIN_POST_INTERVAL_MS)

    async def poster(outcomes, summary):
        return await post_review(client, ref, outcomes, summary, scheduler)

    session = ReviewSession(
        ref,
        channel_factory=lambda: ReviewChannel(make_review_runner(config, client)),
        poster=poster,
        on_change=ProgressPrinter(),
    )

    interrupts = StopOnInterrupt(session)
    interrupts.install()
    try:
        await session.start()
        state = await session.wait()
    finally:
        await interrupts.remove()

    if state.phase is Phase.ERROR:
        raise click.ClickException(state.error_message or "Review failed")

    console.print()
    print_findings(state)
    print_summary(state)

    if export_path:
        Path(export_path).write_text(session.export_markdown(), encoding="utf-8")
        console.print(f"[green]Findings exported to {export_path}[/green]")

    if state.is_partial:
        console.print(
            f"[yellow]Review stopped early: {len(state.file_outcomes)} file(s) reviewed. "
            "Partial results are not posted; run the review again to post.[/yellow]"
        )
        return state
    if shadow:
        console.print("[bold]Shadow mode: nothing posted.[/bold]")
        return state

    total = state.summary.total_findings
    if not auto_confirm and not click.confirm(
        f"Post {total} comment(s) and a summary to PR {ref.pr_id} as drafts?", default=True
    ):
        return state

    try:
        posted = await session.post_to_pr()
    except AdoApiError as e:
        raise click.ClickException(f"Posting failed: {e}")
    console.print(f"\n[green]Posted {posted} comment(s) and a summary as pending threads.[/green]")
    return state


@click.command("review")
@click.argument("pr_url")
@click.option(
    "--provider",
    type=click.Choice(["anthropic", "openai", "ollama", "external"]),
    default=None,
    help="AI provider. Overrides stored and file settings.",
)
@click.option("--model", default=None, help="Model name. Overrides stored and file settings.")
@click.option("--yes", "-y", is_flag=True, help="Post without asking for confirmation.")
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print findings without posting to the PR.",
)
@click.option(
    "--export",
    "export_path",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write findings as markdown to this file.",
)
@click.pass_context
def review_cmd(
    ctx,
    pr_url: str,
    provider: str | None,
    model: str | None,
    yes: bool,
    shadow: bool,
    export_path: str | None,
):
    """Review the pull request at PR_URL.

    Only the lines changed by the PR are reviewed. Press Ctrl+C to stop after
    the current file and keep the partial results.

    \b
    Credentials:
      ADO_PAT              Azure DevOps PAT (or a stored PAT, or `az login`)
      ANTHROPIC_API_KEY    Required for --provider anthropic
      OPENAI_API_KEY       Required for --provider openai
    """
    from adolens_cli.auth import resolve_auth_headers

    config = dict(ctx.obj["config"])
    store = ctx.obj.get("store")

    if not is_pull_request_url(pr_url):
        raise click.UsageError(
            f"Not an Azure DevOps pull request URL: {pr_url}\n"
            "Expected https://dev.azure.com/{org}/{project}/_git/{repo}/pullrequest/{id}"
        )
    ref = parse_pr_url(pr_url)

    if provider and provider != config.get("provider"):
        # Stored key, model and endpoint belong to the stored provider.
        config["provider"] = provider
        config["model"] = None
        config.pop("api_key", None)
        config.pop("base_url", None)
    if model:
        config["model"] = model

    if get_provider_config(config) is None:
        raise click.UsageError(
            f"AI provider {config.get('provider')!r} is not configured. "
            "Run `adolens init` or set the provider's API key environment variable."
        )

    headers = resolve_auth_headers(config, store)
    if not headers:
        raise click.UsageError("Not authenticated with Azure DevOps. Set ADO_PAT, run `adolens init` or `az login`.")

    client = AdoClient(headers)
    try:
        asyncio.run(run_session(ref, config, client, yes, shadow, export_path))
    finally:
        client.close()
