"""Core PR review orchestration.

One pass over a pull request is an async generator of events:

    ProgressEvent(total)                      once, after filtering
    ProgressEvent(file i) → FileCompleteEvent  for every eligible file, in order
    ReviewCompleteEvent | ReviewErrorEvent     always last

Files are reviewed one at a time so that progress indices mean something.
A file whose fetch or review still fails after its retries becomes an error
outcome; it never stops the loop. Only a missing provider configuration and
a failed metadata fetch abort the whole pass.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Awaitable, Callable

from adolens_core.ado.client import AdoClient
from adolens_core.ado.pull_request import (
    get_changed_files,
    get_file_content,
    get_file_text,
    get_latest_iteration_id,
    get_pr_metadata,
)
from adolens_core.config import get_provider_config, retry_settings
from adolens_core.models import (
    ChangeEntry,
    ChangeKind,
    FileCompleteEvent,
    FileOutcome,
    PrMetadata,
    ProgressEvent,
    ProviderConfig,
    PullRequestRef,
    ReviewCompleteEvent,
    ReviewErrorEvent,
    ReviewEvent,
    summarize_outcomes,
)
from adolens_core.providers.anthropic import AnthropicReviewer
from adolens_core.providers.base import BaseReviewer
from adolens_core.providers.openai import OpenAIReviewer
from adolens_core.utils.code import is_excluded, is_skippable
from adolens_core.utils.diff import compute_changed_ranges
from adolens_core.utils.retry import with_retry
from adolens_core.utils.secrets import redact_secrets

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ReviewEvent], Awaitable[None]]


def get_reviewer(provider_config: ProviderConfig) -> BaseReviewer:
    provider = provider_config.provider
    if provider == "anthropic":
        return AnthropicReviewer(api_key=provider_config.api_key, model=provider_config.model)
    if provider == "openai":
        return OpenAIReviewer(api_key=provider_config.api_key, model=provider_config.model)
    if provider in ("ollama", "external"):
        # Free-form servers do not all support response_format.
        return OpenAIReviewer(
            api_key=provider_config.api_key,
            model=provider_config.model,
            base_url=provider_config.base_url,
            json_mode=provider == "ollama",
        )
    raise ValueError(f"Unknown model provider: {provider!r}. Choose 'anthropic', 'openai', 'ollama' or 'external'.")


def partition_changes(
    changes: list[ChangeEntry], exclude_patterns: list[str] | None = None
) -> tuple[list[ChangeEntry], list[ChangeEntry]]:
    """Split the change list into (eligible, skipped), preserving order."""
    eligible: list[ChangeEntry] = []
    skipped: list[ChangeEntry] = []
    for change in changes:
        if is_skippable(change.path, change.kind) or is_excluded(change.path, exclude_patterns or []):
            logger.debug("Skipping %s (%s)", change.path, change.kind.value)
            skipped.append(change)
        else:
            eligible.append(change)
    return eligible, skipped


async def _load_file(
    client: AdoClient, ref: PullRequestRef, change: ChangeEntry, metadata: PrMetadata, retry: dict
) -> tuple[str, str | None]:
    """Return (new content, base content or None)."""
    content = await with_retry(
        lambda: get_file_content(client, ref, change.path, metadata.source_revision),
        label=f"Fetching {change.path}",
        **retry,
    )
    if change.kind is ChangeKind.ADD:
        return content, None
    try:
        base = await get_file_text(client, ref, change.path, metadata.target_revision)
    except Exception as e:
        # Without a base every line counts as changed; the review still runs.
        logger.warning("Could not fetch base revision of %s; reviewing the whole file: %s", change.path, e)
        base = None
    return content, base


async def review_single_file(
    client: AdoClient,
    ref: PullRequestRef,
    change: ChangeEntry,
    metadata: PrMetadata,
    reviewer: BaseReviewer,
    config: dict,
) -> FileOutcome:
    """Run one file through fetch → diff → redact → review. Never raises."""
    retry = retry_settings(config)
    max_chars = config.get("max_chars_per_file", 20000)
    try:
        content, base = await _load_file(client, ref, change, metadata, retry)
        ranges = None
        if base is not None:
            # LCS on a large middle is CPU-bound; keep it off the event loop.
            ranges = await asyncio.to_thread(compute_changed_ranges, base, content)

        redaction = redact_secrets(content)
        if redaction.count:
            logger.info("Redacted %d secret(s) from %s before review", redaction.count, change.path)
        text = redaction.text
        if len(text) > max_chars:
            text = text[:max_chars] + "\n... [file truncated]"

        review = await with_retry(
            lambda: reviewer.review_file(change.path, text, change.kind, ranges),
            label=f"Reviewing {change.path}",
            **retry,
        )
    except Exception as e:
        logger.error("Review of %s failed after retries: %s", change.path, e)
        return FileOutcome.failure(change.path, str(e) or type(e).__name__)

    return FileOutcome.success(change.path, review)


async def review_events(
    ref: PullRequestRef,
    config: dict,
    client: AdoClient,
    reviewer: BaseReviewer | None = None,
    cancel: asyncio.Event | None = None,
) -> AsyncIterator[ReviewEvent]:
    """Yield the event stream of one review pass.

    ``cancel`` is checked between files only: a file already in flight,
    including its retries, is allowed to finish. After a cancellation the
    summary covers the files reviewed so far.
    """
    started = time.monotonic()

    provider_config = get_provider_config(config)
    if provider_config is None:
        yield ReviewErrorEvent("AI provider not configured. Run `adolens init` or set it in .adolens.yml.")
        return

    try:
        metadata = await get_pr_metadata(client, ref)
    except Exception as e:
        yield ReviewErrorEvent(f"Failed to fetch PR details: {e}")
        return

    if reviewer is None:
        reviewer = get_reviewer(provider_config)

    iteration_id = await get_latest_iteration_id(client, ref)
    changes = await get_changed_files(client, ref, iteration_id)
    eligible, skipped = partition_changes(changes, config.get("exclude"))
    total = len(eligible)

    yield ProgressEvent(current_file="", file_index=0, total_files=total)

    outcomes: list[FileOutcome] = []
    for i, change in enumerate(eligible, 1):
        if cancel is not None and cancel.is_set():
            logger.info("Review cancelled after %d of %d file(s)", len(outcomes), total)
            break
        yield ProgressEvent(current_file=change.path, file_index=i, total_files=total)
        outcome = await review_single_file(client, ref, change, metadata, reviewer, config)
        outcomes.append(outcome)
        yield FileCompleteEvent(outcome)

    yield ReviewCompleteEvent(
        summarize_outcomes(
            outcomes,
            skipped_files=len(skipped),
            duration_ms=int((time.monotonic() - started) * 1000),
            iteration_id=iteration_id,
            pr_title=metadata.title,
        )
    )


async def run_review(
    ref: PullRequestRef,
    sink: ProgressSink,
    config: dict,
    client: AdoClient,
    reviewer: BaseReviewer | None = None,
    cancel: asyncio.Event | None = None,
) -> None:
    """Drive one review pass, delivering every event to ``sink``.

    Results are only ever streamed. Unexpected failures outside the per-file
    loop (iteration lookup, change listing, provider setup) end the stream
    with a ReviewErrorEvent instead of propagating.
    """
    try:
        async for event in review_events(ref, config, client, reviewer=reviewer, cancel=cancel):
            await sink(event)
    except Exception as e:
        logger.exception("Review of PR %d aborted", ref.pr_id)
        await sink(ReviewErrorEvent(str(e) or type(e).__name__))


def make_review_runner(config: dict, client: AdoClient, reviewer: BaseReviewer | None = None):
    """Bind run_review to a config and client, in the shape ReviewChannel expects."""

    async def runner(ref: PullRequestRef, send: ProgressSink, cancel: asyncio.Event) -> None:
        await run_review(ref, send, config, client, reviewer=reviewer, cancel=cancel)

    return runner
