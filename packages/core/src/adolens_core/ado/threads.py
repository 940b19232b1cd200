"""Comment thread creation on a pull request.

Azure DevOps throttles bursts of writes, so every post waits on a shared
PostScheduler. Threads are created with pending status: they show up as the
user's drafts and are published from the web UI.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from adolens_core.ado.client import AdoClient
from adolens_core.models import Finding, PullRequestRef

logger = logging.getLogger(__name__)

MIN_POST_INTERVAL_MS = 150

_COMMENT_TYPE_TEXT = 1
_THREAD_STATUS_PENDING = 6


class PostScheduler:
    """Enforces a minimum interval between consecutive posts.

    The scheduler owns the only timestamp shared across posts. Posting is
    sequential, so ``acquire`` reads and reserves the next slot in one step
    and no lock is needed.
    """

    def __init__(self, min_interval_ms: int = MIN_POST_INTERVAL_MS, clock: Callable[[], float] = time.monotonic):
        self.min_interval = max(min_interval_ms, MIN_POST_INTERVAL_MS) / 1000
        self._clock = clock
        self._last: float | None = None

    def acquire(self) -> float:
        """Reserve the next post slot and return how long to sleep before using it."""
        now = self._clock()
        wait = 0.0
        if self._last is not None:
            wait = max(0.0, self._last + self.min_interval - now)
        self._last = now + wait
        return wait

    def release(self) -> None:
        """Record the moment a post finished; the interval counts from here."""
        self._last = self._clock()

    async def wait(self) -> None:
        delay = self.acquire()
        if delay:
            await asyncio.sleep(delay)


def format_finding(finding: Finding) -> str:
    content = f"**[{finding.severity.value}]** {finding.message}"
    if finding.suggestion:
        content += f"\n\n**Suggestion:** {finding.suggestion}"
    if finding.suggested_code:
        content += f"\n\n```\n{finding.suggested_code}\n```"
    if finding.why:
        content += f"\n\n**Why:** {finding.why}"
    return content


async def post_inline_comment(
    client: AdoClient,
    ref: PullRequestRef,
    file_path: str,
    finding: Finding,
    iteration_id: int,
    scheduler: PostScheduler,
) -> None:
    """Create a pending thread anchored to the finding's line in the right-hand file."""
    await scheduler.wait()
    try:
        await client.post(
            f"{ref.api_url}/threads",
            {
                "comments": [{"parentCommentId": 0, "content": format_finding(finding), "commentType": _COMMENT_TYPE_TEXT}],
                "status": _THREAD_STATUS_PENDING,
                "threadContext": {
                    "filePath": file_path if file_path.startswith("/") else f"/{file_path}",
                    "rightFileStart": {"line": finding.line, "offset": 1},
                    "rightFileEnd": {"line": finding.line, "offset": 1000},
                },
                "pullRequestThreadContext": {
                    "iterationContext": {"firstComparingIteration": 1, "secondComparingIteration": iteration_id},
                },
            },
        )
    finally:
        scheduler.release()


async def post_summary_comment(client: AdoClient, ref: PullRequestRef, markdown: str, scheduler: PostScheduler) -> None:
    await scheduler.wait()
    try:
        await client.post(
            f"{ref.api_url}/threads",
            {
                "comments": [{"parentCommentId": 0, "content": markdown, "commentType": _COMMENT_TYPE_TEXT}],
                "status": _THREAD_STATUS_PENDING,
            },
        )
    finally:
        scheduler.release()
