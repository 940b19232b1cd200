"""Session state machine on the observer side of a review.

    idle ──start──▶ reviewing ──complete event──▶ complete
                        │  └───stop──────────────▶ complete (partial)
                        └──error event / lost────▶ error
    any ──discard──▶ idle
    complete | error ──retry──▶ reviewing

Phase transitions are the only way the state changes. Events that arrive
when the session is no longer reviewing are ignored, so outcomes freeze as
soon as the session settles.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from adolens_core.channel import ReviewChannel
from adolens_core.models import (
    FileCompleteEvent,
    FileOutcome,
    ProgressEvent,
    PullRequestRef,
    ReviewCompleteEvent,
    ReviewErrorEvent,
    ReviewEvent,
    ReviewSummary,
    summarize_outcomes,
)
from adolens_core.report import build_export_markdown

logger = logging.getLogger(__name__)

CONNECTION_LOST = "Connection to the review run was lost"

Poster = Callable[[list[FileOutcome], ReviewSummary], Awaitable[int]]


class Phase(str, Enum):
    IDLE = "idle"
    REVIEWING = "reviewing"
    COMPLETE = "complete"
    ERROR = "error"


class SessionError(Exception):
    """An action was requested in a phase that does not allow it."""


@dataclass
class SessionState:
    phase: Phase = Phase.IDLE
    progress: ProgressEvent | None = None
    file_outcomes: list[FileOutcome] = field(default_factory=list)
    summary: ReviewSummary | None = None
    error_message: str | None = None
    panel_open: bool = False
    is_partial: bool = False


class ReviewSession:
    def __init__(
        self,
        pr_ref: PullRequestRef,
        channel_factory: Callable[[], ReviewChannel],
        poster: Poster | None = None,
        on_change: Callable[[SessionState], None] | None = None,
    ):
        self.pr_ref = pr_ref
        self._channel_factory = channel_factory
        self._poster = poster
        self._on_change = on_change
        self._channel: ReviewChannel | None = None
        self._settled = asyncio.Event()
        self.state = SessionState()

    @property
    def phase(self) -> Phase:
        return self.state.phase

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.state)

    def _settle(self, phase: Phase) -> None:
        self.state.phase = phase
        self._settled.set()
        self._notify()

    async def _teardown(self) -> None:
        if self._channel is not None:
            await self._channel.close()
            self._channel = None

    # ------------------------------------------------------------------ #
    # Actions                                                              #
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        # Only one run may write to this state; close any previous one first.
        await self._teardown()
        self.state = SessionState(phase=Phase.REVIEWING, panel_open=True)
        self._settled = asyncio.Event()
        channel = self._channel_factory()
        self._channel = channel
        channel.open(
            self.pr_ref,
            on_message=lambda event: self._handle_event(channel, event),
            on_disconnect=lambda: self._handle_disconnect(channel),
        )
        logger.debug("Review session started for PR %d", self.pr_ref.pr_id)
        self._notify()

    async def stop(self) -> None:
        """End the run early, keeping what has been reviewed so far."""
        if self.state.phase is not Phase.REVIEWING:
            raise SessionError(f"Cannot stop a review that is {self.state.phase.value}")
        await self._teardown()
        self.state.summary = summarize_outcomes(self.state.file_outcomes)
        self.state.is_partial = True
        logger.info("Review stopped after %d file(s)", len(self.state.file_outcomes))
        self._settle(Phase.COMPLETE)

    async def discard(self) -> None:
        await self._teardown()
        self.state = SessionState()
        self._settled.set()
        self._notify()

    async def retry(self) -> None:
        if self.state.phase not in (Phase.COMPLETE, Phase.ERROR):
            raise SessionError(f"Cannot retry a review that is {self.state.phase.value}")
        await self.discard()
        await self.start()

    def export_markdown(self) -> str:
        if self.state.phase is not Phase.COMPLETE:
            raise SessionError("Findings can only be exported from a completed review")
        return build_export_markdown(self.state.file_outcomes, self.state.summary)

    @property
    def can_post(self) -> bool:
        return self.state.phase is Phase.COMPLETE and not self.state.is_partial

    async def post_to_pr(self) -> int:
        """Post findings and the summary to the PR. Returns the inline comment count."""
        if self.state.phase is not Phase.COMPLETE:
            raise SessionError("Only a completed review can be posted")
        if self.state.is_partial:
            raise SessionError("A stopped review is partial and cannot be posted; run it again to post")
        if self._poster is None:
            raise SessionError("Posting is not available for this session")
        return await self._poster(list(self.state.file_outcomes), self.state.summary)

    def toggle_panel(self) -> None:
        self.state.panel_open = not self.state.panel_open
        self._notify()

    def close_panel(self) -> None:
        self.state.panel_open = False
        self._notify()

    async def wait(self) -> SessionState:
        """Block until the session leaves ``reviewing``."""
        await self._settled.wait()
        return self.state

    # ------------------------------------------------------------------ #
    # Channel callbacks                                                    #
    # ------------------------------------------------------------------ #

    def _handle_event(self, channel: ReviewChannel, event: ReviewEvent) -> None:
        if channel is not self._channel or self.state.phase is not Phase.REVIEWING:
            return
        if isinstance(event, ProgressEvent):
            self.state.progress = event
            self._notify()
        elif isinstance(event, FileCompleteEvent):
            self.state.file_outcomes.append(event.outcome)
            self._notify()
        elif isinstance(event, ReviewCompleteEvent):
            self.state.summary = event.summary
            self.state.is_partial = False
            self._settle(Phase.COMPLETE)
        elif isinstance(event, ReviewErrorEvent):
            self.state.error_message = event.message
            self._settle(Phase.ERROR)
        else:
            raise TypeError(f"Unhandled review event: {event!r}")

    def _handle_disconnect(self, channel: ReviewChannel) -> None:
        if channel is not self._channel or self.state.phase is not Phase.REVIEWING:
            return
        logger.warning("Review channel for PR %d closed unexpectedly", self.pr_ref.pr_id)
        self.state.error_message = CONNECTION_LOST
        self._settle(Phase.ERROR)
