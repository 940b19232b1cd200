"""Tests for the review session state machine, driven through a real ReviewChannel."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from adolens_core.channel import ReviewChannel
from adolens_core.models import (
    FileCompleteEvent,
    FileOutcome,
    FileReview,
    Finding,
    ProgressEvent,
    PullRequestRef,
    ReviewCompleteEvent,
    ReviewErrorEvent,
    summarize_outcomes,
)
from adolens_core.session import CONNECTION_LOST, Phase, ReviewSession, SessionError

REF = PullRequestRef(org="contoso", project="Web", repo="shop", pr_id=42)


def _outcome(path, *lines):
    findings = [Finding(line=n, severity="Warning", message=f"issue on {n}") for n in lines]
    return FileOutcome.success(path, FileReview(findings=findings, summary="ok"))


OUTCOMES = [_outcome("/a.py", 1), _outcome("/b.py"), FileOutcome.failure("/c.py", "timeout")]
FULL_RUN = [
    ProgressEvent("", 0, 3),
    ProgressEvent("/a.py", 1, 3),
    FileCompleteEvent(OUTCOMES[0]),
    ProgressEvent("/b.py", 2, 3),
    FileCompleteEvent(OUTCOMES[1]),
    ProgressEvent("/c.py", 3, 3),
    FileCompleteEvent(OUTCOMES[2]),
    ReviewCompleteEvent(summarize_outcomes(OUTCOMES, iteration_id=9, pr_title="Fix")),
]


class ScriptedRun:
    """Runner that sends events, optionally pausing before a given index until released."""

    def __init__(self, events, pause_before=None, error=None):
        self.events = events
        self.pause_before = pause_before
        self.error = error
        self.release = asyncio.Event()
        self.cancel = None

    async def __call__(self, ref, send, cancel):
        self.cancel = cancel
        for i, event in enumerate(self.events):
            if i == self.pause_before:
                await self.release.wait()
                if cancel.is_set():
                    return
            await send(event)
        if self.error is not None:
            raise self.error


def _session(*runs, poster=None, on_change=None):
    pending = list(runs)
    channels = []

    def factory():
        channel = ReviewChannel(pending.pop(0))
        channels.append(channel)
        return channel

    session = ReviewSession(REF, factory, poster=poster, on_change=on_change)
    session.channels = channels
    return session


async def _until(predicate):
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_complete_run(self):
        session = _session(ScriptedRun(FULL_RUN))
        await session.start()
        assert session.phase is Phase.REVIEWING
        assert session.state.panel_open is True

        state = await asyncio.wait_for(session.wait(), 1)

        assert state.phase is Phase.COMPLETE
        assert state.is_partial is False
        assert [o.path for o in state.file_outcomes] == ["/a.py", "/b.py", "/c.py"]
        assert state.summary.iteration_id == 9
        assert state.progress == ProgressEvent("/c.py", 3, 3)
        assert session.can_post is True

    @pytest.mark.asyncio
    async def test_post_passes_outcomes_and_summary(self):
        poster = AsyncMock(return_value=1)
        session = _session(ScriptedRun(FULL_RUN), poster=poster)
        await session.start()
        await asyncio.wait_for(session.wait(), 1)

        assert await session.post_to_pr() == 1
        outcomes, summary = poster.await_args.args
        assert [o.path for o in outcomes] == ["/a.py", "/b.py", "/c.py"]
        assert summary.error_files == 1

    @pytest.mark.asyncio
    async def test_export_after_complete(self):
        session = _session(ScriptedRun(FULL_RUN))
        await session.start()
        await asyncio.wait_for(session.wait(), 1)

        md = session.export_markdown()
        assert md.startswith("# adolens review results")
        assert "- **L1** [Warning] issue on 1" in md

    @pytest.mark.asyncio
    async def test_observer_notified(self):
        seen = []
        session = _session(ScriptedRun(FULL_RUN), on_change=lambda s: seen.append(s.phase))
        await session.start()
        await asyncio.wait_for(session.wait(), 1)

        assert seen[0] is Phase.REVIEWING
        assert seen[-1] is Phase.COMPLETE


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_after_first_file_is_partial(self):
        run = ScriptedRun(FULL_RUN, pause_before=3)
        poster = AsyncMock()
        session = _session(run, poster=poster)
        await session.start()
        await _until(lambda: len(session.state.file_outcomes) == 1)

        await session.stop()

        state = session.state
        assert state.phase is Phase.COMPLETE
        assert state.is_partial is True
        assert len(state.file_outcomes) == 1
        assert state.summary.reviewed_files == 1
        assert state.summary.total_findings == 1
        assert run.cancel.is_set()
        assert session.can_post is False
        with pytest.raises(SessionError, match="partial"):
            await session.post_to_pr()
        poster.assert_not_awaited()
        assert "/a.py" in session.export_markdown()

        run.release.set()
        await session.channels[0].wait_closed()

    @pytest.mark.asyncio
    async def test_late_events_ignored_after_stop(self):
        run = ScriptedRun(FULL_RUN, pause_before=3)
        session = _session(run)
        await session.start()
        await _until(lambda: len(session.state.file_outcomes) == 1)
        await session.stop()

        run.release.set()
        await session.channels[0].wait_closed()

        assert len(session.state.file_outcomes) == 1
        assert session.state.is_partial is True

    @pytest.mark.asyncio
    async def test_stop_requires_reviewing(self):
        session = _session()
        with pytest.raises(SessionError):
            await session.stop()


class TestErrors:
    @pytest.mark.asyncio
    async def test_error_event(self):
        session = _session(ScriptedRun([ProgressEvent("", 0, 0), ReviewErrorEvent("Failed to fetch PR details: 404")]))
        await session.start()
        state = await asyncio.wait_for(session.wait(), 1)

        assert state.phase is Phase.ERROR
        assert state.error_message == "Failed to fetch PR details: 404"

    @pytest.mark.asyncio
    async def test_run_ending_without_terminal_event_is_connection_lost(self):
        session = _session(ScriptedRun(FULL_RUN[:3]))
        await session.start()
        state = await asyncio.wait_for(session.wait(), 1)

        assert state.phase is Phase.ERROR
        assert state.error_message == CONNECTION_LOST
        assert len(state.file_outcomes) == 1

    @pytest.mark.asyncio
    async def test_crashing_run_is_connection_lost(self):
        session = _session(ScriptedRun(FULL_RUN[:1], error=RuntimeError("boom")))
        await session.start()
        state = await asyncio.wait_for(session.wait(), 1)

        assert state.error_message == CONNECTION_LOST

    @pytest.mark.asyncio
    async def test_post_rejected_from_error(self):
        session = _session(ScriptedRun([ReviewErrorEvent("x")]))
        await session.start()
        await asyncio.wait_for(session.wait(), 1)
        with pytest.raises(SessionError):
            await session.post_to_pr()


class TestDiscardAndRetry:
    @pytest.mark.asyncio
    async def test_discard_from_error_resets_to_idle(self):
        session = _session(ScriptedRun([FileCompleteEvent(OUTCOMES[0]), ReviewErrorEvent("x")]))
        await session.start()
        await asyncio.wait_for(session.wait(), 1)

        await session.discard()

        state = session.state
        assert state.phase is Phase.IDLE
        assert state.file_outcomes == []
        assert state.summary is None
        assert state.error_message is None
        assert state.panel_open is False
        assert state.is_partial is False

    @pytest.mark.asyncio
    async def test_discard_while_reviewing_closes_channel(self):
        run = ScriptedRun(FULL_RUN, pause_before=1)
        session = _session(run)
        await session.start()

        await session.discard()
        run.release.set()
        await session.channels[0].wait_closed()

        assert session.phase is Phase.IDLE
        assert session.channels[0].closed
        assert session.channels[0].cancel_requested

    @pytest.mark.asyncio
    async def test_retry_from_complete_runs_again(self):
        session = _session(ScriptedRun(FULL_RUN[:1] + [ReviewErrorEvent("x")]), ScriptedRun(FULL_RUN))
        await session.start()
        await asyncio.wait_for(session.wait(), 1)
        assert session.phase is Phase.ERROR

        await session.retry()
        state = await asyncio.wait_for(session.wait(), 1)

        assert state.phase is Phase.COMPLETE
        assert len(state.file_outcomes) == 3
        assert len(session.channels) == 2
        assert session.channels[0].closed

    @pytest.mark.asyncio
    async def test_retry_while_reviewing_rejected(self):
        run = ScriptedRun(FULL_RUN, pause_before=1)
        session = _session(run)
        await session.start()
        with pytest.raises(SessionError):
            await session.retry()
        await session.discard()
        run.release.set()
        await session.channels[0].wait_closed()

    @pytest.mark.asyncio
    async def test_restart_tears_down_previous_run(self):
        old = ScriptedRun(FULL_RUN, pause_before=3)
        session = _session(old, ScriptedRun(FULL_RUN))
        await session.start()
        await _until(lambda: len(session.state.file_outcomes) == 1)

        await session.start()
        old.release.set()
        state = await asyncio.wait_for(session.wait(), 1)

        assert session.channels[0].closed
        assert [o.path for o in state.file_outcomes] == ["/a.py", "/b.py", "/c.py"]


class TestGuardsAndPanel:
    def test_export_requires_complete(self):
        with pytest.raises(SessionError):
            _session().export_markdown()

    def test_panel_toggle(self):
        session = _session()
        session.toggle_panel()
        assert session.state.panel_open is True
        session.toggle_panel()
        assert session.state.panel_open is False

    def test_close_panel_keeps_results(self):
        session = _session()
        session.state.panel_open = True
        session.close_panel()
        assert session.state.panel_open is False
        assert session.phase is Phase.IDLE
