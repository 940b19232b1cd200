"""Duplex channel between a review session and one orchestrator run.

The producer side is the orchestrator, started as a task and handed a
``send`` coroutine plus a cancel flag. The consumer side is a task that
delivers queued events to the session's callbacks in order. The queue is
bounded, so a slow consumer holds the producer back instead of events piling
up.

Closing the channel is the only way the session talks back: it raises the
cancel flag (honoured by the orchestrator between files), stops delivery
and silently drops anything sent afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from adolens_core.models import TERMINAL_EVENTS, PullRequestRef, ReviewEvent

logger = logging.getLogger(__name__)

Send = Callable[[ReviewEvent], Awaitable[None]]
Runner = Callable[[PullRequestRef, Send, asyncio.Event], Awaitable[None]]

_END = object()


class ReviewChannel:
    def __init__(self, runner: Runner, maxsize: int = 32):
        self._runner = runner
        self._maxsize = maxsize
        self._queue: asyncio.Queue | None = None
        self._cancel = asyncio.Event()
        self._closed = False
        self._producer: asyncio.Task | None = None
        self._consumer: asyncio.Task | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def open(
        self,
        ref: PullRequestRef,
        on_message: Callable[[ReviewEvent], None],
        on_disconnect: Callable[[], None],
    ) -> None:
        """Start the run. Must be called from inside a running event loop."""
        if self._queue is not None:
            raise RuntimeError("ReviewChannel can only be opened once")
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._producer = asyncio.create_task(self._produce(ref))
        self._consumer = asyncio.create_task(self._consume(on_message, on_disconnect))

    async def send(self, event: ReviewEvent) -> None:
        if self._closed or self._queue is None:
            logger.debug("Dropping %s on closed channel", type(event).__name__)
            return
        await self._queue.put(event)

    async def _produce(self, ref: PullRequestRef) -> None:
        try:
            await self._runner(ref, self.send, self._cancel)
        except Exception:
            # Reported to the session as a lost connection by the consumer.
            logger.exception("Review run for PR %d crashed", ref.pr_id)
        finally:
            if not self._closed:
                await self._queue.put(_END)

    async def _consume(self, on_message, on_disconnect) -> None:
        terminated = False
        while True:
            item = await self._queue.get()
            if item is _END:
                if not terminated and not self._closed:
                    on_disconnect()
                return
            if self._closed:
                continue
            on_message(item)
            if isinstance(item, TERMINAL_EVENTS):
                terminated = True

    async def close(self) -> None:
        """Request cancellation and stop delivering events. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._cancel.set()
        consumer = self._consumer
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass
        if self._queue is not None:
            # Unblock a producer waiting on a full queue.
            while not self._queue.empty():
                self._queue.get_nowait()

    async def wait_closed(self) -> None:
        """Wait for the producer to return; after close() it stops at the next file boundary."""
        if self._producer is not None:
            await self._producer
