"""Serialized task queue driving a controller.

One worker coroutine runs the controller's refresh step and nothing else,
so two steps of the same controller never overlap. Each step returns a
``Continuation`` telling the queue when to run the next one:

- ``now()``: run again right away
- ``after(delay)``: run again once a timer fires; out-of-band runs
  requested meanwhile replace the timer
- ``suspend(delay)``: block the queue for ``delay`` seconds, then run
  again. Requests arriving during the wait run after it
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from leasehold.election.clock import Clock, system_clock
from leasehold.election.errors import InvariantViolation

logger = logging.getLogger(__name__)


class ContinuationKind(str, Enum):
    NOW = "now"
    AFTER = "after"
    SUSPEND = "suspend"


@dataclass(frozen=True)
class Continuation:
    """What the queue should do after a refresh step."""

    kind: ContinuationKind
    delay: float = 0.0

    @classmethod
    def now(cls) -> Continuation:
        return cls(ContinuationKind.NOW)

    @classmethod
    def after(cls, delay: float) -> Continuation:
        return cls(ContinuationKind.AFTER, delay)

    @classmethod
    def suspend(cls, delay: float) -> Continuation:
        return cls(ContinuationKind.SUSPEND, delay)


Step = Callable[[], Awaitable[Continuation]]


class SerializedExecutor:
    """Runs a step function on a single asyncio worker.

    Args:
        step: Coroutine function performing one refresh step
        name: Name used in logs and for the worker task
        clock: Time source for suspensions
        error_delay: Delay before retrying after an unexpected step error
    """

    def __init__(
        self,
        step: Step,
        name: str = "leadership-controller",
        clock: Clock | None = None,
        error_delay: float = 1.0,
    ) -> None:
        self.step = step
        self.name = name
        self.clock = clock or system_clock
        self.error_delay = error_delay

        self._queue: asyncio.Queue[None] = asyncio.Queue()
        self._timer: asyncio.TimerHandle | None = None
        self._worker: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        """Start the worker and enqueue a first run."""
        if self._running:
            return
        self._running = True
        self._worker = asyncio.create_task(self._run(), name=self.name)
        self.execute()

    def execute(self) -> None:
        """Enqueue an immediate run, replacing any pending timer."""
        if not self._running:
            return
        self._cancel_timer()
        # Coalesce: one pending run is enough
        if self._queue.empty():
            self._queue.put_nowait(None)

    def schedule(self, delay: float) -> None:
        """Run again after ``delay`` seconds."""
        if not self._running:
            return
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(delay, self._fire)

    async def shutdown(self) -> None:
        """Stop the worker; no further step runs."""
        self._running = False
        self._cancel_timer()
        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    def _fire(self) -> None:
        self._timer = None
        self.execute()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _run(self) -> None:
        while self._running:
            await self._queue.get()
            try:
                continuation = await self.step()
                await self._apply(continuation)
            except InvariantViolation:
                logger.exception(f"{self.name} stopped on an invariant violation")
                self._running = False
                self._cancel_timer()
                return
            except Exception:
                logger.exception(f"Unexpected error in {self.name}")
                self.schedule(self.error_delay)

    async def _apply(self, continuation: Continuation) -> None:
        if continuation.kind is ContinuationKind.NOW:
            self.execute()
        elif continuation.kind is ContinuationKind.AFTER:
            self.schedule(continuation.delay)
        elif continuation.kind is ContinuationKind.SUSPEND:
            await self.clock.sleep(continuation.delay)
            self.execute()
        else:
            raise InvariantViolation(f"Unsupported continuation {continuation.kind}")
