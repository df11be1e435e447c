"""
Status Poller
=============

After an upload the backend keeps processing the document for a while.
The `StatusPoller` asks a `StatusSource` for the document's status until it
is ready or has failed, and reports every step to a progress callback.

The control flow of one polling run:

- Probe the source. Probes for one subject are strictly sequential.
- Ready (with a positive generation counter): stop, report ``ready``.
- Explicit failure or ``FatalError``: stop, report ``failed``.
- Pending or ``TransientError``: wait ``backoff_delay(attempt)`` seconds,
  bump ``attempt`` and probe again.

Two ceilings force ``failed`` whichever comes first: more than
``max_attempts`` retries after transient errors, and a wall-clock budget
measured from ``start``.

Everything runs on one asyncio event loop. Cancelling a run cancels the
pending sleep or the awaited probe; a response that still arrives later
is discarded without a transition or a callback.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

from common.errors import FatalError, TransientError
from .source import StatusSource
from .state import PollPhase, PollState, PollUpdate

log = structlog.get_logger(__name__)

BACKOFF_DELAYS = (1.0, 2.0, 4.0, 8.0, 10.0)
DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_TIMEOUT_SECONDS = 600.0

ProgressCallback = Callable[[PollUpdate], None]


def backoff_delay(attempt: int, jitter: float = 0.0) -> float:
    """
    Seconds to wait after probe number ``attempt`` (0-based).

    Capped exponential: 1, 2, 4, 8, then 10 forever. With ``jitter`` the
    delay is scaled by a random factor in ``[1 - jitter, 1 + jitter]``.
    """
    delay = BACKOFF_DELAYS[min(max(attempt, 0), len(BACKOFF_DELAYS) - 1)]
    if jitter:
        delay *= random.uniform(1.0 - jitter, 1.0 + jitter)
    return delay


@dataclass
class _ActivePoll:
    state: PollState
    # The probe loop; cancelled by `StatusPoller.cancel`. The task handed to
    # callers wraps it and always resolves to the final PollState.
    worker: asyncio.Task | None = None


class StatusPoller:
    """Tracks subjects until their processing is ready or has failed."""

    def __init__(
        self,
        source: StatusSource,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        jitter: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            source:
                Where probes go.
            max_attempts:
                Retries allowed after transient errors before giving up.
            timeout_seconds:
                Wall-clock budget for one run, measured from ``start``.
            jitter:
                Fraction of random spread applied to each backoff delay.
            sleep, clock:
                Injectable timer primitives (primarily for tests).
        """
        self._source = source
        self._max_attempts = max_attempts
        self._timeout_seconds = timeout_seconds
        self._jitter = jitter
        self._sleep = sleep
        self._clock = clock
        self._polls: dict[str, _ActivePoll] = {}

    def start(
        self, subject_id: str, on_progress: ProgressCallback | None = None
    ) -> "asyncio.Task[PollState]":
        """
        Begin polling ``subject_id``, superseding any run already in progress.

        Must be called from a running event loop. The returned task resolves
        to the final `PollState`; a cancelled run resolves with
        ``cancelled=True``.
        """
        loop = asyncio.get_running_loop()
        self.cancel(subject_id)

        state = PollState(subject_id=subject_id, started_at=self._clock())
        state.phase = PollPhase.POLLING
        active = _ActivePoll(state=state)
        task = loop.create_task(
            self._run(active, on_progress), name=f"status-poll:{subject_id}"
        )
        self._polls[subject_id] = active
        log.info(
            "Started polling",
            subject_id=subject_id,
            max_attempts=self._max_attempts,
            timeout_seconds=self._timeout_seconds,
        )
        self._emit(state, on_progress)
        return task

    async def track(
        self, subject_id: str, on_progress: ProgressCallback | None = None
    ) -> PollState:
        """Start polling and wait for the run to end."""
        return await self.start(subject_id, on_progress)

    def cancel(self, subject_id: str) -> bool:
        """Stop polling ``subject_id``. Returns False when nothing was running."""
        active = self._polls.pop(subject_id, None)
        if active is None:
            return False
        active.state.cancelled = True
        if active.worker is not None:
            active.worker.cancel()
        log.info("Cancelled polling", subject_id=subject_id, attempt=active.state.attempt)
        return True

    def cancel_all(self) -> None:
        for subject_id in list(self._polls):
            self.cancel(subject_id)

    def active(self, subject_id: str) -> PollState | None:
        active = self._polls.get(subject_id)
        return active.state if active is not None else None

    def active_subjects(self) -> list[str]:
        return list(self._polls)

    # --- Polling loop ---

    async def _run(self, active: _ActivePoll, on_progress: ProgressCallback | None) -> PollState:
        state = active.state
        try:
            if state.cancelled:
                return state
            active.worker = asyncio.ensure_future(
                self._poll_until_terminal(state, on_progress)
            )
            try:
                return await active.worker
            except asyncio.CancelledError:
                if state.cancelled:
                    return state
                raise
        finally:
            self._release(state)

    async def _poll_until_terminal(
        self, state: PollState, on_progress: ProgressCallback | None
    ) -> PollState:
        subject_id = state.subject_id
        while True:
            remaining = self._remaining(state)
            if remaining <= 0:
                self._finish(
                    state,
                    PollPhase.FAILED,
                    on_progress,
                    error=f"no terminal status within {self._timeout_seconds:g}s",
                )
                return state

            try:
                status = await asyncio.wait_for(
                    self._source.get_status(subject_id), timeout=remaining
                )
            except FatalError as e:
                if state.cancelled:
                    return state
                self._finish(state, PollPhase.FAILED, on_progress, error=str(e) or "fatal error")
                return state
            except (TransientError, asyncio.TimeoutError) as e:
                if state.cancelled:
                    return state
                if state.attempt >= self._max_attempts:
                    self._finish(
                        state,
                        PollPhase.FAILED,
                        on_progress,
                        error=f"status unavailable after {state.attempt + 1} probes",
                    )
                    return state
                log.warning(
                    "Status probe failed; will retry",
                    subject_id=subject_id,
                    attempt=state.attempt,
                    error=str(e) or type(e).__name__,
                )
            except Exception:
                if state.cancelled:
                    return state
                log.exception("Unexpected error while probing status", subject_id=subject_id)
                self._finish(state, PollPhase.FAILED, on_progress, error="unexpected error")
                return state
            else:
                if state.cancelled:
                    return state
                state.last_status = status
                if status.is_ready:
                    self._finish(state, PollPhase.READY, on_progress)
                    return state
                if status.is_failed:
                    self._finish(
                        state, PollPhase.FAILED, on_progress, error="processing failed"
                    )
                    return state
                log.debug(
                    "Subject still processing",
                    subject_id=subject_id,
                    attempt=state.attempt,
                    generation=status.generation_counter,
                )
                self._emit(state, on_progress)

            delay = backoff_delay(state.attempt, self._jitter)
            await self._sleep(min(delay, max(self._remaining(state), 0.0)))
            if state.cancelled:
                return state
            state.attempt += 1

    def _remaining(self, state: PollState) -> float:
        return self._timeout_seconds - (self._clock() - state.started_at)

    def _finish(
        self,
        state: PollState,
        phase: PollPhase,
        on_progress: ProgressCallback | None,
        error: str | None = None,
    ) -> None:
        state.phase = phase
        state.error = error
        if phase is PollPhase.READY:
            log.info(
                "Subject is ready",
                subject_id=state.subject_id,
                attempt=state.attempt,
                generation=state.last_status.generation_counter if state.last_status else None,
            )
        else:
            log.warning(
                "Polling failed",
                subject_id=state.subject_id,
                attempt=state.attempt,
                error=error,
            )
        self._emit(state, on_progress)

    def _emit(self, state: PollState, on_progress: ProgressCallback | None) -> None:
        if on_progress is None or state.cancelled:
            return
        try:
            on_progress(state.snapshot())
        except Exception:
            log.exception("Progress callback failed", subject_id=state.subject_id)

    def _release(self, state: PollState) -> None:
        active = self._polls.get(state.subject_id)
        if active is not None and active.state is state:
            del self._polls[state.subject_id]
