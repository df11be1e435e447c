"""Per-subject polling state and the snapshots handed to progress callbacks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .source import DocumentStatus


class PollPhase(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PollPhase.READY, PollPhase.FAILED)


@dataclass
class PollState:
    """
    Mutable state of one polling run.

    Owned by the poller; callers get `PollUpdate` snapshots instead.
    """

    subject_id: str
    started_at: float
    attempt: int = 0
    phase: PollPhase = PollPhase.IDLE
    cancelled: bool = False
    last_status: DocumentStatus | None = None
    error: str | None = None

    @property
    def is_active(self) -> bool:
        return not self.cancelled and not self.phase.is_terminal

    def snapshot(self) -> "PollUpdate":
        return PollUpdate(
            subject_id=self.subject_id,
            phase=self.phase,
            attempt=self.attempt,
            status=self.last_status,
            error=self.error,
        )


@dataclass(frozen=True)
class PollUpdate:
    """What a progress callback sees for one transition."""

    subject_id: str
    phase: PollPhase
    attempt: int
    status: DocumentStatus | None = None
    error: str | None = None
