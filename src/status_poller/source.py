"""The contract the poller and the orchestrator consume to read remote status."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class RemoteState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class DocumentStatus:
    """
    Processing status of one subject as reported by the backend.

    ``generation_counter`` is the subject's mutation counter (the processed
    chunk count); cached artifacts are tied to it.
    """

    state: RemoteState
    generation_counter: int = 0

    @property
    def is_ready(self) -> bool:
        # A "ready" report with nothing processed yet is still pending.
        return self.state is RemoteState.READY and self.generation_counter > 0

    @property
    def is_failed(self) -> bool:
        return self.state is RemoteState.FAILED


class StatusSource(Protocol):
    """
    Reports a subject's processing status.

    Implementations raise ``TransientError`` for failures worth retrying and
    ``FatalError`` for explicit, unrecoverable ones.
    """

    async def get_status(self, subject_id: str) -> DocumentStatus:
        ...
