"""
Status polling package.

This package contains:

- the status source contract and the status it reports
- the per-subject poll state and progress snapshots
- the backoff-driven poller that tracks a subject until ready or failed
"""

from .poller import (
    BACKOFF_DELAYS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_TIMEOUT_SECONDS,
    StatusPoller,
    backoff_delay,
)
from .source import DocumentStatus, RemoteState, StatusSource
from .state import PollPhase, PollState, PollUpdate

__all__ = [
    "BACKOFF_DELAYS",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_TIMEOUT_SECONDS",
    "DocumentStatus",
    "PollPhase",
    "PollState",
    "PollUpdate",
    "RemoteState",
    "StatusPoller",
    "StatusSource",
    "backoff_delay",
]
