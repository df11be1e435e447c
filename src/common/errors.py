"""
Error taxonomy shared by the poller, the orchestrator and the backend adapters.
"""


class DocSyncError(Exception):
    """Base class for errors raised by this project."""


class TransientError(DocSyncError):
    """
    A status probe failed in a way that is worth retrying.

    Network failures, timeouts and 5xx responses end up here. The poller
    retries these under its attempt and wall-clock budgets and never surfaces
    them individually.
    """


class FatalError(DocSyncError):
    """The status source reported an unrecoverable failure for the subject."""


class GenerationError(DocSyncError):
    """The remote artifact generator could not produce a payload."""
