"""
Document sync package.

This package contains:

- the orchestrator choosing between cached and freshly generated artifacts
- the adapters exposing the backend as a status source and a generator
- the ``docsync`` command line entry point
"""

from .orchestrator import ArtifactGenerator, ArtifactResult, SyncOrchestrator
from .sources import BackendArtifactGenerator, BackendStatusSource, parse_document_status

__all__ = [
    "ArtifactGenerator",
    "ArtifactResult",
    "BackendArtifactGenerator",
    "BackendStatusSource",
    "SyncOrchestrator",
    "parse_document_status",
]
