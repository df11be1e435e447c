"""
Backend Adapters
================

Adapters exposing the synchronous `BackendClient` through the asynchronous
`StatusSource` and `ArtifactGenerator` contracts.

Each blocking HTTP call runs in a worker thread via ``asyncio.to_thread``.
Cancelling the awaiting task cannot abort the request itself; its result is
simply never looked at.

HTTP failures are translated into the project's error taxonomy here, so the
poller and the orchestrator never see ``requests`` exceptions.
"""

from __future__ import annotations

import asyncio
from typing import Any

import requests
import structlog

from common.backend import BackendClient
from common.errors import FatalError, GenerationError, TransientError
from status_poller import DocumentStatus, RemoteState

log = structlog.get_logger(__name__)

READY_STATUSES = frozenset({"processed", "ready"})
FAILED_STATUSES = frozenset({"failed", "error"})


def _is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def parse_document_status(doc: dict[str, Any]) -> DocumentStatus:
    """Map a backend document record onto a `DocumentStatus`."""
    raw_status = str(doc.get("status") or "").strip().lower()
    if raw_status in READY_STATUSES:
        state = RemoteState.READY
    elif raw_status in FAILED_STATUSES:
        state = RemoteState.FAILED
    else:
        state = RemoteState.PENDING

    chunk_count = doc.get("chunk_count", 0)
    if isinstance(chunk_count, bool) or not isinstance(chunk_count, int):
        chunk_count = 0
    return DocumentStatus(state=state, generation_counter=chunk_count)


class BackendStatusSource:
    """Reads document status from the backend."""

    def __init__(self, client: BackendClient):
        self._client = client

    async def get_status(self, subject_id: str) -> DocumentStatus:
        try:
            doc = await asyncio.to_thread(self._client.get_document, subject_id)
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else 0
            if status_code == 0 or _is_retryable_status(status_code):
                raise TransientError(f"backend returned HTTP {status_code}") from e
            raise FatalError(f"backend rejected status request with HTTP {status_code}") from e
        except requests.exceptions.RequestException as e:
            # Connection errors, timeouts and undecodable bodies are all worth a retry.
            raise TransientError(str(e) or type(e).__name__) from e

        if not isinstance(doc, dict):
            raise TransientError("backend returned a non-object document")
        return parse_document_status(doc)


class BackendArtifactGenerator:
    """Asks the backend to summarize a document."""

    def __init__(self, client: BackendClient):
        self._client = client

    async def generate(self, subject_id: str, scope: str) -> str:
        try:
            body = await asyncio.to_thread(self._client.summarize, subject_id, scope)
        except requests.exceptions.RequestException as e:
            raise GenerationError(f"summary request failed: {e}") from e

        summary = body.get("summary") if isinstance(body, dict) else None
        if not isinstance(summary, str):
            raise GenerationError("backend response did not contain a summary")
        return summary
