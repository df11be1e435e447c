"""
RAG Backend API Client
======================

This module provides a client for the document backend that ingests
uploaded files, reports their processing status and produces summaries.
It encapsulates authenticated requests against the backend REST API and
the small set of operations this client needs: reading a document's
status, requesting a summary and deleting a document.

The `BackendClient` is deliberately synchronous and thin. Retrying and
error classification belong to the callers (the status poller has its own
backoff budget), so every method raises the underlying ``requests``
exception unchanged.
"""

from typing import Any

import requests

from .config import Settings


class BackendClient:
    """A client for interacting with the RAG backend API."""

    def __init__(self, settings: Settings):
        """Initializes the client with a session and authentication."""
        self.settings = settings
        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        if self.settings.API_TOKEN:
            self._session.headers.update(
                {"Authorization": f"Bearer {self.settings.API_TOKEN}"}
            )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()

    def _url(self, path: str) -> str:
        return f"{self.settings.BACKEND_URL}{path}"

    def get_document(self, doc_id: str | int) -> dict[str, Any]:
        """
        Fetch a document record, including its ``status`` and ``chunk_count``.
        """
        response = self._session.get(
            self._url(f"/documents/{doc_id}"),
            timeout=self.settings.REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        return response.json()

    def summarize(self, doc_id: str | int, scope: str = "full") -> dict[str, Any]:
        """
        Ask the backend to summarize a document and return the raw response body.
        """
        response = self._session.post(
            self._url("/rag/summarize"),
            json={"doc_id": doc_id, "scope": scope},
            timeout=self.settings.REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        return response.json()

    def delete_document(self, doc_id: str | int) -> None:
        """Delete a document on the backend."""
        response = self._session.delete(
            self._url(f"/documents/{doc_id}"),
            timeout=self.settings.REQUEST_TIMEOUT,
        )
        response.raise_for_status()
