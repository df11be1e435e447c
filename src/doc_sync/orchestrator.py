"""
Sync Orchestrator
=================

This module decides whether a derived artifact (a document summary) can be
served from the local `ArtifactCache` or has to be generated again by the
backend.

The subject's current generation comes from the status source on every
request, so an artifact cached before the document's content changed is
never served. On a miss the generator is called and its result cached under
that generation.

Cache reads and writes may hit the disk, so they run in a worker thread
like the backend calls in `doc_sync.sources`.

Concurrent requests for the same key are not coalesced: each one that
misses calls the generator and writes the cache, and the last write wins.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal, Protocol

import structlog

from artifact_cache import DEFAULT_SCOPE, ArtifactCache
from common.identity import IdentityResolver
from status_poller import StatusSource

log = structlog.get_logger(__name__)

ArtifactOrigin = Literal["cache", "generated"]


class ArtifactGenerator(Protocol):
    """Produces an artifact remotely. Failures propagate to the caller."""

    async def generate(self, subject_id: str, scope: str) -> str:
        ...


@dataclass(frozen=True)
class ArtifactResult:
    payload: str
    source: ArtifactOrigin
    generation: int


class SyncOrchestrator:
    """Serves artifacts from the cache and regenerates them on a miss."""

    def __init__(
        self,
        cache: ArtifactCache,
        source: StatusSource,
        generator: ArtifactGenerator,
        identity: IdentityResolver | None = None,
        ttl: float | None = None,
    ):
        self.cache = cache
        self.source = source
        self.generator = generator
        self.identity = identity
        self.ttl = ttl

    def _resolve_owner(self, owner_id: str | None) -> str | None:
        if owner_id:
            return owner_id
        if self.identity is None:
            return None
        return self.identity.current_owner_id()

    async def request_artifact(
        self,
        subject_id: str,
        scope: str = DEFAULT_SCOPE,
        owner_id: str | None = None,
    ) -> ArtifactResult:
        """
        Return the artifact for ``(subject_id, scope)``.

        Errors from the status source or the generator propagate unchanged and
        nothing is cached for a failed generation.
        """
        owner_id = self._resolve_owner(owner_id)
        status = await self.source.get_status(subject_id)
        generation = status.generation_counter

        cached = await asyncio.to_thread(
            self.cache.get, subject_id, scope, owner_id, generation
        )
        if cached is not None:
            log.info(
                "Serving artifact from cache",
                subject_id=subject_id,
                scope=scope,
                generation=generation,
            )
            return ArtifactResult(payload=cached, source="cache", generation=generation)

        log.info(
            "Generating artifact",
            subject_id=subject_id,
            scope=scope,
            generation=generation,
        )
        try:
            payload = await self.generator.generate(subject_id, scope)
        except Exception:
            log.warning(
                "Artifact generation failed", subject_id=subject_id, scope=scope
            )
            raise

        await asyncio.to_thread(
            self.cache.set,
            subject_id,
            scope,
            payload,
            owner_id=owner_id,
            ttl=self.ttl,
            generation=generation,
        )
        return ArtifactResult(payload=payload, source="generated", generation=generation)

    def forget_subject(self, subject_id: str, owner_id: str | None = None) -> None:
        """
        Drop cached artifacts for a subject, e.g. after it was deleted.

        Without ``owner_id`` every owner's copies go.
        """
        self.cache.remove_all_for_subject(subject_id, owner_id)
        log.info("Dropped cached artifacts", subject_id=subject_id, owner_id=owner_id)

    def forget_own_artifacts(self, subject_id: str, owner_id: str | None = None) -> None:
        """
        Drop the caller's cached artifacts for a subject.

        The owner is resolved like in `request_artifact`. A caller without an
        owner only reaches the shared, ownerless entries.
        """
        owner_id = self._resolve_owner(owner_id)
        self.cache.remove_subject_for_owner(subject_id, owner_id)
        log.info("Dropped own cached artifacts", subject_id=subject_id, owner_id=owner_id)
