"""
Document Sync Command Line
==========================

Entry point wiring the backend client, the artifact cache, the status
poller and the orchestrator together from environment configuration.

Sub-commands:

- ``watch DOC_ID``: poll a freshly uploaded document until it is ready or
  has failed.
- ``summary DOC_ID``: print the document's summary, from the cache when the
  cached copy still matches the document's generation.
- ``forget DOC_ID`` / ``delete DOC_ID``: drop cached artifacts (and, for
  ``delete``, the document on the backend).
- ``cache-stats`` / ``cache-clear``: inspect or empty the local cache.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import requests
import structlog

from artifact_cache import DEFAULT_SCOPE, ArtifactCache, FileKV
from common.backend import BackendClient
from common.config import Settings
from common.errors import DocSyncError
from common.identity import BearerTokenIdentityResolver
from common.logging_config import configure_logging
from status_poller import PollPhase, PollUpdate, StatusPoller
from .orchestrator import SyncOrchestrator
from .sources import BackendArtifactGenerator, BackendStatusSource

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docsync",
        description="Track document processing and cache document summaries.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    watch = commands.add_parser("watch", help="poll a document until it is ready")
    watch.add_argument("doc_id")

    summary = commands.add_parser("summary", help="print a document summary")
    summary.add_argument("doc_id")
    summary.add_argument("--scope", default=DEFAULT_SCOPE)

    forget = commands.add_parser("forget", help="drop cached artifacts for a document")
    forget.add_argument("doc_id")

    delete = commands.add_parser(
        "delete", help="delete a document on the backend and drop its cached artifacts"
    )
    delete.add_argument("doc_id")

    commands.add_parser("cache-stats", help="show cache statistics")

    clear = commands.add_parser("cache-clear", help="clear cached artifacts")
    clear.add_argument(
        "--all",
        action="store_true",
        help="clear every owner's entries, not just the caller's",
    )
    return parser


def build_cache(settings: Settings) -> ArtifactCache:
    kv = FileKV(settings.CACHE_PATH) if settings.CACHE_PATH else None
    return ArtifactCache(kv, default_ttl=settings.CACHE_TTL_SECONDS)


def build_poller(settings: Settings, source: BackendStatusSource) -> StatusPoller:
    return StatusPoller(
        source,
        max_attempts=settings.POLL_MAX_ATTEMPTS,
        timeout_seconds=settings.POLL_TIMEOUT_SECONDS,
        jitter=settings.POLL_JITTER,
    )


async def watch_document(poller: StatusPoller, doc_id: str) -> int:
    """Poll ``doc_id`` to a terminal phase and print the outcome."""
    log = structlog.get_logger(__name__)

    def report(update: PollUpdate) -> None:
        log.info(
            "Processing progress",
            doc_id=update.subject_id,
            phase=update.phase.value,
            attempt=update.attempt,
            chunks=update.status.generation_counter if update.status else None,
        )

    state = await poller.track(doc_id, on_progress=report)
    if state.phase is PollPhase.READY:
        chunks = state.last_status.generation_counter if state.last_status else 0
        print(f"ready ({chunks} chunks)")
        return EXIT_OK
    print(f"failed: {state.error}")
    return EXIT_FAILED


def run_command(args: argparse.Namespace, settings: Settings) -> int:
    log = structlog.get_logger(__name__)
    client = BackendClient(settings)
    try:
        cache = build_cache(settings)
        identity = BearerTokenIdentityResolver(settings.API_TOKEN)
        source = BackendStatusSource(client)
        orchestrator = SyncOrchestrator(
            cache,
            source,
            BackendArtifactGenerator(client),
            identity=identity,
            ttl=settings.CACHE_TTL_SECONDS,
        )

        if args.command == "watch":
            return asyncio.run(watch_document(build_poller(settings, source), args.doc_id))

        if args.command == "summary":
            try:
                result = asyncio.run(orchestrator.request_artifact(args.doc_id, args.scope))
            except DocSyncError as e:
                log.error("Could not load summary", doc_id=args.doc_id, error=str(e))
                return EXIT_FAILED
            log.info(
                "Summary loaded",
                doc_id=args.doc_id,
                source=result.source,
                generation=result.generation,
            )
            print(result.payload)
            return EXIT_OK

        if args.command == "forget":
            orchestrator.forget_own_artifacts(args.doc_id)
            return EXIT_OK

        if args.command == "delete":
            try:
                client.delete_document(args.doc_id)
            except requests.exceptions.RequestException as e:
                log.error("Failed to delete document", doc_id=args.doc_id, error=str(e))
                return EXIT_FAILED
            # The document is gone for everyone, so every owner's copies go too.
            orchestrator.forget_subject(args.doc_id)
            return EXIT_OK

        owner_id = identity.current_owner_id()
        if args.command == "cache-stats":
            print(json.dumps(cache.stats(owner_id).to_dict(), indent=2))
            return EXIT_OK

        if args.command == "cache-clear":
            if args.all:
                cache.clear_all()
            else:
                # Without an owner only the shared, ownerless entries go.
                cache.clear_for_owner(owner_id)
            return EXIT_OK

        raise ValueError(f"unknown command {args.command!r}")
    finally:
        client.close()


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, load settings and run one command."""
    log = structlog.get_logger(__name__)
    args = build_parser().parse_args(argv)

    try:
        settings = Settings()
        configure_logging(settings)
    except ValueError as e:
        log.error("Configuration error", error=str(e))
        return EXIT_CONFIG

    return run_command(args, settings)


if __name__ == "__main__":
    sys.exit(main())
