"""
Artifact Cache
==============

Summaries and other derived artifacts are expensive to produce on the
backend, so the client keeps them in a local cache keyed by
``(subject, scope, owner)``.

An entry is only served while all three of these hold:

- it has not expired (``now < expires_at``);
- its generation matches the subject's current generation, when the caller
  supplies one (the backend's chunk count changes whenever the document's
  content does);
- it belongs to the caller's owner, or to no owner at all.

The store is a single JSON blob held by a `PersistentKV`. Every operation
reads the whole blob, mutates it and writes it back. There is no locking:
two writers race and the last one wins. That is acceptable because a miss
only ever leads to regeneration, never to wrong data.

The cache fails closed. Corrupt blobs read as an empty store and storage
failures switch the instance to an in-memory blob; none of these reach
the caller.
"""

from __future__ import annotations

import json
import time
from typing import Callable

import structlog

from .models import CacheEntry, CacheStats, cache_key
from .storage import MemoryKV, PersistentKV

log = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_SCOPE = "full"


class ArtifactCache:
    """Owner-isolated, generation- and TTL-validated artifact store."""

    def __init__(
        self,
        kv: PersistentKV | None = None,
        *,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._kv: PersistentKV = kv if kv is not None else MemoryKV()
        self._default_ttl = default_ttl
        self._clock = clock
        self._last_blob: str | None = None

    @property
    def persistent(self) -> bool:
        """False once the cache runs on an in-memory blob only."""
        return not isinstance(self._kv, MemoryKV)

    # --- Public API ---

    def get(
        self,
        subject_id: str,
        scope: str = DEFAULT_SCOPE,
        owner_id: str | None = None,
        current_generation: int | None = None,
    ) -> str | None:
        """
        Return the cached payload, or None when there is no valid entry.

        Every read first evicts all expired entries in the store, not just the
        requested one. A generation mismatch removes the stale entry.
        """
        owner_id = owner_id or None
        now = self._clock()
        entries = self._load()
        if self._evict_expired(entries, now):
            self._save(entries)

        key = cache_key(subject_id, scope, owner_id)
        entry = entries.get(key)
        if entry is None:
            return None

        if entry.owner_id is not None and entry.owner_id != owner_id:
            log.warning(
                "Cached artifact owner mismatch; ignoring entry",
                subject_id=subject_id,
                scope=scope,
            )
            return None

        if current_generation is not None and entry.generation != current_generation:
            log.info(
                "Cached artifact is stale; removing",
                subject_id=subject_id,
                scope=scope,
                cached_generation=entry.generation,
                current_generation=current_generation,
            )
            del entries[key]
            self._save(entries)
            return None

        return entry.payload

    def is_cached(
        self,
        subject_id: str,
        scope: str = DEFAULT_SCOPE,
        owner_id: str | None = None,
        current_generation: int | None = None,
    ) -> bool:
        return self.get(subject_id, scope, owner_id, current_generation) is not None

    def set(
        self,
        subject_id: str,
        scope: str,
        payload: str,
        owner_id: str | None = None,
        ttl: float | None = None,
        generation: int = 0,
    ) -> None:
        """Store ``payload``, overwriting any entry with the same key."""
        now = self._clock()
        ttl = self._default_ttl if ttl is None else ttl
        entry = CacheEntry(
            subject_id=subject_id,
            scope=scope,
            payload=payload,
            created_at=now,
            expires_at=now + ttl,
            generation=generation,
            owner_id=owner_id or None,
        )
        entries = self._load()
        entries[entry.key] = entry
        self._save(entries)
        log.debug(
            "Cached artifact",
            subject_id=subject_id,
            scope=scope,
            generation=generation,
            ttl=ttl,
        )

    def remove(
        self, subject_id: str, scope: str = DEFAULT_SCOPE, owner_id: str | None = None
    ) -> None:
        entries = self._load()
        if entries.pop(cache_key(subject_id, scope, owner_id), None) is not None:
            self._save(entries)

    def remove_all_for_subject(self, subject_id: str, owner_id: str | None = None) -> None:
        """
        Drop every entry for ``subject_id``.

        Without ``owner_id`` all owners' entries go; with it, only that owner's.
        """
        owner_id = owner_id or None
        self._remove_where(
            lambda entry: entry.subject_id == subject_id
            and (owner_id is None or entry.owner_id == owner_id)
        )

    def remove_subject_for_owner(self, subject_id: str, owner_id: str | None) -> None:
        """
        Drop ``subject_id``'s entries in exactly one owner namespace.

        ``owner_id=None`` means the shared namespace of entries stored without
        an owner; other owners' entries are never touched.
        """
        owner_id = owner_id or None
        self._remove_where(
            lambda entry: entry.subject_id == subject_id and entry.owner_id == owner_id
        )

    def clear_for_owner(self, owner_id: str | None) -> None:
        """Drop one owner's entries; ``None`` clears only the ownerless ones."""
        owner_id = owner_id or None
        self._remove_where(lambda entry: entry.owner_id == owner_id)

    def clear_all(self) -> None:
        self._save({})

    def stats(self, owner_id: str | None = None) -> CacheStats:
        """
        Summarize the store. Counts other than ``total_entries`` cover only
        ``owner_id``'s entries when an owner is given.
        """
        now = self._clock()
        blob = self._read_blob()
        entries = list(self._parse(blob).values())
        owned = [e for e in entries if owner_id is None or e.owner_id == owner_id]
        expired = sum(1 for e in owned if e.is_expired(now))
        return CacheStats(
            total_entries=len(entries),
            owner_entries=len(owned),
            expired_entries=expired,
            valid_entries=len(owned) - expired,
            approx_size_bytes=len(blob.encode("utf-8")) if blob else 0,
        )

    # --- Persistence ---

    def _remove_where(self, predicate: Callable[[CacheEntry], bool]) -> None:
        entries = self._load()
        doomed = [key for key, entry in entries.items() if predicate(entry)]
        if not doomed:
            return
        for key in doomed:
            del entries[key]
        self._save(entries)

    @staticmethod
    def _evict_expired(entries: dict[str, CacheEntry], now: float) -> bool:
        expired = [key for key, entry in entries.items() if entry.is_expired(now)]
        for key in expired:
            del entries[key]
        if expired:
            log.debug("Evicted expired artifacts", count=len(expired))
        return bool(expired)

    def _load(self) -> dict[str, CacheEntry]:
        return self._parse(self._read_blob())

    def _save(self, entries: dict[str, CacheEntry]) -> None:
        blob = json.dumps(
            {key: entry.to_dict() for key, entry in entries.items()},
            separators=(",", ":"),
        )
        self._write_blob(blob)

    @staticmethod
    def _parse(blob: str | None) -> dict[str, CacheEntry]:
        if not blob:
            return {}
        try:
            raw = json.loads(blob)
        except ValueError as e:
            log.warning(
                "Artifact cache is corrupt; treating as empty",
                error_kind="CacheCorruption",
                error=str(e),
            )
            return {}
        if not isinstance(raw, dict):
            log.warning(
                "Artifact cache is not a JSON object; treating as empty",
                error_kind="CacheCorruption",
                blob_type=type(raw).__name__,
            )
            return {}

        entries: dict[str, CacheEntry] = {}
        for key, value in raw.items():
            try:
                entry = CacheEntry.from_dict(value)
            except (KeyError, TypeError, ValueError) as e:
                log.warning(
                    "Dropping malformed cache entry",
                    error_kind="CacheCorruption",
                    key=key,
                    error=repr(e),
                )
                continue
            entries[key] = entry
        return entries

    def _read_blob(self) -> str | None:
        try:
            blob = self._kv.read_blob()
        except UnicodeDecodeError as e:
            # The medium works but holds bytes that are not text; the next
            # write replaces them.
            log.warning(
                "Artifact cache is not valid UTF-8; treating as empty",
                error_kind="CacheCorruption",
                error=str(e),
            )
            blob = None
        except OSError as e:
            self._fall_back_to_memory(self._last_blob, operation="read", error=e)
            return self._last_blob
        self._last_blob = blob
        return blob

    def _write_blob(self, blob: str) -> None:
        try:
            self._kv.write_blob(blob)
        except OSError as e:
            self._fall_back_to_memory(blob, operation="write", error=e)
        self._last_blob = blob

    def _fall_back_to_memory(self, blob: str | None, *, operation: str, error: OSError) -> None:
        log.warning(
            "Persistent cache storage unavailable; continuing in memory",
            operation=operation,
            storage=repr(self._kv),
            error=str(error),
        )
        self._kv = MemoryKV(blob)
