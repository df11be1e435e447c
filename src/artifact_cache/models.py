"""Cache records and the persisted JSON layout."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


def cache_key(subject_id: str, scope: str, owner_id: str | None = None) -> str:
    """Composite key ``"{subject}|{scope}|{owner-or-empty}"``."""
    return f"{subject_id}|{scope}|{owner_id or ''}"


@dataclass
class CacheEntry:
    """One derived artifact for a (subject, scope, owner) triple."""

    subject_id: str
    scope: str
    payload: str
    created_at: float
    expires_at: float
    generation: int = 0
    owner_id: str | None = None

    @property
    def key(self) -> str:
        return cache_key(self.subject_id, self.scope, self.owner_id)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase field names of the persisted blob."""
        return {
            "subjectId": self.subject_id,
            "scope": self.scope,
            "ownerId": self.owner_id,
            "payload": self.payload,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
            "generation": self.generation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        """
        Rebuild an entry from its persisted form.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` when a field is
        missing or has the wrong shape.
        """
        payload = data["payload"]
        if not isinstance(payload, str):
            raise TypeError("payload must be a string")
        generation = data.get("generation", 0)
        if isinstance(generation, bool) or not isinstance(generation, int):
            raise TypeError("generation must be an integer")
        owner_id = data.get("ownerId") or None
        return cls(
            subject_id=str(data["subjectId"]),
            scope=str(data["scope"]),
            payload=payload,
            created_at=float(data["createdAt"]),
            expires_at=float(data["expiresAt"]),
            generation=generation,
            owner_id=str(owner_id) if owner_id is not None else None,
        )


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of the store's contents."""

    total_entries: int
    owner_entries: int
    expired_entries: int
    valid_entries: int
    approx_size_bytes: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)
