"""
Artifact cache package.

This package contains:

- the owner-isolated, generation- and TTL-validated artifact cache
- the persisted entry model and cache statistics
- the blob storage backends (in-memory and single-file)
"""

from .models import CacheEntry, CacheStats, cache_key
from .storage import FileKV, MemoryKV, PersistentKV
from .store import DEFAULT_SCOPE, DEFAULT_TTL_SECONDS, ArtifactCache

__all__ = [
    "ArtifactCache",
    "CacheEntry",
    "CacheStats",
    "DEFAULT_SCOPE",
    "DEFAULT_TTL_SECONDS",
    "FileKV",
    "MemoryKV",
    "PersistentKV",
    "cache_key",
]
