"""
Blob Storage Backends
=====================

The artifact cache persists its whole store as one serialized string. This
module defines the tiny contract it needs from the storage medium and two
implementations:

- ``MemoryKV`` keeps the blob in process memory. The cache uses it when no
  persistent medium is available.
- ``FileKV`` keeps the blob in a single JSON file on disk.

Backends raise ``OSError`` on I/O failure and ``UnicodeDecodeError`` when
the stored bytes are not UTF-8. Deciding what to do about either is the
cache's job, not the backend's.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol


class PersistentKV(Protocol):
    """Synchronous single-blob store."""

    def read_blob(self) -> str | None:
        ...

    def write_blob(self, blob: str) -> None:
        ...


class MemoryKV:
    """Process-local blob holder."""

    def __init__(self, blob: str | None = None):
        self._blob = blob

    def read_blob(self) -> str | None:
        return self._blob

    def write_blob(self, blob: str) -> None:
        self._blob = blob


class FileKV:
    """Blob stored in one file; a missing file reads as no blob."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"FileKV({str(self.path)!r})"

    def read_blob(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write_blob(self, blob: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Replace the file in one step so readers never see a half-written blob.
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(blob)
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
