"""
The metadata store -- which fingerprint was last uploaded under each key.

Loaded once at the start of a run, mutated in memory by the diff and
upload workers, saved once at the end. One coarse lock guards the whole
mapping; critical sections are a dict lookup or assignment, never I/O.
"""

from __future__ import annotations

import io
import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import ValidationError

from .backends import BlobStore
from .errors import MetadataDecodeError
from .models import METADATA_SCHEMA_VERSION, MetadataDocument

logger = logging.getLogger("s3zip.metadata")

CONTENT_TYPE = "application/json"
STORAGE_CLASS = "STANDARD"


class MetadataStore:
    """Thread-safe mapping of remote key -> fingerprint."""

    def __init__(self, entries: Optional[dict[str, str]] = None):
        self._lock = threading.Lock()
        self._entries: dict[str, str] = dict(entries or {})

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def is_current(self, key: str, fingerprint: str) -> bool:
        """True if key was last uploaded with exactly this fingerprint."""
        with self._lock:
            return self._entries.get(key) == fingerprint

    def record(self, key: str, fingerprint: str) -> None:
        """Remember a committed upload."""
        with self._lock:
            self._entries[key] = fingerprint

    def forget(self, keys: Iterable[str]) -> int:
        """Drop entries for deleted objects. Returns how many were present."""
        removed = 0
        with self._lock:
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
        return removed

    def snapshot(self) -> dict[str, str]:
        """Copy of the current mapping."""
        with self._lock:
            return dict(self._entries)

    def encode(self) -> bytes:
        doc = MetadataDocument(
            updated_at=datetime.now(timezone.utc),
            entries=dict(sorted(self.snapshot().items())),
        )
        return doc.model_dump_json(indent=2).encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> "MetadataStore":
        """Parse the wire form.

        Raises:
            MetadataDecodeError: If data is not a valid metadata document.
        """
        try:
            doc = MetadataDocument.model_validate_json(data)
        except ValidationError as exc:
            raise MetadataDecodeError(f"decode metadata store: {exc}") from exc
        if doc.schema_version != METADATA_SCHEMA_VERSION:
            raise MetadataDecodeError(
                f"unsupported metadata schema version {doc.schema_version!r}"
            )
        return cls(doc.entries)

    @classmethod
    def load(cls, backend: BlobStore, key: str) -> "MetadataStore":
        """Fetch the store from the backend.

        A missing object yields an empty store: that is a cold start, not
        an error. A present but unreadable object is an error, since
        treating it as empty would silently re-upload everything.

        Raises:
            MetadataDecodeError: If the stored object is corrupt.
            BackendError: If the backend cannot be read.
        """
        logger.debug("Loading metadata store: %s", key)
        data = backend.get(key)
        if data is None:
            logger.info("Metadata store not found, creating a new one")
            return cls()

        store = cls.decode(data)
        logger.info("Loaded metadata store (%d entries)", len(store))
        return store

    def save(self, backend: BlobStore, key: str) -> None:
        """Write the store back to the backend."""
        data = self.encode()
        backend.put(key, io.BytesIO(data), CONTENT_TYPE, STORAGE_CLASS)
        logger.info("Saved metadata store (%d entries)", len(self))
