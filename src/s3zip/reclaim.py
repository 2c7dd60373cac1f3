"""
Stale reclaimer -- delete archives whose local unit is gone.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .backends import BlobStore
from .metadata import MetadataStore

logger = logging.getLogger("s3zip.reclaim")


def find_stale_keys(
    backend: BlobStore,
    prefix: str,
    wanted: set[str],
    protected: frozenset[str] = frozenset(),
) -> list[str]:
    """List keys under prefix that are neither wanted nor protected."""
    stale = []
    for key in backend.list_prefix(prefix):
        if key in wanted or key in protected:
            continue
        stale.append(key)
    return sorted(stale)


def reclaim(
    backend: BlobStore,
    prefix: str,
    units: list[str],
    key_for: Callable[[str], str],
    store: Optional[MetadataStore] = None,
    protected: frozenset[str] = frozenset(),
    dry_run: bool = False,
) -> int:
    """Delete every archive under prefix with no matching local unit.

    Args:
        backend: Blob storage backend.
        prefix: Destination prefix to list.
        units: All current sync units (not just the uploaded ones).
        key_for: Maps a unit path to its remote key.
        store: Metadata store; entries of deleted keys are dropped.
        protected: Keys never deleted (the metadata store object).
        dry_run: Log what would be deleted, delete nothing.

    Returns:
        Number of objects deleted (or that would be deleted).

    Raises:
        BackendError: If listing or deletion fails.
    """
    wanted = {key_for(u) for u in units}
    stale = find_stale_keys(backend, prefix, wanted, protected)
    if not stale:
        return 0

    for key in stale:
        logger.info("Deleting: %s", key)
    if dry_run:
        return len(stale)

    backend.delete_batch(stale)
    if store is not None:
        store.forget(stale)
    logger.info("Deleted %d object(s)", len(stale))
    return len(stale)
