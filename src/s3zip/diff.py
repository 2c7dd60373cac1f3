"""
Diff engine -- which sync units need uploading.

Every unit is fingerprinted on the worker pool and compared against the
metadata store. A unit is selected when its key has no entry or the entry
holds a different fingerprint. Nothing else is ever skipped, so a changed
unit cannot be missed short of a SHA-256 collision.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from .errors import HashError, S3ZipError
from .fingerprint import fingerprint, unit_size
from .metadata import MetadataStore
from .models import ObjectToUpload
from .pool import run_bounded

logger = logging.getLogger("s3zip.diff")


def list_objects_to_upload(
    root: Path,
    units: list[str],
    store: MetadataStore,
    key_for: Callable[[str], str],
    concurrency: int,
    abort: threading.Event,
    cancel: Optional[threading.Event] = None,
) -> list[ObjectToUpload]:
    """Fingerprint all units and return the ones that changed.

    Args:
        root: Root directory the units are relative to.
        units: Sync unit paths from the partitioner.
        store: Metadata store loaded for this run.
        key_for: Maps a unit path to its remote key.
        concurrency: Worker pool size.
        abort: Shared abort event for the run.
        cancel: External cancellation signal.

    Returns:
        Units needing upload, sorted by name.

    Raises:
        HashError: If any unit fails to fingerprint (names the unit).
    """

    def _check(unit: str) -> Optional[ObjectToUpload]:
        path = root / unit
        try:
            fp = fingerprint(path)
        except S3ZipError as exc:
            raise HashError(f"compute fingerprint {unit!r}: {exc}", unit=unit) from exc

        if store.is_current(key_for(unit), fp):
            logger.debug("Unchanged: %s", unit)
            return None

        try:
            size = unit_size(path)
        except S3ZipError as exc:
            raise HashError(f"compute size {unit!r}: {exc}", unit=unit) from exc
        return ObjectToUpload(name=unit, fingerprint=fp, size=size)

    results = run_bounded(units, _check, concurrency, abort, cancel, name="diff")
    return sorted((r for r in results if r is not None), key=lambda o: o.name)
