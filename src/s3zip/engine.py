"""
Sync Engine -- reconciles one local tree with its remote archive set.

    partition -> load metadata -> diff -> upload -> reclaim
                      \\______________ save metadata (always) ____/

Uploads and deletes may complete in any order. The metadata store is
saved after both phases finish or are abandoned, on every exit path,
with its own timeout so a cancelled run still keeps the records of the
uploads it already committed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from . import DEFAULT_CONCURRENCY, DEFAULT_METADATA_KEY
from .archive import CONTENT_TYPE, open_archive_stream
from .backends import BlobStore, create_backend
from .diff import list_objects_to_upload
from .errors import RunCancelled, S3ZipError
from .keys import listing_prefix, make_remote_key
from .metadata import MetadataStore
from .models import ObjectToUpload, RunResult, S3ZipConfig
from .partition import local_objects
from .pool import run_bounded
from .reclaim import reclaim

logger = logging.getLogger("s3zip.engine")

DEFAULT_SAVE_TIMEOUT = 30.0


def human_size(num: float) -> str:
    """Format a byte count like 1.5 MB."""
    for unit in ("B", "kB", "MB", "GB", "TB"):
        if abs(num) < 1000 or unit == "TB":
            return f"{num:.0f} {unit}" if unit == "B" else f"{num:.1f} {unit}"
        num /= 1000
    return f"{num:.1f} TB"


class SyncRunner:
    """Runs one reconciliation of a local tree against blob storage.

    A runner owns its metadata store for the duration of run(); two
    runners pointed at the same prefix at the same time will race.
    """

    def __init__(
        self,
        backend: BlobStore,
        path: Path,
        max_depth: int = 0,
        out_prefix: str = "",
        storage_class: str = "STANDARD",
        dry_run: bool = False,
        concurrency: int = DEFAULT_CONCURRENCY,
        metadata_key: str = DEFAULT_METADATA_KEY,
        save_timeout: float = DEFAULT_SAVE_TIMEOUT,
        cancel: Optional[threading.Event] = None,
    ):
        """Initialize the runner.

        Args:
            backend: Where archives and the metadata store live.
            path: Root of the local tree.
            max_depth: Partition depth (0 = whole tree is one unit).
            out_prefix: Destination key prefix.
            storage_class: Storage class for uploaded archives.
            dry_run: Fingerprint and diff only; no upload, delete or save.
            concurrency: Worker pool size for each phase.
            metadata_key: Key of the metadata store object.
            save_timeout: Seconds allowed for the final metadata save.
            cancel: External cancellation signal (e.g. set on SIGINT).
        """
        self.backend = backend
        self.path = Path(path).expanduser().resolve()
        self.max_depth = max_depth
        self.out_prefix = out_prefix
        self.storage_class = storage_class
        self.dry_run = dry_run
        self.concurrency = concurrency
        self.metadata_key = metadata_key
        self.save_timeout = save_timeout
        self.cancel = cancel or threading.Event()

        self.store: Optional[MetadataStore] = None
        self._abort = threading.Event()

    def key_for(self, unit: str) -> str:
        return make_remote_key(self.path, self.out_prefix, unit)

    def run(self) -> RunResult:
        """Partition the tree and reconcile it.

        Returns:
            Counts of uploaded and deleted objects.

        Raises:
            TraversalError: If the tree cannot be listed.
            S3ZipError: Any other failure, see reconcile().
        """
        units = local_objects(self.path, self.max_depth)
        logger.info("Listed %d unit(s) in %s", len(units), self.path)
        return self.reconcile(units)

    def reconcile(self, units: list[str]) -> RunResult:
        """Upload changed units and delete stale archives.

        Args:
            units: All current sync units of the tree.

        Returns:
            RunResult with uploaded/deleted counts.

        Raises:
            MetadataDecodeError: If the stored metadata is corrupt.
            HashError, ArchiveError, BackendError: First failure of the run,
                naming the failing unit where there is one.
            RunCancelled: If the cancel event was set.
        """
        self._abort = threading.Event()
        self.store = MetadataStore.load(self.backend, self.metadata_key)
        try:
            to_upload = list_objects_to_upload(
                self.path,
                units,
                self.store,
                self.key_for,
                self.concurrency,
                self._abort,
                self.cancel,
            )
            logger.info("Listed %d object(s) to upload", len(to_upload))

            self._check_cancelled()
            self._upload_objects(to_upload)

            self._check_cancelled()
            deleted = self._reclaim(units)
        finally:
            self._save_metadata()

        return RunResult(
            target=str(self.path),
            uploaded=len(to_upload),
            deleted=deleted,
            unchanged=len(units) - len(to_upload),
            uploaded_bytes=sum(o.size for o in to_upload),
            dry_run=self.dry_run,
        )

    def _check_cancelled(self) -> None:
        if self.cancel.is_set():
            self._abort.set()
            raise RunCancelled("run cancelled")

    def _reclaim(self, units: list[str]) -> int:
        prefix = listing_prefix(self.out_prefix)
        if not prefix:
            # an empty prefix would list the whole bucket
            logger.warning("No out_prefix for %s, stale archives are not reclaimed", self.path)
            return 0
        return reclaim(
            self.backend,
            prefix,
            units,
            self.key_for,
            store=self.store,
            protected=frozenset({self.metadata_key}),
            dry_run=self.dry_run,
        )

    def _upload_objects(self, objects: list[ObjectToUpload]) -> None:
        run_bounded(
            objects,
            self._upload_object,
            self.concurrency,
            self._abort,
            self.cancel,
            name="upload",
        )

    def _upload_object(self, obj: ObjectToUpload) -> None:
        key = self.key_for(obj.name)
        logger.info("Uploading %s (%s)", obj.name, human_size(obj.size))
        if self.dry_run:
            return

        try:
            with open_archive_stream(self.path / obj.name, abort=self._abort) as stream:
                self.backend.put(key, stream, CONTENT_TYPE, self.storage_class)
        except RunCancelled:
            raise
        except S3ZipError as exc:
            raise type(exc)(f"upload {obj.name!r}: {exc}", unit=obj.name) from exc

        self.store.record(key, obj.fingerprint)
        logger.debug("Committed %s -> %s", obj.name, key)

    def _save_metadata(self) -> None:
        """Save the store on a detached thread with a fresh timeout.

        Runs on every exit path. Failure is logged, never raised, so it
        cannot mask the error that ended the run.
        """
        if self.dry_run or self.store is None:
            return

        failures: list[BaseException] = []

        def _save() -> None:
            try:
                self.store.save(self.backend, self.metadata_key)
            except Exception as exc:
                failures.append(exc)

        logger.debug("Saving metadata store (timeout %.0fs)", self.save_timeout)
        saver = threading.Thread(target=_save, name="metadata-save", daemon=True)
        saver.start()
        saver.join(self.save_timeout)

        if saver.is_alive():
            logger.error("Save metadata store timed out after %.0fs", self.save_timeout)
        elif failures:
            logger.error("Save metadata store failed: %s", failures[0])


def run(backend: BlobStore, path: Path, **kwargs) -> RunResult:
    """Reconcile one tree. Keyword arguments are passed to SyncRunner."""
    return SyncRunner(backend, path, **kwargs).run()


def run_config(
    config: S3ZipConfig,
    backend: Optional[BlobStore] = None,
    cancel: Optional[threading.Event] = None,
    dry_run: Optional[bool] = None,
) -> list[RunResult]:
    """Reconcile every configured target in order.

    Stops at the first failing target.

    Args:
        config: Loaded configuration.
        backend: Backend override. Defaults to the configured one.
        cancel: External cancellation signal shared by all targets.
        dry_run: Override config.dry_run when not None.

    Returns:
        One RunResult per target.
    """
    backend = backend or create_backend(config.storage)
    dry = config.dry_run if dry_run is None else dry_run
    if dry:
        logger.info("Dry run is enabled")

    results = []
    for i, target in enumerate(config.targets):
        logger.info("Start target %d: %s (depth %d) -> %s",
                    i, target.path, target.zip_depth, target.out_prefix or "/")
        result = SyncRunner(
            backend,
            target.path,
            max_depth=target.zip_depth,
            out_prefix=target.out_prefix,
            storage_class=config.storage.storage_class,
            dry_run=dry,
            concurrency=config.concurrency,
            metadata_key=config.metadata_key,
            save_timeout=config.save_timeout,
            cancel=cancel,
        ).run()
        logger.info("Done target %d: uploaded=%d deleted=%d",
                    i, result.uploaded, result.deleted)
        results.append(result)
    return results
