"""
Blob storage backends -- where the archives live.

The reconciliation core needs only four operations from storage, so the
backend surface is kept to exactly those: get, put, list by prefix and
batch delete. Anything else a storage SDK offers stays out of reach.

S3: boto3 client, streamed multipart uploads, paginated listing.
Local: a plain directory acting as the bucket. For USB drives, NAS, etc.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Optional

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import BackendError
from .models import BackendType, StorageConfig

logger = logging.getLogger("s3zip.backends")

PART_SIZE = 64 * 1024 * 1024
DELETE_BATCH_SIZE = 1000
NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class BlobStore(ABC):
    """Abstract blob storage backend."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Read an object.

        Args:
            key: Object key.

        Returns:
            The object body, or None if the key does not exist.
        """

    @abstractmethod
    def put(
        self,
        key: str,
        body: BinaryIO,
        content_type: str,
        storage_class: str,
    ) -> None:
        """Write an object from a readable stream of any length.

        The object must not become visible if reading body fails.
        """

    @abstractmethod
    def list_prefix(self, prefix: str) -> Iterator[str]:
        """Yield every key starting with prefix."""

    @abstractmethod
    def delete_batch(self, keys: Iterable[str]) -> None:
        """Delete the given keys."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""


def _chunked(items: list[str], size: int) -> Iterator[list[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class S3BlobStore(BlobStore):
    """Amazon S3 (or any S3-compatible endpoint) via boto3."""

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self.bucket = config.bucket
        self._client = client
        self._transfer = TransferConfig(
            multipart_threshold=PART_SIZE,
            multipart_chunksize=PART_SIZE,
        )

    @property
    def name(self) -> str:
        return f"s3://{self.bucket}"

    @property
    def client(self):
        if self._client is None:
            self._client = self._make_client()
        return self._client

    def _make_client(self):
        """Create an S3 client with bounded timeouts and standard retries."""
        boto_config = BotoConfig(
            connect_timeout=10,
            read_timeout=120,
            retries={"max_attempts": 5, "mode": "standard"},
            max_pool_connections=50,
        )
        kwargs = {"config": boto_config}
        if self.config.region:
            kwargs["region_name"] = self.config.region
        if self.config.endpoint_url:
            kwargs["endpoint_url"] = self.config.endpoint_url
        if self.config.profile:
            session = boto3.Session(profile_name=self.config.profile)
            return session.client("s3", **kwargs)
        return boto3.client("s3", **kwargs)

    def get(self, key: str) -> Optional[bytes]:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
            return resp["Body"].read()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in NOT_FOUND_CODES:
                return None
            raise BackendError(f"get {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise BackendError(f"get {key}: {exc}") from exc

    def put(
        self,
        key: str,
        body: BinaryIO,
        content_type: str,
        storage_class: str,
    ) -> None:
        try:
            self.client.upload_fileobj(
                body,
                self.bucket,
                key,
                ExtraArgs={
                    "ContentType": content_type,
                    "StorageClass": storage_class,
                },
                Config=self._transfer,
            )
        except (ClientError, BotoCoreError) as exc:
            raise BackendError(f"put {key}: {exc}") from exc

    def list_prefix(self, prefix: str) -> Iterator[str]:
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []) or []:
                    yield obj["Key"]
        except (ClientError, BotoCoreError) as exc:
            raise BackendError(f"list {prefix!r}: {exc}") from exc

    def delete_batch(self, keys: Iterable[str]) -> None:
        for batch in _chunked(list(keys), DELETE_BATCH_SIZE):
            try:
                resp = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={
                        "Objects": [{"Key": k} for k in batch],
                        "Quiet": True,
                    },
                )
            except (ClientError, BotoCoreError) as exc:
                raise BackendError(f"delete {len(batch)} object(s): {exc}") from exc

            errors = resp.get("Errors") or []
            if errors:
                first = errors[0]
                raise BackendError(
                    f"delete {first.get('Key')}: {first.get('Code')} "
                    f"{first.get('Message', '')} ({len(errors)} failed)"
                )


class LocalBlobStore(BlobStore):
    """Local filesystem backend. Keys map to paths under a root directory."""

    TMP_DIR = ".s3zip-tmp"

    def __init__(self, config: StorageConfig):
        self.config = config
        self.root = Path(config.local_path).expanduser()
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return f"local:{self.root}"

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise BackendError(f"key escapes backend root: {key!r}")
        return path

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise BackendError(f"get {key}: {exc}") from exc

    def put(
        self,
        key: str,
        body: BinaryIO,
        content_type: str,
        storage_class: str,
    ) -> None:
        path = self._path(key)
        tmp_dir = self.root / self.TMP_DIR
        try:
            tmp_dir.mkdir(exist_ok=True)
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=tmp_dir)
        except OSError as exc:
            raise BackendError(f"put {key}: {exc}") from exc

        try:
            with os.fdopen(fd, "wb") as out:
                shutil.copyfileobj(body, out, 1024 * 1024)
            os.replace(tmp_name, path)
        except OSError as exc:
            os.unlink(tmp_name)
            raise BackendError(f"put {key}: {exc}") from exc
        except BaseException:
            os.unlink(tmp_name)
            raise

    def list_prefix(self, prefix: str) -> Iterator[str]:
        def _raise(exc: OSError) -> None:
            raise BackendError(f"list {prefix!r}: {exc}") from exc

        keys = []
        for dirpath, dirnames, filenames in os.walk(self.root, onerror=_raise):
            if Path(dirpath) == self.root and self.TMP_DIR in dirnames:
                dirnames.remove(self.TMP_DIR)
            for name in filenames:
                key = Path(dirpath, name).relative_to(self.root).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        yield from sorted(keys)

    def delete_batch(self, keys: Iterable[str]) -> None:
        for key in keys:
            try:
                self._path(key).unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise BackendError(f"delete {key}: {exc}") from exc


def create_backend(config: StorageConfig) -> BlobStore:
    """Factory function to create the configured backend.

    Args:
        config: Storage configuration.

    Returns:
        Instantiated BlobStore.

    Raises:
        ValueError: If the backend type is not supported.
    """
    factories = {
        BackendType.S3: S3BlobStore,
        BackendType.LOCAL: LocalBlobStore,
    }
    factory = factories.get(config.backend_type)
    if not factory:
        raise ValueError(f"Unsupported backend: {config.backend_type}")
    logger.debug("Using %s backend", config.backend_type.value)
    return factory(config)
