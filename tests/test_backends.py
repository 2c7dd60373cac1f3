"""Tests for blob storage backends."""

from __future__ import annotations

import io
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from s3zip.backends import (
    DELETE_BATCH_SIZE,
    LocalBlobStore,
    S3BlobStore,
    create_backend,
)
from s3zip.errors import ArchiveError, BackendError
from s3zip.models import BackendType, StorageConfig


def _client_error(code: str, op: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


@pytest.fixture
def s3_config() -> StorageConfig:
    return StorageConfig(backend_type=BackendType.S3, bucket="test-bucket", region="us-east-1")


class TestLocalBlobStore:
    """Tests for the local filesystem backend."""

    def test_put_get_roundtrip(self, backend) -> None:
        backend.put("a/b/c.zip", io.BytesIO(b"payload"), "application/zip", "STANDARD")
        assert backend.get("a/b/c.zip") == b"payload"

    def test_get_missing_returns_none(self, backend) -> None:
        assert backend.get("nope.zip") is None

    def test_list_prefix(self, backend) -> None:
        for key in ("p/x.zip", "p/y/z.zip", "q/w.zip"):
            backend.put(key, io.BytesIO(b"1"), "application/zip", "STANDARD")
        assert list(backend.list_prefix("p/")) == ["p/x.zip", "p/y/z.zip"]
        assert len(list(backend.list_prefix(""))) == 3

    def test_delete_batch(self, backend) -> None:
        backend.put("p/x.zip", io.BytesIO(b"1"), "application/zip", "STANDARD")
        backend.delete_batch(["p/x.zip", "p/already-gone.zip"])
        assert backend.get("p/x.zip") is None

    def test_failed_stream_leaves_no_object(self, backend, bucket_dir: Path) -> None:
        """A body that fails mid-read must not become a visible object."""
        body = MagicMock()
        body.read.side_effect = [b"partial", ArchiveError("disk gone")]

        with pytest.raises(ArchiveError):
            backend.put("p/x.zip", body, "application/zip", "STANDARD")

        assert backend.get("p/x.zip") is None
        assert list(backend.list_prefix("")) == []
        assert list((bucket_dir / LocalBlobStore.TMP_DIR).iterdir()) == []

    def test_key_escaping_root_rejected(self, backend) -> None:
        with pytest.raises(BackendError):
            backend.get("../outside.zip")


class TestS3BlobStore:
    """Tests for the S3 backend against a mocked boto3 client."""

    def test_get_returns_body(self, s3_config) -> None:
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(b"data")}
        store = S3BlobStore(s3_config, client=client)

        assert store.get("k") == b"data"
        client.get_object.assert_called_once_with(Bucket="test-bucket", Key="k")

    @pytest.mark.parametrize("code", ["NoSuchKey", "404"])
    def test_get_missing_returns_none(self, s3_config, code) -> None:
        client = MagicMock()
        client.get_object.side_effect = _client_error(code)
        assert S3BlobStore(s3_config, client=client).get("k") is None

    def test_get_other_error_raises(self, s3_config) -> None:
        client = MagicMock()
        client.get_object.side_effect = _client_error("AccessDenied")
        with pytest.raises(BackendError, match="AccessDenied"):
            S3BlobStore(s3_config, client=client).get("k")

    def test_put_streams_with_storage_class(self, s3_config) -> None:
        client = MagicMock()
        store = S3BlobStore(s3_config, client=client)
        body = io.BytesIO(b"zip")

        store.put("p/a.zip", body, "application/zip", "DEEP_ARCHIVE")

        args, kwargs = client.upload_fileobj.call_args
        assert args == (body, "test-bucket", "p/a.zip")
        assert kwargs["ExtraArgs"] == {"ContentType": "application/zip", "StorageClass": "DEEP_ARCHIVE"}
        assert kwargs["Config"].multipart_chunksize == 64 * 1024 * 1024

    def test_put_error_raises(self, s3_config) -> None:
        client = MagicMock()
        client.upload_fileobj.side_effect = _client_error("SlowDown", "PutObject")
        with pytest.raises(BackendError):
            S3BlobStore(s3_config, client=client).put("k", io.BytesIO(b""), "a", "STANDARD")

    def test_list_prefix_paginates(self, s3_config) -> None:
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "p/a.zip"}, {"Key": "p/b.zip"}]},
            {"Contents": [{"Key": "p/c.zip"}]},
            {},
        ]
        store = S3BlobStore(s3_config, client=client)

        assert list(store.list_prefix("p/")) == ["p/a.zip", "p/b.zip", "p/c.zip"]
        client.get_paginator.assert_called_once_with("list_objects_v2")
        client.get_paginator.return_value.paginate.assert_called_once_with(
            Bucket="test-bucket", Prefix="p/"
        )

    def test_delete_batch_splits_requests(self, s3_config) -> None:
        client = MagicMock()
        client.delete_objects.return_value = {}
        keys = [f"p/{i}.zip" for i in range(DELETE_BATCH_SIZE + 5)]

        S3BlobStore(s3_config, client=client).delete_batch(keys)

        calls = client.delete_objects.call_args_list
        assert len(calls) == 2
        assert len(calls[0].kwargs["Delete"]["Objects"]) == DELETE_BATCH_SIZE
        assert calls[1].kwargs["Delete"]["Objects"][-1] == {"Key": keys[-1]}

    def test_delete_partial_failure_raises(self, s3_config) -> None:
        client = MagicMock()
        client.delete_objects.return_value = {
            "Errors": [{"Key": "p/a.zip", "Code": "AccessDenied", "Message": "no"}]
        }
        with pytest.raises(BackendError, match="p/a.zip"):
            S3BlobStore(s3_config, client=client).delete_batch(["p/a.zip"])


class TestBackendFactory:
    """Tests for create_backend()."""

    def test_creates_s3(self, s3_config) -> None:
        backend = create_backend(s3_config)
        assert isinstance(backend, S3BlobStore)
        assert backend.name == "s3://test-bucket"

    def test_creates_local(self, tmp_path: Path) -> None:
        config = StorageConfig(backend_type=BackendType.LOCAL, local_path=tmp_path / "b")
        backend = create_backend(config)
        assert isinstance(backend, LocalBlobStore)
        assert (tmp_path / "b").is_dir()

    def test_s3_requires_bucket(self) -> None:
        with pytest.raises(ValueError):
            StorageConfig(backend_type=BackendType.S3)
