"""Tests for the metadata store."""

from __future__ import annotations

import json
import threading

import pytest

from s3zip.errors import BackendError, MetadataDecodeError
from s3zip.metadata import MetadataStore

KEY = "s3zip-metadata.json"


class TestMetadataStore:
    """In-memory behavior."""

    def test_is_current(self) -> None:
        store = MetadataStore({"a.zip": "s1:aaa"})
        assert store.is_current("a.zip", "s1:aaa")
        assert not store.is_current("a.zip", "s1:bbb")
        assert not store.is_current("b.zip", "s1:aaa")

    def test_record_and_forget(self) -> None:
        store = MetadataStore()
        store.record("a.zip", "s1:aaa")
        store.record("b.zip", "s1:bbb")
        assert len(store) == 2

        assert store.forget(["a.zip", "missing.zip"]) == 1
        assert store.snapshot() == {"b.zip": "s1:bbb"}

    def test_concurrent_records_are_not_lost(self) -> None:
        store = MetadataStore()

        def writer(offset: int) -> None:
            for i in range(500):
                store.record(f"{offset}-{i}.zip", "s1:x")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 8 * 500

    def test_encode_decode_roundtrip(self) -> None:
        entries = {"p/root/a.txt.zip": "s1:aaa", "p/root/foo.zip": "s1:bbb"}
        decoded = MetadataStore.decode(MetadataStore(entries).encode())
        assert decoded.snapshot() == entries

    def test_wire_format_is_versioned_json(self) -> None:
        doc = json.loads(MetadataStore({"k.zip": "s1:v"}).encode())
        assert doc["schema_version"] == "1"
        assert doc["entries"] == {"k.zip": "s1:v"}
        assert "updated_at" in doc


class TestMetadataPersistence:
    """Load and save against a backend."""

    def test_missing_object_is_empty_store(self, backend) -> None:
        store = MetadataStore.load(backend, KEY)
        assert len(store) == 0

    def test_save_then_load(self, backend) -> None:
        MetadataStore({"a.zip": "s1:aaa"}).save(backend, KEY)
        assert MetadataStore.load(backend, KEY).snapshot() == {"a.zip": "s1:aaa"}

    def test_corrupt_object_raises(self, backend, bucket_dir) -> None:
        """A corrupt store must not be mistaken for a cold start."""
        (bucket_dir / KEY).write_bytes(b"\x00not json")
        with pytest.raises(MetadataDecodeError):
            MetadataStore.load(backend, KEY)

    def test_unknown_schema_version_raises(self, backend, bucket_dir) -> None:
        (bucket_dir / KEY).write_text(json.dumps({"schema_version": "99", "entries": {}}))
        with pytest.raises(MetadataDecodeError, match="schema version"):
            MetadataStore.load(backend, KEY)

    def test_backend_failure_propagates(self) -> None:
        from unittest.mock import MagicMock

        broken = MagicMock()
        broken.get.side_effect = BackendError("get: connection reset")
        with pytest.raises(BackendError):
            MetadataStore.load(broken, KEY)
