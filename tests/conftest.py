"""Shared test fixtures for s3zip."""

from __future__ import annotations

from pathlib import Path

import pytest


def write(path: Path, content: str = "x") -> Path:
    """Create a file and its parents."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """Provide a small tree: a.txt, foo/b.txt, foo/bar/c.txt, baz/d.txt."""
    root = tmp_path / "photos"
    write(root / "a.txt", "alpha")
    write(root / "foo" / "b.txt", "bravo")
    write(root / "foo" / "bar" / "c.txt", "charlie")
    write(root / "baz" / "d.txt", "delta")
    return root


@pytest.fixture
def bucket_dir(tmp_path: Path) -> Path:
    """Directory backing a LocalBlobStore."""
    path = tmp_path / "bucket"
    path.mkdir()
    return path


@pytest.fixture
def backend(bucket_dir: Path):
    """A LocalBlobStore rooted in a temporary directory."""
    from s3zip.backends import LocalBlobStore
    from s3zip.models import BackendType, StorageConfig

    return LocalBlobStore(
        StorageConfig(backend_type=BackendType.LOCAL, local_path=bucket_dir)
    )
