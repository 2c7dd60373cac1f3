"""Remote key naming for sync unit archives."""

from __future__ import annotations

import posixpath
from pathlib import Path

from .archive import EXTENSION


def make_remote_key(root: Path, out_prefix: str, unit: str) -> str:
    """Build the object key of a unit's archive.

    The key is stable across runs as long as the prefix and the root's
    base name do not change, which is what lets the metadata store be
    keyed by it.

        make_remote_key(Path("/data/photos"), "backups", "2024/jan")
        -> "backups/photos/2024/jan.zip"
        make_remote_key(Path("/data/photos"), "backups", ".")
        -> "backups/photos.zip"
    """
    parts = [p for p in (out_prefix.replace("\\", "/"), Path(root).name, unit.replace("\\", "/")) if p]
    return posixpath.normpath(posixpath.join(*parts)).lstrip("/") + EXTENSION


def listing_prefix(out_prefix: str) -> str:
    """Key prefix under which a target's archives live."""
    prefix = out_prefix.replace("\\", "/").strip("/")
    return prefix + "/" if prefix else ""


def key_namespace(root: Path, out_prefix: str) -> str:
    """Common stem of every key a target writes, e.g. "backups/photos"."""
    return make_remote_key(root, out_prefix, ".")[: -len(EXTENSION)]
