"""
Structural fingerprints of sync units.

A fingerprint is a SHA-256 over the sorted (size, relative path) pairs
of every file in a unit. File contents are never read: rewriting a file
with different bytes of the same length does not change the fingerprint.
That is the price of being able to fingerprint a large tree in the time
it takes to stat it.
"""

from __future__ import annotations

import base64
import hashlib
import os
from pathlib import Path

from .errors import HashError

SCHEME = "s1"


def unit_files(path: Path) -> list[tuple[str, int]]:
    """List (relative path, size) for every file in a unit, sorted by path.

    A single-file unit yields one pair keyed by the file's base name.

    Raises:
        HashError: If the unit or any file inside it disappears or
            cannot be read.
    """
    path = Path(path)
    try:
        st = os.stat(path)
    except OSError as exc:
        raise HashError(f"stat {path}: {exc}") from exc

    if not path.is_dir():
        return [(path.name, st.st_size)]

    def _raise(exc: OSError) -> None:
        raise HashError(f"list {exc.filename}: {exc}") from exc

    files: list[tuple[str, int]] = []
    for dirpath, dirnames, filenames in os.walk(path, onerror=_raise):
        dirnames.sort()
        for name in filenames:
            full = os.path.join(dirpath, name)
            rel = Path(os.path.relpath(full, path)).as_posix()
            try:
                size = os.stat(full).st_size
            except OSError as exc:
                raise HashError(f"stat {full}: {exc}") from exc
            files.append((rel, size))

    files.sort()
    return files


def fingerprint(path: Path) -> str:
    """Compute the fingerprint of a sync unit.

    Args:
        path: Absolute path of the unit (file or directory).

    Returns:
        Opaque fingerprint string, stable across traversal order.

    Raises:
        HashError: If the unit cannot be listed or stat'ed.
    """
    summary = hashlib.sha256()
    for rel, size in unit_files(path):
        if "\n" in rel:
            raise HashError(f"unsupported file name with newline: {rel!r}")
        summary.update(f"{size}  {rel}\n".encode("utf-8", "surrogateescape"))
    return f"{SCHEME}:" + base64.b64encode(summary.digest()).decode("ascii")


def unit_size(path: Path) -> int:
    """Total size in bytes of all files in a unit."""
    return sum(size for _, size in unit_files(path))
