"""
Tree partitioning -- split a root directory into sync units.

A sync unit is either a file or a whole subtree. Directories sitting
exactly at the configured depth are bundled into one unit; files above
that depth are units of their own.

    root/                 max_depth=1 -> a.txt, baz, foo
    ├── a.txt             max_depth=2 -> a.txt, baz/d.txt, foo/b.txt, foo/bar
    ├── baz/d.txt
    └── foo/
        ├── b.txt
        └── bar/c.txt
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .errors import TraversalError

logger = logging.getLogger("s3zip.partition")

SELF = "."


def local_objects(root: Path, max_depth: int) -> list[str]:
    """List the sync units under root.

    Args:
        root: Directory to partition.
        max_depth: Depth at which directories become single units.
            0 means the whole root is one unit.

    Returns:
        Relative unit paths with forward slashes, in walk order.

    Raises:
        TraversalError: If any path along the walk cannot be read.
        ValueError: If max_depth is negative.
    """
    if max_depth < 0:
        raise ValueError(f"max_depth must be >= 0, got {max_depth}")

    root = Path(root)
    try:
        is_dir = root.is_dir()
        if not is_dir:
            os.stat(root)
    except OSError as exc:
        raise TraversalError(f"stat {root}: {exc}") from exc

    if max_depth == 0 or not is_dir:
        return [SELF]

    units: list[str] = []
    _walk(root, (), max_depth, units)
    logger.debug("Partitioned %s at depth %d into %d unit(s)", root, max_depth, len(units))
    return units


def _walk(directory: Path, parts: tuple[str, ...], max_depth: int, out: list[str]) -> None:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        raise TraversalError(f"list {directory}: {exc}") from exc

    for entry in entries:
        rel = parts + (entry.name,)
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError as exc:
            raise TraversalError(f"stat {entry.path}: {exc}") from exc

        if is_dir and len(rel) < max_depth:
            _walk(Path(entry.path), rel, max_depth, out)
        else:
            out.append("/".join(rel))
