"""
Error taxonomy for a reconciliation run.

Every failure the core raises derives from S3ZipError. Errors scoped
to one sync unit carry the unit name so the caller can tell which part
of the tree broke the run.
"""

from __future__ import annotations

from typing import Optional


class S3ZipError(Exception):
    """Base class for all s3zip failures."""

    def __init__(self, message: str, unit: Optional[str] = None):
        super().__init__(message)
        self.unit = unit


class ConfigError(S3ZipError):
    """Raised when the configuration file cannot be read or validated."""


class TraversalError(S3ZipError):
    """Raised when the local tree cannot be walked."""


class HashError(S3ZipError):
    """Raised when a unit changes or becomes unreadable while fingerprinting."""


class ArchiveError(S3ZipError):
    """Raised when a unit cannot be archived."""


class BackendError(S3ZipError):
    """Raised on a blob storage failure (get, put, list, delete)."""


class MetadataDecodeError(S3ZipError):
    """Raised when the persisted metadata store is corrupt."""


class RunCancelled(S3ZipError):
    """Raised when a run is aborted by a cancellation signal."""
