"""
Data models -- configuration, run results, and the metadata document.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from . import DEFAULT_CONCURRENCY, DEFAULT_METADATA_KEY
from .keys import key_namespace, listing_prefix

METADATA_SCHEMA_VERSION = "1"


class BackendType(str, Enum):
    """Supported blob storage backends."""

    S3 = "s3"
    LOCAL = "local"


class StorageConfig(BaseModel):
    """Where the archives are stored."""

    backend_type: BackendType = BackendType.S3

    # S3
    bucket: Optional[str] = None
    region: Optional[str] = None
    storage_class: str = "STANDARD"
    endpoint_url: Optional[str] = None
    profile: Optional[str] = None

    # Local filesystem
    local_path: Optional[Path] = None

    @model_validator(mode="after")
    def _check_backend_fields(self) -> "StorageConfig":
        if self.backend_type == BackendType.S3 and not self.bucket:
            raise ValueError("storage.bucket is required for the s3 backend")
        if self.backend_type == BackendType.LOCAL and self.local_path is None:
            raise ValueError("storage.local_path is required for the local backend")
        return self


class TargetConfig(BaseModel):
    """A local tree to mirror and where its archives go."""

    path: Path
    zip_depth: int = Field(default=0, ge=0)
    out_prefix: str = ""

    @field_validator("path")
    @classmethod
    def _expand_path(cls, value: Path) -> Path:
        return value.expanduser()


class S3ZipConfig(BaseModel):
    """Complete configuration for a run over all targets."""

    dry_run: bool = False
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    metadata_key: str = DEFAULT_METADATA_KEY
    save_timeout: float = Field(default=30.0, gt=0)
    storage: StorageConfig
    targets: list[TargetConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_target_prefixes(self) -> "S3ZipConfig":
        seen: dict[str, Path] = {}
        for target in self.targets:
            prefix = listing_prefix(target.out_prefix)
            if prefix in seen:
                raise ValueError(
                    f"targets {seen[prefix]} and {target.path} share out_prefix {target.out_prefix!r}"
                )
            seen[prefix] = target.path

        # a target reclaims everything under its prefix, so no other
        # target may write below it
        for target in self.targets:
            stem = key_namespace(target.path.resolve(), target.out_prefix) + "/"
            for other in self.targets:
                prefix = listing_prefix(other.out_prefix)
                if other is not target and prefix and stem.startswith(prefix):
                    raise ValueError(
                        f"archives of {target.path} would be reclaimed by {other.path} "
                        f"(out_prefix {other.out_prefix!r})"
                    )
        return self


class ObjectToUpload(BaseModel):
    """A sync unit whose fingerprint differs from the metadata store."""

    name: str
    fingerprint: str
    size: int = 0


class RunResult(BaseModel):
    """Outcome of reconciling one target."""

    target: str
    uploaded: int = 0
    deleted: int = 0
    unchanged: int = 0
    uploaded_bytes: int = 0
    dry_run: bool = False


class MetadataDocument(BaseModel):
    """Wire form of the metadata store: remote key -> last fingerprint."""

    schema_version: str = METADATA_SCHEMA_VERSION
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    entries: dict[str, str] = Field(default_factory=dict)
