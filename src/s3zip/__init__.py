"""
s3zip -- incremental zip archives of a directory tree in object storage.

Partitions a local tree into sync units, fingerprints them cheaply,
uploads only what changed, and reclaims archives whose local source
is gone.
"""

import os

__version__ = "0.1.0"

DEFAULT_CONFIG = os.environ.get("S3ZIP_CONFIG", "~/.config/s3zip/config.yaml")
DEFAULT_METADATA_KEY = "s3zip-metadata.json"
DEFAULT_CONCURRENCY = 10
