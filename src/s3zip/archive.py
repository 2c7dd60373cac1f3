"""
Streaming zip archives of sync units.

The archive is never materialized on disk. A producer thread writes the
zip into a bounded in-memory pipe and the uploader reads from the other
end, so an upload can start before the unit has been fully compressed:

    producer thread                       consumer (uploader)
    zipfile.ZipFile(_PipeWriter) --queue--> ArchiveStream.read()

Closing the stream early stops the producer. A walk or read failure in
the producer poisons the stream: the next read raises ArchiveError, so
the caller never uploads a truncated archive as if it were complete.
"""

from __future__ import annotations

import io
import logging
import os
import queue
import shutil
import threading
import zipfile
from pathlib import Path
from typing import Optional

from .errors import ArchiveError, RunCancelled

logger = logging.getLogger("s3zip.archive")

CONTENT_TYPE = "application/zip"
EXTENSION = ".zip"

PIPE_DEPTH = 16
_POLL_SECONDS = 0.1
_EOF = object()


class _StreamAborted(Exception):
    """Raised inside the producer when the reader went away."""


class _PipeWriter:
    """Write end of the pipe, handed to zipfile as its output file.

    zipfile probes tell() and falls back to streaming mode with data
    descriptors when the output is not seekable, which is what we want.
    """

    def __init__(self, chunks: queue.Queue, closed: threading.Event):
        self._chunks = chunks
        self._closed = closed

    def write(self, data: bytes) -> int:
        if data:
            _put(self._chunks, bytes(data), self._closed)
        return len(data)

    def flush(self) -> None:
        pass


def _put(chunks: queue.Queue, item: object, closed: threading.Event) -> None:
    while True:
        if closed.is_set():
            raise _StreamAborted()
        try:
            chunks.put(item, timeout=_POLL_SECONDS)
            return
        except queue.Full:
            continue


def _iter_entries(path: Path):
    """Yield (absolute file path, entry name) for every file in a unit."""
    if not path.is_dir():
        if not path.exists():
            raise FileNotFoundError(f"no such file or directory: {path}")
        yield path, path.name
        return

    def _raise(exc: OSError) -> None:
        raise exc

    for dirpath, dirnames, filenames in os.walk(path, onerror=_raise):
        dirnames.sort()
        for name in sorted(filenames):
            full = Path(dirpath) / name
            yield full, full.relative_to(path).as_posix()


class ArchiveStream(io.RawIOBase):
    """Readable byte stream of a zip archive produced on a background thread."""

    def __init__(self, path: Path, abort: Optional[threading.Event] = None):
        super().__init__()
        self.path = Path(path)
        self._abort = abort
        self._chunks: queue.Queue = queue.Queue(maxsize=PIPE_DEPTH)
        self._reader_closed = threading.Event()
        self._buffer = b""
        self._error: Optional[BaseException] = None
        self._eof = False
        self._producer = threading.Thread(
            target=self._produce,
            name=f"archive-{self.path.name}",
            daemon=True,
        )
        self._producer.start()

    def _produce(self) -> None:
        try:
            with zipfile.ZipFile(
                _PipeWriter(self._chunks, self._reader_closed),
                mode="w",
                compression=zipfile.ZIP_DEFLATED,
            ) as zf:
                for full, arcname in _iter_entries(self.path):
                    info = zipfile.ZipInfo.from_file(full, arcname)
                    info.compress_type = zipfile.ZIP_DEFLATED
                    with open(full, "rb") as src, zf.open(info, mode="w") as dst:
                        shutil.copyfileobj(src, dst, 1024 * 1024)
            item: object = _EOF
        except _StreamAborted:
            logger.debug("Archive of %s aborted by reader", self.path)
            return
        except Exception as exc:
            item = exc

        try:
            _put(self._chunks, item, self._reader_closed)
        except _StreamAborted:
            pass

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self.closed:
            raise ValueError("read from closed archive stream")

        while not self._buffer and not self._eof:
            if self._abort is not None and self._abort.is_set():
                raise RunCancelled(f"archive of {self.path} cancelled")
            if self._error is not None:
                break
            try:
                item = self._chunks.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue
            if item is _EOF:
                self._eof = True
            elif isinstance(item, BaseException):
                self._error = item
            else:
                self._buffer = item

        if self._error is not None and not self._buffer:
            raise ArchiveError(f"archive {self.path}: {self._error}") from self._error

        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return n

    def close(self) -> None:
        if not self.closed:
            self._reader_closed.set()
            self._producer.join(timeout=5)
            if self._producer.is_alive():
                logger.warning("Archive producer for %s did not stop", self.path)
        super().close()


def open_archive_stream(path: Path, abort: Optional[threading.Event] = None) -> ArchiveStream:
    """Start archiving a sync unit and return the readable stream.

    Args:
        path: Absolute path of the unit (file or directory).
        abort: Optional event; once set, reads raise RunCancelled.

    Returns:
        ArchiveStream yielding the zip bytes. Close it when done.
    """
    return ArchiveStream(path, abort=abort)
