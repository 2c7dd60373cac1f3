"""
Bounded worker pool with first-error cancellation.

run_bounded() fans work out to at most `concurrency` threads. The first
failure sets the shared abort event, cancels work that has not started
and waits for running workers before re-raising, so a caller never
returns while a sibling is still touching shared state.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, Optional, Sequence, TypeVar

from .errors import RunCancelled

logger = logging.getLogger("s3zip.pool")

T = TypeVar("T")
R = TypeVar("R")

_POLL_SECONDS = 0.2


def run_bounded(
    items: Sequence[T],
    fn: Callable[[T], R],
    concurrency: int,
    abort: threading.Event,
    cancel: Optional[threading.Event] = None,
    name: str = "worker",
) -> list[R]:
    """Apply fn to every item on a bounded thread pool.

    Args:
        items: Work items.
        fn: Called once per item on a worker thread.
        concurrency: Maximum number of concurrent calls.
        abort: Set when the pool gives up; workers should check it.
        cancel: External cancellation signal.
        name: Thread name prefix.

    Returns:
        Results in the same order as items.

    Raises:
        RunCancelled: If cancel was set before all work finished.
        Exception: The first error raised by fn.
    """
    if not items:
        return []
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    def _guarded(item: T) -> R:
        if abort.is_set() or (cancel is not None and cancel.is_set()):
            raise RunCancelled("aborted before start")
        return fn(item)

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix=name) as executor:
        futures: list[Future] = [executor.submit(_guarded, item) for item in items]
        pending = set(futures)
        error: Optional[BaseException] = None

        while pending:
            done, pending = wait(pending, timeout=_POLL_SECONDS, return_when=FIRST_EXCEPTION)
            failed = [f for f in done if not f.cancelled() and f.exception() is not None]
            if failed:
                error = _first_real_error(f.exception() for f in failed)
                break
            if cancel is not None and cancel.is_set():
                error = RunCancelled("run cancelled")
                break

        if error is not None:
            abort.set()
            for f in pending:
                f.cancel()
            wait(pending)
            raise error

    return [f.result() for f in futures]


def _first_real_error(errors) -> BaseException:
    errors = list(errors)
    for exc in errors:
        if not isinstance(exc, RunCancelled):
            return exc
    return errors[0]
