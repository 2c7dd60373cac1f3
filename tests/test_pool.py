"""Tests for the bounded worker pool."""

from __future__ import annotations

import threading
import time

import pytest

from s3zip.errors import RunCancelled
from s3zip.pool import run_bounded


class TestRunBounded:
    """Tests for run_bounded()."""

    def test_results_keep_input_order(self) -> None:
        def slow_square(n: int) -> int:
            time.sleep(0.01 * (5 - n))
            return n * n

        assert run_bounded([1, 2, 3, 4], slow_square, 4, threading.Event()) == [1, 4, 9, 16]

    def test_empty_input(self) -> None:
        assert run_bounded([], lambda x: x, 3, threading.Event()) == []

    def test_concurrency_is_bounded(self) -> None:
        lock = threading.Lock()
        active = 0
        peak = 0

        def work(_):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.02)
            with lock:
                active -= 1

        run_bounded(list(range(20)), work, 3, threading.Event())
        assert peak <= 3

    def test_first_error_aborts_siblings(self) -> None:
        abort = threading.Event()
        started = []

        def work(n: int) -> int:
            started.append(n)
            if n == 0:
                raise ValueError("boom")
            time.sleep(0.05)
            return n

        with pytest.raises(ValueError, match="boom"):
            run_bounded(list(range(50)), work, 2, abort)

        assert abort.is_set()
        assert len(started) < 50

    def test_real_error_wins_over_cancellation(self) -> None:
        abort = threading.Event()

        def work(n: int) -> None:
            if n == 1:
                raise KeyError("real")
            abort.wait(1)
            if abort.is_set():
                raise RunCancelled("sibling gave up")

        with pytest.raises(KeyError):
            run_bounded([0, 1], work, 2, abort)

    def test_external_cancel(self) -> None:
        cancel = threading.Event()
        abort = threading.Event()

        def work(n: int) -> None:
            if n == 2:
                cancel.set()
            time.sleep(0.01)

        with pytest.raises(RunCancelled):
            run_bounded(list(range(30)), work, 1, abort, cancel)

        assert abort.is_set()

    def test_invalid_concurrency(self) -> None:
        with pytest.raises(ValueError):
            run_bounded([1], lambda x: x, 0, threading.Event())
