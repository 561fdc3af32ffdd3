import os
import sys
import threading
from unittest.mock import Mock

import pytest

# Ensure the project root is on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingest.concurrency import Deadline, chunked, retry_call, run_bounded


def test_run_bounded_keeps_input_order_and_skips_failures():
    def work(n):
        if n == 3:
            raise ValueError("boom")
        return n * 10

    assert run_bounded(work, [1, 2, 3, 4], max_workers=2) == [10, 20, 40]


def test_run_bounded_respects_worker_limit():
    active = []
    peak = []
    lock = threading.Lock()
    release = threading.Event()

    def work(n):
        with lock:
            active.append(n)
            peak.append(len(active))
        release.wait(0.05)
        with lock:
            active.remove(n)
        return n

    assert run_bounded(work, range(8), max_workers=3) == list(range(8))
    assert max(peak) <= 3


def test_run_bounded_returns_nothing_once_deadline_passed():
    clock = Mock(side_effect=[0.0, 100.0, 100.0])
    deadline = Deadline(10, clock=clock)
    fn = Mock()
    assert run_bounded(fn, [1, 2], max_workers=2, deadline=deadline) == []
    fn.assert_not_called()


def test_run_bounded_abandons_slow_calls_at_deadline():
    gate = threading.Event()

    def work(n):
        if n == 1:
            gate.wait(2)
        return n

    try:
        results = run_bounded(work, [0, 1], max_workers=2, deadline=Deadline(0.3))
    finally:
        gate.set()
    assert results == [0]


def test_retry_call_retries_then_succeeds_with_backoff():
    fn = Mock(side_effect=[RuntimeError("first"), "ok"])
    sleep = Mock()
    assert retry_call(fn, attempts=2, backoff=1.5, sleep=sleep) == "ok"
    assert fn.call_count == 2
    sleep.assert_called_once_with(1.5)


def test_retry_call_reraises_last_error():
    fn = Mock(side_effect=[RuntimeError("one"), RuntimeError("two"), RuntimeError("three")])
    sleep = Mock()
    with pytest.raises(RuntimeError, match="three"):
        retry_call(fn, attempts=3, backoff=1.0, sleep=sleep)
    assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]


def test_retry_call_does_not_catch_other_exceptions():
    fn = Mock(side_effect=KeyError("x"))
    with pytest.raises(KeyError):
        retry_call(fn, attempts=3, exceptions=(ValueError,))
    assert fn.call_count == 1


def test_retry_call_requires_an_attempt():
    with pytest.raises(ValueError):
        retry_call(lambda: 1, attempts=0)


def test_chunked():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []
