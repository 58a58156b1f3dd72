import math
import operator
import os
import threading
import time

import pytest

from site_mirror.downloader.worker_pool import WorkerPool
from site_mirror.errors import (
    PoolDisposedError,
    RemoteTaskError,
    TransferError,
    WorkerCrashedError,
    WorkerInitError,
)

TIMEOUT = 60


def test_results_in_submission_order():
    seen = []

    def handler(x):
        seen.append(x)
        return x * 2

    with WorkerPool(1, handler, context="thread") as pool:
        futures = [pool.submit_task(i) for i in range(10)]
        assert [f.result(TIMEOUT) for f in futures] == [i * 2 for i in range(10)]
    assert seen == list(range(10))


def test_handler_error_fails_only_its_task():
    with WorkerPool(2, math.sqrt, context="thread") as pool:
        bad = pool.submit_task(-1)
        good = pool.submit_task(16)
        with pytest.raises(RemoteTaskError) as info:
            bad.result(TIMEOUT)
        assert info.value.type_name == "ValueError"
        assert "math domain error" in str(info.value)
        assert good.result(TIMEOUT) == 4.0


def test_initializer_returns_handler():
    def init(factor):
        return lambda x: x * factor

    with WorkerPool(2, initializer=init, initargs=(3,), context="thread") as pool:
        assert pool.submit_task(5).result(TIMEOUT) == 15


def test_transfer():
    with WorkerPool(1, lambda payload, data: (payload, data), context="thread") as pool:
        assert pool.submit_task("a", b"xyz").result(TIMEOUT) == ("a", b"xyz")
        assert pool.submit_task("b", bytearray(b"1")).result(TIMEOUT) == ("b", b"1")
        with pytest.raises(TransferError):
            pool.submit_task("c", "not bytes").result(TIMEOUT)


def test_busy_pending_and_dispose():
    release = threading.Event()

    def handler(x):
        release.wait(TIMEOUT)
        return x

    pool = WorkerPool(1, handler, context="thread")
    try:
        running = pool.submit_task(1)
        waiting = [pool.submit_task(2), pool.submit_task(3)]
        assert pool.busy_count == 1
        assert pool.pending_count == 2
        assert not pool.wait_below(0, timeout=0.1)
        pool.dispose()
        for f in [running] + waiting:
            with pytest.raises(PoolDisposedError):
                f.result(TIMEOUT)
        with pytest.raises(PoolDisposedError):
            pool.submit_task(4).result(TIMEOUT)
        assert pool.disposed
    finally:
        release.set()
        pool.dispose()


def test_wait_below():
    release = threading.Event()

    def handler(x):
        release.wait(TIMEOUT)
        return x

    with WorkerPool(1, handler, context="thread") as pool:
        futures = [pool.submit_task(i) for i in range(3)]
        assert not pool.wait_below(1, timeout=0.1)
        release.set()
        assert pool.wait_below(0, timeout=TIMEOUT)
        assert [f.result(TIMEOUT) for f in futures] == [0, 1, 2]


def test_invalid_arguments():
    with pytest.raises(ValueError):
        WorkerPool(0, math.sqrt, context="thread")
    with pytest.raises(ValueError):
        WorkerPool(1, math.sqrt, context="fiber")
    with pytest.raises(ValueError):
        WorkerPool(1, context="thread")


def test_process_context():
    with WorkerPool(2, math.sqrt, context="process") as pool:
        futures = [pool.submit_task(x) for x in (4, -1, 9)]
        assert futures[0].result(TIMEOUT) == 2.0
        with pytest.raises(RemoteTaskError):
            futures[1].result(TIMEOUT)
        assert futures[2].result(TIMEOUT) == 3.0


def test_crashed_process_is_replaced():
    exited = []
    exit_seen = threading.Event()

    def on_exit(worker_id, code):
        exited.append((worker_id, code))
        exit_seen.set()

    with WorkerPool(1, os._exit, context="process", on_worker_exit=on_exit) as pool:
        with pytest.raises(WorkerCrashedError) as info:
            pool.submit_task(7).result(TIMEOUT)
        assert info.value.exit_code == 7
        assert exit_seen.wait(TIMEOUT)
        assert exited == [(0, 7)]
        assert pool.size == 1


def _wait_until(predicate, timeout=TIMEOUT):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.01)
    return True


def test_fifo_with_every_context_busy():
    started = []
    gate = threading.Semaphore(0)

    def handler(x):
        started.append(x)
        gate.acquire(timeout=TIMEOUT)
        return x

    pool = WorkerPool(3, handler, context="thread")
    try:
        futures = [pool.submit_task(i) for i in range(8)]
        assert _wait_until(lambda: len(started) == 3)
        assert sorted(started) == [0, 1, 2]
        assert pool.busy_count == 3
        assert pool.pending_count == 5
        # freeing one context at a time starts exactly the oldest waiting task
        for i in range(3, 8):
            gate.release()
            assert _wait_until(lambda: len(started) == i + 1)
            assert started[i] == i
        for _ in range(3):
            gate.release()
        assert [f.result(TIMEOUT) for f in futures] == list(range(8))
        assert pool.pending_count == 0
    finally:
        for _ in range(8):
            gate.release()
        pool.dispose()


@pytest.mark.parametrize("context", ["thread", "process"])
def test_failing_initializer_fails_the_pool(context):
    exited = []
    pool = WorkerPool(
        2,
        initializer=operator.truediv,
        initargs=(1, 0),
        context=context,
        on_worker_exit=lambda worker_id, code: exited.append(worker_id),
    )
    try:
        first = pool.submit_task(1)
        with pytest.raises(WorkerInitError) as info:
            first.result(TIMEOUT)
        assert "ZeroDivisionError" in str(info.value)
        assert pool.failed
        assert pool.error is info.value
        with pytest.raises(WorkerInitError):
            pool.submit_task(2).result(TIMEOUT)
        assert pool.wait_below(0, timeout=TIMEOUT)
        # both contexts report, neither is replaced
        assert _wait_until(lambda: all(c.conn.closed for c in pool._contexts))
        time.sleep(0.2)
        assert pool.size == 2
        assert [c.id for c in pool._contexts] == [0, 1]
        assert exited == []
    finally:
        pool.dispose()


def test_dispose_closes_thread_pipes():
    with WorkerPool(2, math.sqrt, context="thread") as pool:
        assert pool.submit_task(9).result(TIMEOUT) == 3.0
        contexts = list(pool._contexts)
    for ctx in contexts:
        assert not ctx.alive
        assert ctx.conn.closed
