import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Deque, Optional, Tuple

from ..logger import category_logger

log = category_logger("error")


class TaskQueue:
    """FIFO of callables run on a thread pool, at most ``concurrency`` at a time.

    ``concurrency`` may be changed while running, up to ``max_concurrency``.
    The queue starts paused.
    """

    def __init__(self, concurrency: int, max_concurrency: int = 64, thread_name_prefix: str = "site-mirror"):
        self._max_concurrency = max(1, max_concurrency, concurrency)
        self._concurrency = self._clamp(concurrency)
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_concurrency, thread_name_prefix=thread_name_prefix
        )
        self._pending: Deque[Tuple[Callable[..., Any], tuple]] = deque()
        self._running = 0
        self._paused = True
        self._closed = False
        self._cond = threading.Condition()

    def _clamp(self, n: int) -> int:
        return max(1, min(int(n), self._max_concurrency))

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @concurrency.setter
    def concurrency(self, n: int) -> None:
        with self._cond:
            self._concurrency = self._clamp(n)
            self._drain()

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @property
    def size(self) -> int:
        """Tasks waiting to start."""
        return len(self._pending)

    @property
    def pending(self) -> int:
        """Tasks running."""
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    def add(self, fn: Callable[..., Any], *args: Any) -> None:
        with self._cond:
            if self._closed:
                raise RuntimeError("TaskQueue: closed")
            self._pending.append((fn, args))
            self._drain()

    def _drain(self) -> None:
        while (
            not self._paused
            and not self._closed
            and self._pending
            and self._running < self._concurrency
        ):
            fn, args = self._pending.popleft()
            self._running += 1
            self._executor.submit(self._run, fn, args)

    def _run(self, fn: Callable[..., Any], args: tuple) -> None:
        try:
            fn(*args)
        except Exception:
            log.exception("task %s failed", getattr(fn, "__qualname__", fn))
        finally:
            with self._cond:
                self._running -= 1
                self._drain()
                self._cond.notify_all()

    def start(self) -> None:
        with self._cond:
            self._paused = False
            self._drain()

    def pause(self) -> None:
        with self._cond:
            self._paused = True

    def clear(self) -> None:
        with self._cond:
            self._pending.clear()
            self._cond.notify_all()

    def _idle(self) -> bool:
        return self._running == 0 and (not self._pending or self._closed)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until nothing is waiting or running. False on timeout."""
        with self._cond:
            return self._cond.wait_for(self._idle, timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._cond:
            self._closed = True
            self._pending.clear()
            self._cond.notify_all()
        self._executor.shutdown(wait=wait)
