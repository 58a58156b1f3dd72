"""A fixed set of worker contexts fed from one FIFO of tasks.

A context is a child process (``ProcessContext``) or a thread of the
current process (``ThreadContext``). Both talk to the pool over a
``multiprocessing.Pipe``: a task is one pickled ``(task_id, payload,
has_transfer)`` message, optionally followed by a raw byte frame; the
reply is ``(task_id, ok, value)``. A context first reports whether it
started with a ``task_id`` of ``None``.
"""
import itertools
import logging
import multiprocessing
import threading
import traceback
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, List, Optional, Sequence, Tuple

from ..errors import (
    PoolDisposedError,
    RemoteTaskError,
    TransferError,
    WorkerCrashedError,
    WorkerInitError,
)
from ..logger import ROOT_LOGGER_NAME, Loggers, install_queue_handler, start_log_listener

TRANSFERABLE = (bytes, bytearray, memoryview)

# seconds a closing process gets before it is terminated
CLOSE_TIMEOUT = 1.0


def worker_main(
    conn,
    handler: Optional[Callable[..., Any]],
    initializer: Optional[Callable[..., Any]] = None,
    initargs: Sequence[Any] = (),
    log_queue=None,
    log_level: int = logging.INFO,
) -> None:
    """Task loop of one context. A ``None`` message ends it.

    If ``initializer`` returns a callable, it handles the tasks instead of
    ``handler``. Before the first task the context reports ``(None, True,
    None)`` once it is ready, or ``(None, False, error)`` and exits.
    """
    if log_queue is not None:
        install_queue_handler(log_queue, log_level)
    try:
        try:
            if initializer is not None:
                handler = initializer(*initargs) or handler
            if handler is None:
                raise TypeError("worker_main: no task handler")
        except Exception as e:
            try:
                conn.send((None, False, RemoteTaskError.from_exception(e, traceback.format_exc())))
            except (EOFError, OSError):
                pass
            return
        try:
            conn.send((None, True, None))
        except (EOFError, OSError):
            return
        _serve(conn, handler)
    finally:
        conn.close()


def _serve(conn, handler: Callable[..., Any]) -> None:
    while True:
        try:
            msg = conn.recv()
        except (EOFError, OSError):
            break
        if msg is None:
            break
        task_id, payload, has_transfer = msg
        try:
            if has_transfer:
                reply = (task_id, True, handler(payload, conn.recv_bytes()))
            else:
                reply = (task_id, True, handler(payload))
        except Exception as e:
            reply = (task_id, False, RemoteTaskError.from_exception(e, traceback.format_exc()))
        try:
            conn.send(reply)
        except (EOFError, OSError):
            break
        except Exception as e:
            # result could not be pickled
            conn.send((task_id, False, RemoteTaskError.from_exception(e, traceback.format_exc())))


@dataclass
class _Task:
    id: int
    payload: Any
    transfer: Optional[bytes]
    future: Future = field(default_factory=Future)


class WorkerContext:
    """Pool side of one worker: the pipe end, the task in flight and a reader thread."""

    def __init__(self, pool: "WorkerPool", id: int):
        self.pool = pool
        self.id = id
        self.task: Optional[_Task] = None
        self.closing = False
        self.ready = False
        self.conn, self._child_conn = multiprocessing.Pipe()
        self._reader: Optional[threading.Thread] = None

    @property
    def alive(self) -> bool:
        raise NotImplementedError

    @property
    def exit_code(self) -> Optional[int]:
        return None

    def start(self) -> "WorkerContext":
        self._start_worker()
        self._reader = threading.Thread(
            target=self._read, name=f"site-mirror-pool-reader-{self.id}", daemon=True
        )
        self._reader.start()
        return self

    def _start_worker(self) -> None:
        raise NotImplementedError

    def _read(self) -> None:
        while True:
            try:
                msg = self.conn.recv()
            except (EOFError, OSError):
                break
            self.pool._on_message(self, msg)
        self.conn.close()
        self.pool._on_context_exit(self)

    def send(self, task: _Task) -> None:
        self.conn.send((task.id, task.payload, task.transfer is not None))
        if task.transfer is not None:
            self.conn.send_bytes(task.transfer)

    def close(self) -> None:
        self.closing = True
        try:
            self.conn.send(None)
        except (EOFError, OSError):
            pass


class ProcessContext(WorkerContext):
    def __init__(self, pool: "WorkerPool", id: int, mp_context):
        super().__init__(pool, id)
        self._mp_context = mp_context
        self.process = None

    @property
    def alive(self) -> bool:
        return self.process is not None and self.process.is_alive()

    @property
    def exit_code(self) -> Optional[int]:
        if self.process is None:
            return None
        self.process.join(timeout=CLOSE_TIMEOUT)
        return self.process.exitcode

    def _start_worker(self) -> None:
        p = self.pool
        self.process = self._mp_context.Process(
            target=worker_main,
            args=(
                self._child_conn,
                p.handler,
                p.initializer,
                p.initargs,
                p.log_queue,
                logging.getLogger(ROOT_LOGGER_NAME).getEffectiveLevel(),
            ),
            name=f"site-mirror-worker-{self.id}",
            daemon=True,
        )
        self.process.start()
        # the child owns its end now
        self._child_conn.close()

    def close(self) -> None:
        busy = self.task is not None
        super().close()
        if self.process is None:
            return
        if busy:
            self.process.terminate()
        self.process.join(timeout=CLOSE_TIMEOUT)
        if self.process.is_alive():
            self.process.terminate()
            self.process.join(timeout=CLOSE_TIMEOUT)
        self.conn.close()


class ThreadContext(WorkerContext):
    def __init__(self, pool: "WorkerPool", id: int):
        super().__init__(pool, id)
        self.thread: Optional[threading.Thread] = None

    @property
    def alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def _start_worker(self) -> None:
        p = self.pool
        self.thread = threading.Thread(
            target=worker_main,
            args=(self._child_conn, p.handler, p.initializer, p.initargs),
            name=f"site-mirror-worker-{self.id}",
            daemon=True,
        )
        self.thread.start()

    def close(self) -> None:
        busy = self.task is not None
        super().close()
        # a busy thread can not be stopped; its reader closes the pipe when it returns
        if self.thread is None or busy:
            return
        self.thread.join(timeout=CLOSE_TIMEOUT)
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=CLOSE_TIMEOUT)
        self.conn.close()


class WorkerPool:
    """Run ``handler(payload[, data])`` on ``size`` worker contexts.

    Tasks are dispatched in submission order to the first idle context.
    A context which dies is replaced and its task fails with
    ``WorkerCrashedError``; a handler exception fails only its own task.
    A context which fails to start is not replaced: the pool fails, and
    every queued, running and later task fails with ``WorkerInitError``.
    """

    def __init__(
        self,
        size: int,
        handler: Optional[Callable[..., Any]] = None,
        initializer: Optional[Callable[..., Any]] = None,
        initargs: Sequence[Any] = (),
        context: str = "process",
        start_method: Optional[str] = "spawn",
        loggers: Optional[Loggers] = None,
        on_worker_exit: Optional[Callable[[int, Optional[int]], None]] = None,
    ):
        if size < 1:
            raise ValueError(f"WorkerPool: size must be >= 1, got {size}")
        if context not in ("process", "thread"):
            raise ValueError(f"WorkerPool: unknown context {context!r}")
        if handler is None and initializer is None:
            raise ValueError("WorkerPool: handler or initializer is required")
        self.handler = handler
        self.initializer = initializer
        self.initargs = tuple(initargs)
        self.context = context
        self.loggers = loggers or Loggers()
        self.on_worker_exit = on_worker_exit
        self.log_queue = None
        self._listener = None
        self._mp_context = None
        if context == "process":
            self._mp_context = multiprocessing.get_context(start_method)
            self.log_queue = self._mp_context.Queue()
            self._listener = start_log_listener(self.log_queue)
        self._cond = threading.Condition()
        self._pending: Deque[_Task] = deque()
        self._ids = itertools.count(1)
        self._context_ids = itertools.count(0)
        self._disposed = False
        self._error: Optional[WorkerInitError] = None
        self._contexts: List[WorkerContext] = [self._create_context() for _ in range(size)]

    def _create_context(self) -> WorkerContext:
        id = next(self._context_ids)
        if self.context == "process":
            ctx: WorkerContext = ProcessContext(self, id, self._mp_context)
        else:
            ctx = ThreadContext(self, id)
        return ctx.start()

    # -------------------- state --------------------

    @property
    def size(self) -> int:
        return len(self._contexts)

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def error(self) -> Optional[WorkerInitError]:
        """Why the pool stopped taking tasks, if a worker failed to start."""
        return self._error

    @property
    def failed(self) -> bool:
        return self._error is not None

    @property
    def busy_count(self) -> int:
        with self._cond:
            return sum(1 for c in self._contexts if c.task is not None)

    @property
    def pending_count(self) -> int:
        with self._cond:
            return len(self._pending)

    def wait_below(self, limit: int, timeout: Optional[float] = None) -> bool:
        """Block while more than ``limit`` tasks wait for a context."""
        with self._cond:
            return self._cond.wait_for(
                lambda: self._disposed or self.failed or len(self._pending) <= limit, timeout
            )

    # -------------------- tasks --------------------

    def submit_task(self, payload: Any, transfer: Any = None) -> Future:
        """Queue one task. ``transfer`` is sent as a raw byte frame."""
        if transfer is not None and not isinstance(transfer, TRANSFERABLE):
            fut: Future = Future()
            fut.set_exception(
                TransferError(f"can not transfer {type(transfer).__name__}, expected bytes")
            )
            return fut
        task = _Task(next(self._ids), payload, bytes(transfer) if transfer is not None else None)
        with self._cond:
            if self._disposed:
                task.future.set_exception(PoolDisposedError())
                return task.future
            if self._error is not None:
                task.future.set_exception(self._error)
                return task.future
            self._pending.append(task)
            failed = self._dispatch()
        self._fail(failed)
        return task.future

    def _dispatch(self) -> List[Tuple[_Task, BaseException]]:
        failed: List[Tuple[_Task, BaseException]] = []
        if self._error is not None:
            return failed
        for ctx in self._contexts:
            if not self._pending:
                break
            if ctx.task is not None or ctx.closing or not ctx.alive:
                continue
            while self._pending:
                task = self._pending.popleft()
                if not task.future.set_running_or_notify_cancel():
                    continue
                try:
                    ctx.send(task)
                except (EOFError, OSError):
                    # context is going away, its reader replaces it
                    self._pending.appendleft(task)
                    break
                except Exception as e:
                    failed.append((task, e))
                    continue
                ctx.task = task
                break
        return failed

    @staticmethod
    def _fail(failed: Sequence[Tuple[_Task, BaseException]]) -> None:
        for task, e in failed:
            if not task.future.done():
                task.future.set_exception(e)

    def _on_message(self, ctx: WorkerContext, msg) -> None:
        task_id, ok, value = msg
        if task_id is None:
            if ok:
                ctx.ready = True
            else:
                ctx.closing = True
                self._fail_pool(
                    WorkerInitError(ctx.id, str(value), getattr(value, "traceback_text", ""))
                )
            return
        with self._cond:
            task = ctx.task
            ctx.task = None
            failed = self._dispatch()
            self._cond.notify_all()
        if task is not None and task.id == task_id and not task.future.done():
            if ok:
                task.future.set_result(value)
            else:
                task.future.set_exception(value)
        self._fail(failed)

    def _on_context_exit(self, ctx: WorkerContext) -> None:
        with self._cond:
            if self._disposed or ctx.closing:
                return
            task = ctx.task
            ctx.task = None
            ctx.closing = True
        exit_code = ctx.exit_code
        if not ctx.ready:
            # replacing it would fail the same way
            self._fail_pool(
                WorkerInitError(ctx.id, f"exited with code {exit_code} before it was ready")
            )
            return
        self.loggers.error.error("worker %d exited with code %s", ctx.id, exit_code)
        with self._cond:
            if self._disposed or self._error is not None:
                replacement = None
            else:
                replacement = self._create_context()
                self._contexts[self._contexts.index(ctx)] = replacement
                failed = self._dispatch()
                self._cond.notify_all()
        if task is not None and not task.future.done():
            task.future.set_exception(WorkerCrashedError(ctx.id, exit_code))
        if replacement is not None:
            self._fail(failed)
        if self.on_worker_exit is not None:
            self.on_worker_exit(ctx.id, exit_code)

    def _fail_pool(self, error: WorkerInitError) -> None:
        """Stop taking tasks; everything queued or running fails with ``error``."""
        with self._cond:
            if self._disposed or self._error is not None:
                return
            self._error = error
            tasks = list(self._pending)
            self._pending.clear()
            for c in self._contexts:
                if c.task is not None:
                    tasks.append(c.task)
                    c.task = None
            self._cond.notify_all()
        self.loggers.error.error("%s", error)
        if error.traceback_text:
            self.loggers.error.debug("%s", error.traceback_text)
        for task in tasks:
            if not task.future.done():
                task.future.set_exception(error)

    # -------------------- shutdown --------------------

    def dispose(self) -> None:
        """Stop every context; queued and in-flight tasks fail with PoolDisposedError."""
        with self._cond:
            if self._disposed:
                return
            self._disposed = True
            tasks = list(self._pending)
            self._pending.clear()
            tasks.extend(c.task for c in self._contexts if c.task is not None)
            contexts = list(self._contexts)
            self._cond.notify_all()
        for task in tasks:
            if not task.future.done():
                task.future.set_exception(PoolDisposedError())
        for ctx in contexts:
            ctx.close()
        for ctx in contexts:
            ctx.task = None
        if self._listener is not None:
            self._listener.stop()
            self._listener = None

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()
