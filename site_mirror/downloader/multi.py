from typing import Optional

import requests

from ..errors import PoolError, WorkerInitError
from ..life_cycle import LifeCycle
from ..logger import Loggers
from ..options import Options
from ..resource import prepare_resource_for_clone
from .main import AbstractDownloader
from .worker import init_worker
from .worker_pool import WorkerPool


class MultiProcessDownloader(AbstractDownloader):
    """Downloads on queue threads, post-processes on a pool of worker processes.

    ``context="thread"`` runs the workers as threads, which keeps the same
    message passing without spawning processes.
    """

    def __init__(
        self,
        options: Options,
        life_cycle: Optional[LifeCycle] = None,
        session: Optional[requests.Session] = None,
        loggers: Optional[Loggers] = None,
        context: str = "process",
    ):
        self.pool: Optional[WorkerPool] = None
        self.context = context
        super().__init__(options, life_cycle, session, loggers)

    @property
    def worker_count(self) -> int:
        o = self.options
        return max(1, min(o.worker_count or o.concurrency, o.concurrency))

    @property
    def max_pending_tasks(self) -> int:
        return self.options.max_pending_tasks or self.worker_count * 2

    def _worker_life_cycle(self):
        # a factory spec imports in the worker; otherwise the life cycle is pickled
        return self.options.life_cycle or self.life_cycle

    def _ensure_pool(self) -> WorkerPool:
        if self.pool is None:
            try:
                self.pool = WorkerPool(
                    self.worker_count,
                    initializer=init_worker,
                    initargs=(self.options, self._worker_life_cycle()),
                    context=self.context,
                    start_method=self.options.worker_start_method,
                    loggers=self.loggers,
                    on_worker_exit=self._on_worker_exit,
                )
            except (ValueError, OSError) as e:
                raise PoolError(f"can not start workers: {e}") from e
        return self.pool

    def _on_worker_exit(self, worker_id: int, exit_code: Optional[int]) -> None:
        self.pipeline.dispose(self, worker_id, exit_code)

    def start(self) -> None:
        self._ensure_pool()
        super().start()

    def download_and_process_resource(self, res) -> None:
        downloaded = self.download(res)
        if downloaded is None:
            return
        pool = self._ensure_pool()
        pool.wait_below(self.max_pending_tasks)
        raw = prepare_resource_for_clone(downloaded)
        transfer = None
        if isinstance(raw.body, bytes):
            transfer, raw.body = raw.body, None
        try:
            outcome = pool.submit_task(raw, transfer).result()
        except WorkerInitError as e:
            self.fail(e)
            return
        except Exception as e:
            self.handle_error(e, "processing resource in worker", downloaded)
            return
        self.mark_downloaded(res)
        self.handle_outcome(downloaded, outcome)

    def _dispose_workers(self) -> None:
        if self.pool is not None:
            self.pool.dispose()
