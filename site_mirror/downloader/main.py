import threading
from typing import Iterable, Optional, Set, Union
from urllib.parse import urlsplit, urlunsplit

import requests

from ..life_cycle import LifeCycle, default_life_cycle
from ..errors import OptionsError
from ..logger import Loggers
from ..options import Options, check_options, load_life_cycle
from ..pipeline import PipelineExecutor
from ..resource import RawResource, Resource, ResourceType, normalize_resource
from ..util import is_site_map
from .adjust_concurrency import ConcurrencyController, DownloaderStats
from .queue import TaskQueue


def dedup_key(url: str, strip_search: bool) -> str:
    """``url`` without its fragment, and without its search if ``strip_search``."""
    parts = urlsplit(url)
    return urlunsplit(parts._replace(fragment="", query="" if strip_search else parts.query))


class AbstractDownloader:
    """Queue, dedup and bookkeeping shared by the downloaders.

    Subclasses implement ``download_and_process_resource``, which runs on
    a queue thread for every accepted resource.
    """

    def __init__(
        self,
        options: Options,
        life_cycle: Optional[LifeCycle] = None,
        session: Optional[requests.Session] = None,
        loggers: Optional[Loggers] = None,
    ):
        self.options = check_options(options)
        self.loggers = loggers or Loggers()
        if life_cycle is None:
            life_cycle = (
                load_life_cycle(options.life_cycle) if options.life_cycle else default_life_cycle()
            )
        if not life_cycle.download or not life_cycle.save_to_disk:
            raise OptionsError("life cycle needs at least one download and one save_to_disk stage")
        self.life_cycle = life_cycle
        self.pipeline = PipelineExecutor(life_cycle, self.options, session, self.loggers)
        self.queue = TaskQueue(self.options.concurrency, self.options.max_concurrency)
        self.queued_url: Set[str] = set()
        self.downloaded_url: Set[str] = set()
        self.failed_count = 0
        self.meta = DownloaderStats()
        self._lock = threading.Lock()
        self._controller = ConcurrencyController(self, self.options.adjust_concurrency_period)
        self._disposed = False
        self.fatal_error: Optional[BaseException] = None
        self.log_dir = self.loggers.configure(self.options.local_root, self.options.log_sub_dir)
        self.pipeline.init(self)
        if self.options.initial_url:
            self.add_initial_resource(self.options.initial_url)

    # -------------------- state --------------------

    @property
    def concurrency(self) -> int:
        return self.queue.concurrency

    @concurrency.setter
    def concurrency(self, n: int) -> None:
        self.queue.concurrency = n

    @property
    def queue_size(self) -> int:
        return self.queue.size

    @property
    def queue_pending(self) -> int:
        return self.queue.pending

    @property
    def downloaded_count(self) -> int:
        return len(self.downloaded_url)

    @property
    def disposed(self) -> bool:
        return self._disposed

    # -------------------- queueing --------------------

    def add_initial_resource(self, urls: Union[str, Iterable[str]]) -> None:
        """Queue seed urls at depth 0. A sitemap url is queued as a sitemap."""
        if isinstance(urls, str):
            urls = [urls]
        for url in urls:
            type = ResourceType.SITE_MAP if is_site_map(url) else ResourceType.HTML
            r = self.pipeline.create_resource(type, 0, url, url, ref_type=type)
            self._add_processed_resource(r)

    def add_processed_resource(self, res: RawResource) -> bool:
        """Queue ``res`` unless it is too deep or already queued."""
        try:
            return self._add_processed_resource(res)
        except Exception as e:
            self.handle_error(e, "adding resource", res)
            return False

    def _add_processed_resource(self, res: RawResource) -> bool:
        if self.fatal_error is not None:
            return False
        if res.depth > self.options.max_depth:
            self.loggers.skip.info("skipped max depth %s %s %d", res.url, res.ref_url, res.depth)
            return False
        key = dedup_key(res.url, self.options.deduplicate_strip_search)
        with self._lock:
            if key in self.queued_url:
                return False
            self.queued_url.add(key)
        self.queue.add(self.download_and_process_resource, normalize_resource(res))
        return True

    def mark_downloaded(self, res: Resource) -> None:
        with self._lock:
            self.downloaded_url.add(res.url)

    def mark_queued(self, url: str) -> None:
        with self._lock:
            self.queued_url.add(dedup_key(url, self.options.deduplicate_strip_search))

    def download_and_process_resource(self, res: Resource) -> None:
        raise NotImplementedError

    def download(self, res: Resource) -> Optional[Resource]:
        """Fetch stage of a queue task. None when there is nothing to process."""
        try:
            downloaded = self.pipeline.download(res)
        except Exception as e:
            self.handle_error(e, "downloading resource", res)
            return None
        if downloaded is None:
            self.loggers.skip.debug("discarded after download %s", res.url)
        return downloaded

    def handle_outcome(self, res: Resource, outcome) -> None:
        """Queue the children of a processed resource and record its redirect."""
        if outcome.error is not None:
            self.handle_error(outcome.error, "processing resource", res)
        if outcome.redirected_url:
            self.mark_queued(outcome.redirected_url)
        for child in outcome.body:
            self.add_processed_resource(child)

    def handle_error(self, err: BaseException, cause: str, res: Optional[RawResource]) -> None:
        with self._lock:
            self.failed_count += 1
        url = res.url if res is not None else ""
        response = getattr(err, "response", None)
        if isinstance(err, requests.HTTPError) and response is not None and response.status_code == 404:
            self.loggers.not_found.error(
                "%s %s %s", url, getattr(res, "download_link", ""), getattr(res, "ref_url", "")
            )
            return
        self.loggers.error.error(
            "%s %s %s %s: %s",
            cause,
            url,
            getattr(res, "download_link", ""),
            getattr(res, "ref_url", ""),
            err,
        )
        tb = getattr(err, "traceback_text", None)
        if tb:
            self.loggers.error.debug("%s", tb)

    # -------------------- run --------------------

    def start(self) -> None:
        if self._disposed:
            raise RuntimeError("downloader disposed")
        self.queue.start()
        self._controller.start()

    def stop(self) -> None:
        self._controller.stop()
        self.queue.pause()

    def wait_for_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no resource is waiting or running. False on timeout.

        Raises the error which stopped the run, if any.
        """
        idle = self.queue.wait_idle(timeout)
        if self.fatal_error is not None:
            raise self.fatal_error
        return idle

    def fail(self, err: BaseException) -> None:
        """Stop the run: nothing more is queued or started."""
        with self._lock:
            if self.fatal_error is not None:
                return
            self.fatal_error = err
        self.loggers.error.error("stopping: %s", err)
        self._controller.stop()
        self.queue.shutdown(wait=False)

    def _dispose_workers(self) -> None:
        pass

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.stop()
        self.queue.clear()
        self._dispose_workers()
        self.queue.shutdown(wait=False)
        self.pipeline.dispose(self)
        self.loggers.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()
