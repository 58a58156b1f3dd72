import threading
from dataclasses import dataclass
from typing import Optional


@dataclass
class DownloaderStats:
    """Download counts sampled once per controller period."""

    first_period_count: int = 0
    last_period_count: int = 0
    current_period_count: int = 0
    last_period_total_count: int = 0


def adjust_concurrency(downloader) -> None:
    """Move the queue concurrency toward the download rate of the last period.

    The first tick with any downloads only records the baseline.
    """
    meta: DownloaderStats = downloader.meta
    log = downloader.loggers.adjust_concurrency
    if not meta.first_period_count:
        meta.first_period_count = downloader.downloaded_count
        meta.last_period_total_count = meta.first_period_count
        meta.current_period_count = meta.first_period_count
        meta.last_period_count = meta.first_period_count
        return
    total = downloader.downloaded_count
    meta.last_period_count = meta.current_period_count
    meta.current_period_count = total - meta.last_period_total_count
    meta.last_period_total_count = total
    if downloader.queue_size == 0:
        log.info(
            "queue is empty, keep concurrency %d, running: %d",
            downloader.concurrency,
            downloader.queue_pending,
        )
        return

    concurrency = downloader.concurrency
    current, last, first = meta.current_period_count, meta.last_period_count, meta.first_period_count
    if current < 2:
        concurrency += 8
    elif current < last >> 1:
        concurrency += 4
    if current < first >> 2:
        concurrency += 2

    if current > last << 2:
        concurrency -= 4
    elif current > last << 1:
        concurrency -= 2
    elif current > first:
        concurrency -= 2

    downloader.concurrency = max(downloader.options.min_concurrency, concurrency)
    log.info("concurrency %d, queue size: %d", downloader.concurrency, downloader.queue_size)


class ConcurrencyController:
    """Calls ``adjust_concurrency`` every ``period`` seconds on a daemon thread."""

    def __init__(self, downloader, period: float):
        self.downloader = downloader
        self.period = period
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running or self.period <= 0:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="site-mirror-adjust-concurrency", daemon=True
        )
        self._thread.start()

    def _loop(self) -> None:
        while not self._stop.wait(self.period):
            try:
                adjust_concurrency(self.downloader)
            except Exception:
                self.downloader.loggers.error.exception("adjust concurrency failed")

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        self._thread = None
