import time
from types import SimpleNamespace

from site_mirror.downloader.adjust_concurrency import (
    ConcurrencyController,
    DownloaderStats,
    adjust_concurrency,
)
from site_mirror.logger import Loggers
from site_mirror.options import Options


def downloader(downloaded, queue_size=10, concurrency=12, stats=None):
    return SimpleNamespace(
        meta=stats or DownloaderStats(),
        loggers=Loggers(),
        downloaded_count=downloaded,
        queue_size=queue_size,
        queue_pending=concurrency,
        concurrency=concurrency,
        options=Options(),
    )


def steady(count):
    return DownloaderStats(
        first_period_count=count,
        last_period_count=count,
        current_period_count=count,
        last_period_total_count=count,
    )


def test_first_tick_records_baseline():
    d = downloader(10)
    adjust_concurrency(d)
    assert d.meta == steady(10)
    assert d.concurrency == 12


def test_nothing_downloaded_yet():
    d = downloader(0)
    adjust_concurrency(d)
    assert d.meta == DownloaderStats()
    assert d.concurrency == 12


def test_slow_period_raises_concurrency():
    d = downloader(101, stats=steady(100))
    adjust_concurrency(d)
    assert d.meta.current_period_count == 1
    assert d.meta.last_period_count == 100
    assert d.meta.last_period_total_count == 101
    assert d.concurrency == 22


def test_empty_queue_keeps_concurrency():
    d = downloader(101, queue_size=0, stats=steady(100))
    adjust_concurrency(d)
    assert d.meta.current_period_count == 1
    assert d.concurrency == 12


def test_fast_period_lowers_concurrency():
    d = downloader(110, stats=steady(10))
    adjust_concurrency(d)
    assert d.meta.current_period_count == 100
    assert d.concurrency == 8


def test_min_concurrency():
    d = downloader(110, concurrency=5, stats=steady(10))
    adjust_concurrency(d)
    assert d.concurrency == 4


def test_disabled_controller_never_starts():
    c = ConcurrencyController(downloader(0), 0)
    c.start()
    assert not c.running
    c.stop()


def test_controller_ticks():
    d = downloader(10)
    c = ConcurrencyController(d, 0.01)
    c.start()
    assert c.running
    try:
        for _ in range(500):
            if d.meta.first_period_count:
                break
            time.sleep(0.01)
    finally:
        c.stop()
    assert d.meta.first_period_count == 10
    assert not c.running
