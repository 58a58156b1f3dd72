from .adjust_concurrency import ConcurrencyController, DownloaderStats, adjust_concurrency
from .main import AbstractDownloader, dedup_key
from .multi import MultiProcessDownloader
from .queue import TaskQueue
from .single import SingleThreadDownloader
from .worker_pool import WorkerPool

__all__ = [
    "AbstractDownloader",
    "ConcurrencyController",
    "DownloaderStats",
    "MultiProcessDownloader",
    "SingleThreadDownloader",
    "TaskQueue",
    "WorkerPool",
    "adjust_concurrency",
    "dedup_key",
]
