import logging
import logging.handlers
import os
from typing import Dict, List, Optional

ROOT_LOGGER_NAME = "site_mirror"

CATEGORIES = (
    "request",
    "response",
    "retry",
    "error",
    "not_found",
    "skip",
    "skip_external",
    "complete",
    "mkdir",
    "adjust_concurrency",
)

# categories written to their own file when a run is configured
SINK_FILES = {
    "retry": "retry.log",
    "error": "error.log",
    "skip": "skip.log",
    "skip_external": "skip.log",
    "not_found": "404.log",
    "complete": "complete.log",
    "request": "request.log",
    "response": "response.log",
    "mkdir": "mkdir.log",
}

FILE_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def category_logger(category: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{category}")


class Loggers:
    """Category loggers of one run, with optional per-run file sinks."""

    def __init__(self) -> None:
        self.request = category_logger("request")
        self.response = category_logger("response")
        self.retry = category_logger("retry")
        self.error = category_logger("error")
        self.not_found = category_logger("not_found")
        self.skip = category_logger("skip")
        self.skip_external = category_logger("skip_external")
        self.complete = category_logger("complete")
        self.mkdir = category_logger("mkdir")
        self.adjust_concurrency = category_logger("adjust_concurrency")
        self._handlers: List[tuple] = []
        self.log_dir: Optional[str] = None

    def get(self, category: str) -> logging.Logger:
        return getattr(self, category)

    def configure(self, local_root: str, sub_dir: Optional[str] = None) -> str:
        """Attach file sinks under ``<local_root>/<sub_dir>/logs``."""
        self.close()
        parts = [local_root]
        if sub_dir:
            parts.append(sub_dir)
        parts.append("logs")
        log_dir = os.path.join(*parts)
        os.makedirs(log_dir, exist_ok=True)
        formatter = logging.Formatter(FILE_LOG_FORMAT)
        by_file: Dict[str, logging.Handler] = {}
        for category, file_name in SINK_FILES.items():
            handler = by_file.get(file_name)
            if handler is None:
                handler = logging.FileHandler(
                    os.path.join(log_dir, file_name), encoding="utf-8"
                )
                handler.setFormatter(formatter)
                by_file[file_name] = handler
            logger = self.get(category)
            logger.addHandler(handler)
            self._handlers.append((logger, handler))
        self.log_dir = log_dir
        return log_dir

    def close(self) -> None:
        closed = set()
        for logger, handler in self._handlers:
            logger.removeHandler(handler)
            if id(handler) not in closed:
                handler.close()
                closed.add(id(handler))
        self._handlers = []
        self.log_dir = None


# -------------------- Worker log forwarding --------------------


class RedispatchHandler(logging.Handler):
    """Hand a record forwarded from a worker to the local logger of the same name."""

    def emit(self, record: logging.LogRecord) -> None:
        logger = logging.getLogger(record.name)
        if logger.isEnabledFor(record.levelno):
            logger.handle(record)


def start_log_listener(queue) -> logging.handlers.QueueListener:
    listener = logging.handlers.QueueListener(queue, RedispatchHandler())
    listener.start()
    return listener


def install_queue_handler(queue, level: int = logging.INFO) -> None:
    """Route every record of a worker process to ``queue``."""
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(logging.handlers.QueueHandler(queue))
    root.setLevel(level)
