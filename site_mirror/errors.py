from typing import Optional


class MirrorError(Exception):
    pass


class OptionsError(MirrorError, TypeError):
    pass


class PathResolutionError(MirrorError, ValueError):
    def __init__(self, message: str, url: str = "", ref_url: str = ""):
        super().__init__(message, url, ref_url)
        self.message = message
        self.url = url
        self.ref_url = ref_url

    def __str__(self) -> str:
        if self.url:
            return f"{self.message}: {self.url} (from {self.ref_url})"
        return self.message


# -------------------- Worker pool --------------------


class PoolError(MirrorError):
    pass


class PoolDisposedError(PoolError):
    def __init__(self, message: str = "disposed"):
        super().__init__(message)


class TransferError(PoolError, TypeError):
    pass


class WorkerCrashedError(PoolError):
    def __init__(self, worker_id: int, exit_code: Optional[int] = None):
        super().__init__(f"worker {worker_id} exited with code {exit_code}")
        self.worker_id = worker_id
        self.exit_code = exit_code

    def __reduce__(self):
        return (type(self), (self.worker_id, self.exit_code))


class WorkerInitError(PoolError):
    """A worker could not start; the pool takes no more tasks."""

    def __init__(self, worker_id: int, message: str, traceback_text: str = ""):
        super().__init__(f"worker {worker_id} failed to start: {message}")
        self.worker_id = worker_id
        self.message = message
        self.traceback_text = traceback_text

    def __reduce__(self):
        return (type(self), (self.worker_id, self.message, self.traceback_text))


class RemoteTaskError(MirrorError):
    """An exception raised inside a worker, flattened so it survives pickling."""

    def __init__(self, type_name: str, message: str, traceback_text: str = ""):
        super().__init__(type_name, message, traceback_text)
        self.type_name = type_name
        self.message = message
        self.traceback_text = traceback_text

    @classmethod
    def from_exception(cls, exc: BaseException, traceback_text: str = "") -> "RemoteTaskError":
        if isinstance(exc, RemoteTaskError):
            return exc
        return cls(type(exc).__name__, str(exc), traceback_text)

    def __str__(self) -> str:
        return f"{self.type_name}: {self.message}"
