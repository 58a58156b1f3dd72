import os
from typing import Optional, Union

from .errors import PathResolutionError
from .logger import category_logger
from .util import decode_uri

log = category_logger("mkdir")


def ensure_within(root: str, file_path: str) -> str:
    """Absolute ``file_path``; raises PathResolutionError unless it is inside ``root``."""
    root = os.path.abspath(root)
    path = os.path.abspath(file_path)
    if os.path.commonpath([root, path]) != root or path == root:
        raise PathResolutionError(f"refusing to write {file_path} outside {root}")
    return path


def disk_path(local_root: str, save_path: str) -> str:
    """Where ``save_path`` is stored under ``local_root``."""
    return ensure_within(local_root, os.path.join(local_root, decode_uri(save_path)))


def mkdir_retry(dir: str, retry: int = 3) -> None:
    error: Optional[OSError] = None
    for i in range(retry):
        try:
            os.makedirs(dir, exist_ok=True)
        except OSError as e:
            error = e
            log.debug("mkdir %s fail %d times: %s", dir, i + 1, e)
            continue
        return
    if error:
        raise error


def write_file(
    file_path: str,
    data: Union[str, bytes, bytearray, memoryview],
    encoding: Optional[str] = None,
    mtime: Optional[float] = None,
    root: Optional[str] = None,
) -> None:
    if root is not None:
        file_path = ensure_within(root, file_path)
    d = os.path.dirname(file_path)
    if d and not os.path.isdir(d):
        mkdir_retry(d)
    if isinstance(data, str):
        with open(file_path, "w", encoding=encoding or "utf-8", newline="") as f:
            f.write(data)
    elif isinstance(data, (bytes, bytearray, memoryview)):
        with open(file_path, "wb") as f:
            f.write(data)
    else:
        raise TypeError(f"Type of data not supported: {type(data).__name__}")
    if mtime is not None:
        os.utime(file_path, (mtime, mtime))
