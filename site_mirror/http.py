from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .logger import category_logger
from .options import RequestOptions

retry_log = category_logger("retry")


class LoggingRetry(Retry):
    """Retry which reports every attempt to the retry sink."""

    def increment(self, method=None, url=None, response=None, error=None, _pool=None, _stacktrace=None):
        attempt = len(self.history) + 1
        status = response.status if response is not None else None
        if attempt > 1:
            retry_log.warning("%d %s %s %s %s", attempt, method, url, status, error)
        else:
            retry_log.info("%d %s %s %s %s", attempt, method, url, status, error)
        return super().increment(
            method=method,
            url=url,
            response=response,
            error=error,
            _pool=_pool,
            _stacktrace=_stacktrace,
        )


def build_session(req: Optional[RequestOptions] = None) -> requests.Session:
    req = req or RequestOptions()
    s = requests.Session()
    retry = LoggingRetry(
        total=req.retry_limit,
        backoff_factor=req.backoff_factor,
        status_forcelist=list(req.status_forcelist),
        allowed_methods={"GET", "HEAD"},
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=128, pool_maxsize=128)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    s.headers.update(req.headers)
    s.max_redirects = req.max_redirects
    s.verify = req.verify
    return s


def response_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


def parse_last_modified(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        dt = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError):
        return None
    if not dt.tzinfo:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()
