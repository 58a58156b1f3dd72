import threading

import pytest
import requests

from site_mirror.life_cycle import LifeCycle, default_life_cycle
from site_mirror.options import Options, check_options
from site_mirror.pipeline import PipelineExecutor


class FakeResponse:
    def __init__(self, url, content=b"", status_code=200, headers=None, history=None):
        self.url = url
        self.content = content.encode("utf-8") if isinstance(content, str) else content
        self.status_code = status_code
        self.headers = headers or {}
        self.history = history or []

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} for url: {self.url}", response=self)

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """Serves ``pages``: url -> body, FakeResponse, or a list of them served in turn."""

    def __init__(self, pages):
        self.pages = dict(pages)
        self.calls = []
        self.headers = {}
        self._lock = threading.Lock()

    def get(self, url, headers=None, timeout=None, stream=False):
        with self._lock:
            self.calls.append(url)
            page = self.pages.get(url)
            if isinstance(page, list):
                page = page.pop(0) if len(page) > 1 else page[0]
        if page is None:
            return FakeResponse(url, b"Not Found", 404)
        if isinstance(page, FakeResponse):
            return page
        return FakeResponse(url, page)

    def count(self, url):
        return self.calls.count(url)


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def options(tmp_path):
    return check_options(
        Options(local_root=str(tmp_path / "out"), adjust_concurrency_period=0)
    )


@pytest.fixture
def bare_pipeline(options):
    """Executor without any stage."""
    return PipelineExecutor(LifeCycle(), options)


@pytest.fixture
def pipeline(options):
    return PipelineExecutor(default_life_cycle(), options)
