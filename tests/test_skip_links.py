import pytest

from site_mirror.life_cycle.skip_links import (
    UNPROCESSABLE_URI_SCHEMES,
    is_unprocessable_link,
    skip_links,
)
from site_mirror.life_cycle.types import Continue, Discard
from site_mirror.options import Options


def run(url, options=None):
    return skip_links(url, None, None, options or Options(local_root="out"), None)


@pytest.mark.parametrize("scheme", UNPROCESSABLE_URI_SCHEMES)
def test_skip_unprocessable_uri_schemes(scheme):
    assert isinstance(run(scheme + "://aaa"), Discard)
    assert isinstance(run(scheme + ":bbb"), Discard)
    assert isinstance(run(scheme.upper() + ":bbb"), Discard)


@pytest.mark.parametrize(
    "url",
    [
        "http://example.com/aaaa?bbb=ccc#ddd",
        "http://example.com/aaaa",
        "https://example.com/aaaa?bbb=ccc#ddd",
        "https://example.com/aaaa?bbb=ccc",
        "https://example.com/aaaa#eee",
        "/aaaa?bbb=ccc#ddd",
        "/aaaa",
        "aaaa?bbb=ccc#ddd",
        "aaaa?bbb=ccc",
        "aaaa#eee",
        "?bbb=ccc",
    ],
)
def test_keep_links(url):
    assert run(url) == Continue(url)


@pytest.mark.parametrize(
    "url", ["#ddd", "#sss=111", "#!/src/process", "#######", "#/menu/demo", "#example", ""]
)
def test_skip_hash_links(url):
    assert isinstance(run(url), Discard)


def test_file_links_need_local_src_root():
    assert isinstance(run("file:///src/a.html"), Discard)
    opts = Options(local_root="out", local_src_root="/src")
    assert run("file:///src/a.html", opts) == Continue("file:///src/a.html")
    assert is_unprocessable_link("mailto:a@example.com", allow_file=True)
