import pickle
import posixpath
import re
from urllib.parse import urlsplit

import pytest

from site_mirror.errors import PathResolutionError
from site_mirror.resource import (
    RawResource,
    Resource,
    ResourceMeta,
    ResourceType,
    create_resource,
    generate_save_path,
    normalize_resource,
    prepare_resource_for_clone,
    url_of_save_path,
)


def make(url, ref_url, type=ResourceType.HTML, ref_type=ResourceType.HTML, **kw):
    return create_resource(
        type=type,
        depth=1,
        url=url,
        ref_url=ref_url,
        local_root="/tmp/aaa",
        ref_type=ref_type,
        **kw,
    )


@pytest.mark.parametrize(
    "url, ref_url, save_path, replace_path",
    [
        # html to html
        (
            "http://nodejs.cn/api/buffer.html#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/buffer/buffers_and_typedarrays.html",
            "nodejs.cn/api/buffer.html",
            "../buffer.html#buffer_buffers_and_typedarrays",
        ),
        # path to html
        (
            "http://nodejs.cn/api/buffer.html#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/buffer/buffers_and_typedarrays",
            "nodejs.cn/api/buffer.html",
            "../buffer.html#buffer_buffers_and_typedarrays",
        ),
        # html to path
        (
            "http://nodejs.cn/api/buffer#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/buffer/buffers_and_typedarrays.html",
            "nodejs.cn/api/buffer.html",
            "../buffer.html#buffer_buffers_and_typedarrays",
        ),
        # html to index
        (
            "http://nodejs.cn/api/#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/buffer/buffers_and_typedarrays.html",
            "nodejs.cn/api/index.html",
            "../index.html#buffer_buffers_and_typedarrays",
        ),
        # index to index
        (
            "http://nodejs.cn/api/#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/buffer/",
            "nodejs.cn/api/index.html",
            "../index.html#buffer_buffers_and_typedarrays",
        ),
        # path to path
        (
            "http://nodejs.cn/api/buffer#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/buffer/buffers_and_typedarrays",
            "nodejs.cn/api/buffer.html",
            "../buffer.html#buffer_buffers_and_typedarrays",
        ),
        # self links
        (
            "http://nodejs.cn/api/buffer.html#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/buffer.html",
            "nodejs.cn/api/buffer.html",
            "#buffer_buffers_and_typedarrays",
        ),
        (
            "http://nodejs.cn/api/buffer.htm#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/buffer.htm",
            "nodejs.cn/api/buffer.html",
            "#buffer_buffers_and_typedarrays",
        ),
        (
            "http://nodejs.cn/api/buffer#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/buffer",
            "nodejs.cn/api/buffer.html",
            "#buffer_buffers_and_typedarrays",
        ),
        (
            "http://nodejs.cn/api/#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/",
            "nodejs.cn/api/index.html",
            "#buffer_buffers_and_typedarrays",
        ),
        # cross host
        (
            "http://nodejs.com/api/#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/",
            "nodejs.com/api/index.html",
            "../../nodejs.com/api/index.html#buffer_buffers_and_typedarrays",
        ),
        (
            "https://nodejs.com/api/#buffer_buffers_and_typedarrays",
            "http://nodejs.cn/api/",
            "nodejs.com/api/index.html",
            "../../nodejs.com/api/index.html#buffer_buffers_and_typedarrays",
        ),
        (
            "//nodejs.com/api/#buffer_buffers_and_typedarrays",
            "https://nodejs.cn/api/",
            "nodejs.com/api/index.html",
            "../../nodejs.com/api/index.html#buffer_buffers_and_typedarrays",
        ),
        # relative and same-site absolute
        (
            "#buffer_buffers_and_typedarrays",
            "https://nodejs.com/api/",
            "nodejs.com/api/index.html",
            "#buffer_buffers_and_typedarrays",
        ),
        (
            "/#buffer_buffers_and_typedarrays",
            "https://nodejs.com/api/",
            "nodejs.com/index.html",
            "../index.html#buffer_buffers_and_typedarrays",
        ),
    ],
)
def test_save_and_replace_path(url, ref_url, save_path, replace_path):
    res = make(url, ref_url)
    assert res.type == ResourceType.HTML
    assert res.depth == 1
    assert res.raw_url == url
    assert res.save_path == save_path
    assert res.replace_path == replace_path
    assert not res.should_be_discarded_from_download


def test_search_dropped_by_default():
    res = make(
        "http://nodejs.cn/api/buffer.html?page=1#aaa",
        "http://nodejs.cn/api/buffer/buffers_and_typedarrays",
    )
    assert res.replace_path == "../buffer.html#aaa"
    assert res.url == "http://nodejs.cn/api/buffer.html#aaa"
    assert res.uri.geturl() == res.url
    assert res.save_path == "nodejs.cn/api/buffer.html"
    # the search is still requested
    assert res.download_link == "http://nodejs.cn/api/buffer.html?page=1"


@pytest.mark.parametrize(
    "type, url, ref_url, ref_type, save_path, replace_path",
    [
        (
            ResourceType.HTML,
            "http://nodejs.cn/api/buffer.html?page=1#aaa",
            "http://nodejs.cn/api/buffer/buffers_and_typedarrays",
            ResourceType.HTML,
            "nodejs.cn/api/buffer_page=1.html",
            "../buffer_page=1.html#aaa",
        ),
        (
            ResourceType.HTML,
            "http://nodejs.cn/api/buffer.html?page=1&a=b&page=2#aaa",
            "http://nodejs.cn/api/buffer/buffers_and_typedarrays",
            ResourceType.HTML,
            "nodejs.cn/api/buffer_a=b_page=1_page=2.html",
            "../buffer_a=b_page=1_page=2.html#aaa",
        ),
        (
            ResourceType.HTML,
            "http://nodejs.cn/api/?page=1#aaa",
            "http://nodejs.cn/api/buffer/buffers_and_typedarrays",
            ResourceType.HTML,
            "nodejs.cn/api/index_page=1.html",
            "../index_page=1.html#aaa",
        ),
        (
            ResourceType.HTML,
            "http://nodejs.cn/api/?page=1#aaa",
            "http://nodejs.cn/api/buffer/",
            ResourceType.HTML,
            "nodejs.cn/api/index_page=1.html",
            "../index_page=1.html#aaa",
        ),
        (
            ResourceType.CSS,
            "http://nodejs.cn/api/api.css?page=1#aaa",
            "http://nodejs.cn/api/buffer/buffers_and_typedarrays",
            ResourceType.HTML,
            "nodejs.cn/api/api_page=1.css",
            "../api_page=1.css#aaa",
        ),
        (
            ResourceType.BINARY,
            "http://nodejs.cn/api/api?page=1#aaa",
            "http://nodejs.cn/api/buffer/buffers_and_typedarrays",
            ResourceType.BINARY,
            "nodejs.cn/api/api_page=1",
            "../api_page=1#aaa",
        ),
    ],
)
def test_keep_search(type, url, ref_url, ref_type, save_path, replace_path):
    res = make(url, ref_url, type=type, ref_type=ref_type, keep_search=True)
    assert res.save_path == save_path
    assert res.replace_path == replace_path


def test_long_search_is_hashed():
    res = make(
        "http://nodejs.cn/api/?page=1" + "a" * 1000 + "#aaa",
        "http://nodejs.cn/api/buffer/buffers_and_typedarrays",
        keep_search=True,
    )
    assert re.fullmatch(r"nodejs\.cn/api/index_[A-Za-z0-9_-]{43}\.html", res.save_path)
    assert res.replace_path == "../" + res.save_path.split("/")[-1] + "#aaa"


def test_encoding_defaults():
    assert make("http://a.com/x", "http://a.com/").encoding == "utf-8"
    assert make("http://a.com/x.png", "http://a.com/", type=ResourceType.BINARY).encoding is None
    assert make("http://a.com/x", "http://a.com/", encoding="gbk").encoding == "gbk"


def test_prepare_resource_for_clone():
    res = make("/#buffer_buffers_and_typedarrays", "https://nodejs.com/api/")
    raw = prepare_resource_for_clone(res)
    assert type(raw) is RawResource
    assert raw.type == ResourceType.HTML
    assert raw.depth == 1
    assert raw.encoding == "utf-8"
    assert raw.url == "https://nodejs.com/#buffer_buffers_and_typedarrays"
    assert raw.raw_url == "/#buffer_buffers_and_typedarrays"
    assert raw.download_link == "https://nodejs.com/"
    assert raw.ref_url == "https://nodejs.com/api/"
    assert raw.ref_save_path == "nodejs.com/api/index.html"
    assert raw.save_path == "nodejs.com/index.html"
    assert raw.local_root == "/tmp/aaa"
    assert raw.replace_path == "../index.html#buffer_buffers_and_typedarrays"
    assert raw.create_timestamp == res.create_timestamp
    assert raw.body is None

    res.body = bytearray(12)
    assert prepare_resource_for_clone(res).body == bytes(12)
    res.body = memoryview(bytes(24))
    body = prepare_resource_for_clone(res).body
    assert type(body) is bytes and len(body) == 24
    res.body = "some text"
    assert prepare_resource_for_clone(res).body == "some text"

    res.meta = ResourceMeta(
        doc=object(),
        headers={"aaa": "bbb", "ccc": "ddd"},
        extra={"test_obj": {}, "test_arr": [1, 3, 5], "test_str": ""},
    )
    raw = prepare_resource_for_clone(res)
    assert raw.meta.doc is None
    assert raw.meta.headers == {"aaa": "bbb", "ccc": "ddd"}
    assert raw.meta.headers is not res.meta.headers
    assert raw.meta.extra == {"test_str": ""}
    assert pickle.loads(pickle.dumps(raw)) == raw


def test_normalize_resource():
    raw = RawResource(
        type=ResourceType.HTML,
        depth=1,
        url="https://nodejs.com/#buffer_buffers_and_typedarrays",
        raw_url="/#buffer_buffers_and_typedarrays",
        download_link="https://nodejs.com/",
        ref_url="https://nodejs.com/api/",
        ref_save_path="nodejs.com/api/index.html",
        save_path="nodejs.com/index.html",
        local_root="/tmp/aaa",
        replace_path="../index.html#buffer_buffers_and_typedarrays",
    )
    res = normalize_resource(raw)
    assert isinstance(res, Resource)
    assert res.uri == urlsplit(res.url)
    assert res.ref_uri == urlsplit(res.ref_url)
    assert res.replace_uri == urlsplit(res.replace_path)
    assert res.host == "nodejs.com"
    # already normalized resources are not copied
    assert normalize_resource(res) is res

    raw.download_start_timestamp = raw.create_timestamp + 1.5
    raw.finish_timestamp = raw.create_timestamp + 3.5
    raw.body = bytearray(b"abc")
    res = normalize_resource(raw)
    assert res.wait_time == pytest.approx(1.5)
    assert res.download_time == pytest.approx(2.0)
    assert type(res.body) is bytes


def test_skip_replace_path_error():
    res = make("localhost:3000", "https://nodejs.com/api/", skip_replace_path_error=True)
    assert res.replace_path == "localhost:3000"
    assert res.replace_uri.geturl() == "localhost:3000"
    assert res.should_be_discarded_from_download


def test_replace_path_error_raises():
    with pytest.raises(PathResolutionError):
        make("localhost:3000", "https://nodejs.com/api/")


def test_empty_host():
    res = make("http:///aaa", "https://nodejs.com/api/", skip_replace_path_error=True)
    assert res.replace_path == "http:///aaa"
    assert res.should_be_discarded_from_download
    with pytest.raises(PathResolutionError):
        make("http:///aaa", "https://nodejs.com/api/")


def test_url_of_save_path():
    assert url_of_save_path("aaa") == "file:///aaa"
    assert url_of_save_path("aaa/bbb") == "file:///aaa/bbb"
    assert url_of_save_path("aaa\\bbb") == "file:///aaa/bbb"


def test_generate_save_path_needs_absolute_uri():
    with pytest.raises(PathResolutionError):
        generate_save_path(urlsplit("aaaa"))


def test_generate_save_path_file_needs_local_src_root():
    with pytest.raises(PathResolutionError):
        generate_save_path(urlsplit("file:///src/index.html"), True)


def test_file_url_inside_local_src_root():
    res = create_resource(
        type=ResourceType.HTML,
        depth=1,
        url="b/c.html",
        ref_url="file:///src/site/a/index.html",
        local_root="/out",
        ref_type=ResourceType.HTML,
        local_src_root="/src/site",
    )
    assert res.url == "file:///src/site/a/b/c.html"
    assert res.download_link == "file:///src/site/a/b/c.html"
    assert res.save_path == "a/b/c.html"
    assert res.ref_save_path == "a/index.html"
    assert res.replace_path == "b/c.html"


def test_file_url_root_path():
    res = create_resource(
        type=ResourceType.BINARY,
        depth=1,
        url="/img/a.png",
        ref_url="file:///src/site/a/index.html",
        local_root="/out",
        ref_type=ResourceType.HTML,
        local_src_root="/src/site",
    )
    assert res.url == "file:///src/site/img/a.png"
    assert res.save_path == "img/a.png"
    assert res.replace_path == "../img/a.png"


def test_file_url_outside_local_src_root():
    kw = dict(
        type=ResourceType.BINARY,
        depth=1,
        url="file:///etc/passwd",
        ref_url="file:///src/site/index.html",
        local_root="/out",
        ref_type=ResourceType.HTML,
        local_src_root="/src/site",
    )
    res = create_resource(skip_replace_path_error=True, **kw)
    assert res.should_be_discarded_from_download
    assert res.replace_path == "file:///etc/passwd"
    with pytest.raises(PathResolutionError):
        create_resource(**kw)


REF_PAGE = "https://example.com/docs/guide/index.html"


@pytest.mark.parametrize(
    "url, type, keep_search",
    [
        ("../api/./b/../c.png", ResourceType.BINARY, False),
        ("/docs/guide/", ResourceType.HTML, False),
        ("#top", ResourceType.HTML, False),
        ("/", ResourceType.HTML, False),
        ("sub/dir/", ResourceType.HTML, False),
        ("/a/b/c/d/e/f.css", ResourceType.CSS, False),
        ("a/%2e%2e/%2E%2E/x.png", ResourceType.BINARY, False),
        ("img%20one.png", ResourceType.BINARY, False),
        ("page?b=2&a=1#s", ResourceType.HTML, True),
        ("/search/?q=" + "x" * 60, ResourceType.HTML, True),
        ("data.json?v=1", ResourceType.BINARY, False),
        ("https://cdn.example.org/lib/a.js", ResourceType.BINARY, False),
        ("//cdn.example.org/fonts/", ResourceType.HTML, False),
    ],
)
def test_replace_path_resolves_to_save_path(url, type, keep_search):
    res = make(url, REF_PAGE, type=type, keep_search=keep_search)
    assert res.ref_save_path == "example.com/docs/guide/index.html"
    target = res.replace_path.split("#", 1)[0]
    if target:
        resolved = posixpath.normpath(posixpath.join(posixpath.dirname(res.ref_save_path), target))
    else:
        resolved = res.ref_save_path
    assert resolved == res.save_path

    again = make(url, REF_PAGE, type=type, keep_search=keep_search)
    assert (again.save_path, again.replace_path, again.url) == (
        res.save_path,
        res.replace_path,
        res.url,
    )
