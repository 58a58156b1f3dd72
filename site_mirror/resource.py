import enum
import posixpath
import time
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import SplitResult, urljoin, urlsplit, urlunsplit

from .errors import PathResolutionError
from .logger import category_logger
from .util import (
    FILE_PROTOCOL_PREFIX,
    escape_path,
    is_url_http,
    normalize_url_path,
    order_url_search,
    relative_path,
    simple_hash_string,
)

log = category_logger("error")

# longer searches are folded into a hash instead of the file name
MAX_SEARCH_LENGTH = 43

ResourceBody = Union[bytes, bytearray, memoryview, str]
Scalar = Union[str, int, float, bool, None]


class ResourceType(enum.IntEnum):
    BINARY = 1
    HTML = 2
    CSS = 3
    # style blocks and style attributes inside html
    CSS_INLINE = 4
    # urls in a site map are discovered but never replaced
    SITE_MAP = 5
    SVG = 6
    # must be set explicitly, streamed straight to disk
    STREAMING_BINARY = 7


BINARY_TYPES = (ResourceType.BINARY, ResourceType.STREAMING_BINARY)


@dataclass
class ResourceMeta:
    # parsed document of an Html or Svg resource, never leaves the process
    doc: Any = None
    # lower-cased response headers
    headers: Optional[Dict[str, str]] = None
    css_processed: bool = False
    extra: Dict[str, Scalar] = field(default_factory=dict)

    def clone(self) -> "ResourceMeta":
        return ResourceMeta(
            headers=dict(self.headers) if self.headers is not None else None,
            css_processed=self.css_processed,
            extra={
                k: v
                for k, v in self.extra.items()
                if v is None or isinstance(v, (str, int, float, bool))
            },
        )


@dataclass
class RawResource:
    type: ResourceType
    depth: int
    url: str
    # the url as first discovered, never changed
    raw_url: str
    download_link: str
    ref_url: str
    ref_save_path: str
    save_path: str
    local_root: str
    replace_path: str
    encoding: Optional[str] = "utf-8"
    create_timestamp: float = field(default_factory=time.time)
    download_start_timestamp: Optional[float] = None
    wait_time: Optional[float] = None
    finish_timestamp: Optional[float] = None
    download_time: Optional[float] = None
    body: Optional[ResourceBody] = None
    redirected_url: Optional[str] = None
    redirected_save_path: Optional[str] = None
    meta: ResourceMeta = field(default_factory=ResourceMeta)
    should_be_discarded_from_download: bool = False

    @property
    def downloaded(self) -> bool:
        return self.body is not None

    def mark_download_start(self) -> None:
        if self.download_start_timestamp is None:
            self.download_start_timestamp = time.time()
            self.wait_time = self.download_start_timestamp - self.create_timestamp

    def mark_download_finish(self) -> None:
        self.finish_timestamp = time.time()
        if self.download_start_timestamp is not None:
            self.download_time = self.finish_timestamp - self.download_start_timestamp


@dataclass
class Resource(RawResource):
    uri: Optional[SplitResult] = field(default=None, repr=False, compare=False)
    ref_uri: Optional[SplitResult] = field(default=None, repr=False, compare=False)
    replace_uri: Optional[SplitResult] = field(default=None, repr=False, compare=False)
    host: Optional[str] = field(default=None, compare=False)


# a Resource whose body is present; eligible for post-download processing
DownloadResource = Resource

GenerateSavePathFn = Callable[[SplitResult, bool, bool, Optional[str]], str]


# -------------------- Save path --------------------


def _src_root_prefix(local_src_root: str) -> str:
    return "/" + local_src_root.replace("\\", "/").strip("/")


def generate_save_path(
    uri: SplitResult,
    is_html: bool = False,
    keep_search: bool = False,
    local_src_root: Optional[str] = None,
) -> str:
    scheme = uri.scheme.lower()
    if not scheme:
        raise PathResolutionError("generate_save_path: uri can not be relative", urlunsplit(uri))

    if scheme == "file":
        if not local_src_root:
            raise PathResolutionError(
                "generate_save_path: using file protocol without local_src_root",
                urlunsplit(uri),
            )
        root = _src_root_prefix(local_src_root)
        path = normalize_url_path(uri.path)
        if path == root or path.startswith(root + "/"):
            path = path[len(root):]
        save_path = path.lstrip("/")
    else:
        host = uri.hostname or ""
        save_path = host + escape_path(normalize_url_path(uri.path))

    if is_html and not save_path.endswith(".html"):
        if (scheme == "file" and save_path == "") or save_path.endswith("/"):
            save_path += "index.html"
        elif save_path.endswith(".htm"):
            save_path += "l"
        else:
            save_path += ".html"

    if keep_search and uri.query:
        search = "?" + uri.query
        if len(search) > MAX_SEARCH_LENGTH:
            ordered = order_url_search(search)
            hashed = simple_hash_string(ordered)
            log.debug("search too long, replacing with hash %s %s", ordered, hashed)
            search = "_" + hashed
        else:
            search = escape_path(order_url_search(search))
        base, ext = posixpath.splitext(save_path)
        if ext:
            save_path = base + search + ext
        else:
            save_path += search
    return save_path


def url_of_save_path(save_path: str) -> str:
    return FILE_PROTOCOL_PREFIX + save_path.replace("\\", "/")


# -------------------- URL checks --------------------


def _path_error(
    message: str,
    skip_replace_path_error: bool,
    url: str,
    ref_url: str,
    type: Optional[ResourceType] = None,
) -> bool:
    log.warning("%s, skipping %s %s %s", message, url, ref_url, type)
    if skip_replace_path_error:
        return True
    raise PathResolutionError(message, url, ref_url)


def check_absolute_uri(
    uri: SplitResult,
    ref_uri: SplitResult,
    skip_replace_path_error: bool,
    url: str,
    ref_url: str,
    type: ResourceType,
) -> bool:
    """Return True when the uri is unusable and the error should be skipped."""
    scheme = uri.scheme.lower()
    if scheme not in ("http", "https", "file") and scheme != ref_uri.scheme.lower():
        return _path_error(
            f"protocol {scheme} not supported", skip_replace_path_error, url, ref_url, type
        )
    if scheme != "file" and not uri.netloc:
        return _path_error(
            "empty host for non-file uri not supported",
            skip_replace_path_error,
            url,
            ref_url,
            type,
        )
    return False


def _within_root(rest: str, root: str) -> bool:
    return not root or rest == root or rest.startswith(root + "/")


def resolve_file_url(
    url: str,
    ref_url: str,
    local_src_root: Optional[str] = None,
    skip_replace_path_error: bool = False,
) -> str:
    """Resolve a link against a file:// referrer.

    Returns an empty string when the url can not be used and
    ``skip_replace_path_error`` is set.
    """
    if is_url_http(url):
        return url
    error: Optional[str] = None
    root = (local_src_root or "").replace("\\", "/")
    if not root:
        error = "can not use file url without local_src_root"
    root = root.strip("/")
    prefix_len = len(FILE_PROTOCOL_PREFIX)
    if (
        not error
        and url.startswith(FILE_PROTOCOL_PREFIX)
        and not _within_root(url[prefix_len:].split("#", 1)[0], root)
    ):
        error = "file url not starting with local_src_root is forbidden"
    if (
        not error
        and ref_url.startswith(FILE_PROTOCOL_PREFIX)
        and not _within_root(ref_url[prefix_len:].split("#", 1)[0], root)
    ):
        error = "file ref_url not starting with local_src_root is forbidden"
    if error:
        _path_error(error, skip_replace_path_error, url, ref_url)
        return ""

    if url.startswith("//"):
        url = FILE_PROTOCOL_PREFIX + root + url[1:]
    elif url.startswith("/"):
        url = FILE_PROTOCOL_PREFIX + root + url
    elif not url.startswith(FILE_PROTOCOL_PREFIX):
        rest = ref_url[prefix_len + len(root):].lstrip("/")
        joined = urlsplit(urljoin(FILE_PROTOCOL_PREFIX + rest, url))
        url = FILE_PROTOCOL_PREFIX + root + joined.path
        if joined.fragment:
            url += "#" + joined.fragment
    return url


# -------------------- Creation --------------------


def create_resource(
    type: ResourceType,
    depth: int,
    url: str,
    ref_url: str,
    local_root: str,
    ref_save_path: Optional[str] = None,
    ref_type: Optional[ResourceType] = None,
    local_src_root: Optional[str] = None,
    encoding: Optional[str] = None,
    keep_search: bool = False,
    skip_replace_path_error: bool = False,
    generate_save_path_fn: Optional[GenerateSavePathFn] = None,
) -> Resource:
    """Create a resource for ``url`` discovered by the resource at ``ref_url``.

    ``save_path`` and ``replace_path`` are computed together: ``replace_path``
    resolved from the directory of ``ref_save_path`` names ``save_path``.

    Raises PathResolutionError for unusable urls unless
    ``skip_replace_path_error`` is set, in which case the resource keeps its
    raw url as paths and is flagged ``should_be_discarded_from_download``.
    """
    raw_url = url
    ref_uri = urlsplit(ref_url)
    has_error = False
    if url.startswith(FILE_PROTOCOL_PREFIX) or ref_url.startswith(FILE_PROTOCOL_PREFIX):
        # file urls never carry a search
        keep_search = False
        resolved = resolve_file_url(url, ref_url, local_src_root, skip_replace_path_error)
        if resolved:
            url = resolved
        else:
            has_error = True

    if not has_error:
        if url.startswith("//"):
            url = ref_uri.scheme + ":" + url
        elif url.startswith("/"):
            url = f"{ref_uri.scheme}://{ref_uri.netloc}{url}"

    try:
        uri = urlsplit(url)
    except ValueError as e:
        _path_error(str(e), skip_replace_path_error, url, ref_url, type)
        uri = urlsplit("")
        has_error = True

    if not has_error and not uri.scheme:
        url = urljoin(ref_url, url)
        uri = urlsplit(url)

    if not has_error and check_absolute_uri(
        uri, ref_uri, skip_replace_path_error, url, ref_url, type
    ):
        has_error = True

    if uri.scheme.lower() == "file":
        download_link = urlunsplit(uri._replace(query="", fragment=""))
    else:
        download_link = urlunsplit(uri._replace(fragment=""))

    gen = generate_save_path_fn or generate_save_path
    if has_error:
        save_path = raw_url
    else:
        save_path = gen(uri, type == ResourceType.HTML, keep_search, local_src_root)
    if not ref_save_path:
        ref_save_path = gen(ref_uri, ref_type == ResourceType.HTML, False, local_src_root)

    if has_error:
        replace_path = raw_url
    else:
        replace_path = relative_path(save_path, ref_save_path)
        if uri.fragment:
            replace_path += "#" + uri.fragment

    if not keep_search and uri.query:
        uri = uri._replace(query="")
        url = urlunsplit(uri)

    if encoding is None and type not in BINARY_TYPES:
        encoding = "utf-8"

    return Resource(
        type=type,
        depth=depth,
        url=url,
        raw_url=raw_url,
        download_link=download_link,
        ref_url=ref_url,
        ref_save_path=ref_save_path,
        save_path=save_path,
        local_root=local_root,
        replace_path=replace_path,
        encoding=encoding,
        should_be_discarded_from_download=has_error,
        uri=uri,
        ref_uri=ref_uri,
        replace_uri=urlsplit(replace_path),
        host=uri.hostname or "",
    )


CreateResourceFn = Callable[..., Resource]


# -------------------- Cloning --------------------


def _clonable_body(body: Any) -> Optional[Union[bytes, str]]:
    if isinstance(body, (str, bytes)):
        return body
    if isinstance(body, (bytearray, memoryview)):
        return bytes(body)
    return None


def prepare_resource_for_clone(res: RawResource) -> RawResource:
    """Plain copy of ``res`` which is safe to send to another process."""
    values: Dict[str, Any] = {}
    for f in fields(RawResource):
        value = getattr(res, f.name)
        if f.name == "meta":
            value = value.clone()
        elif f.name == "body":
            value = _clonable_body(value)
        values[f.name] = value
    return RawResource(**values)


def normalize_resource(res: RawResource) -> Resource:
    """Restore the derived fields of a resource received from another process."""
    if not isinstance(res, Resource):
        res = Resource(**{f.name: getattr(res, f.name) for f in fields(RawResource)})
    if res.uri is None:
        res.uri = urlsplit(res.url)
    if res.ref_uri is None:
        res.ref_uri = urlsplit(res.ref_url)
    if res.replace_uri is None:
        res.replace_uri = urlsplit(res.replace_path)
    if not res.host:
        res.host = res.uri.hostname or ""
    if res.wait_time is None and res.download_start_timestamp is not None:
        res.wait_time = res.download_start_timestamp - res.create_timestamp
    if (
        res.download_time is None
        and res.finish_timestamp is not None
        and res.download_start_timestamp is not None
    ):
        res.download_time = res.finish_timestamp - res.download_start_timestamp
    if isinstance(res.body, (bytearray, memoryview)):
        res.body = bytes(res.body)
    return res
