import os
import shutil
from email.utils import formatdate
from typing import TYPE_CHECKING, Dict
from urllib.parse import unquote, urlsplit

from requests.utils import requote_uri

from ..http import parse_last_modified, response_headers
from ..io import disk_path, mkdir_retry
from ..resource import Resource, ResourceType, generate_save_path
from ..util import is_url_http
from .types import Continue, Discard, Outcome

if TYPE_CHECKING:
    from ..options import Options
    from ..pipeline import PipelineExecutor

FILE_PREFIX = "file://"
STREAM_CHUNK_SIZE = 64 * 1024


def _request_headers(res: Resource, link: str) -> Dict[str, str]:
    if res.ref_url and res.ref_url != link:
        return {"Referer": res.ref_url}
    return {}


def _disk_path(res: Resource, options) -> str:
    return disk_path(res.local_root or options.local_root, res.save_path)


def request_for_resource(res: Resource, options: "Options", pipeline: "PipelineExecutor") -> Resource:
    """GET ``res.download_link`` and record body, headers and redirect."""
    loggers = pipeline.loggers
    link = requote_uri(res.download_link)
    loggers.request.info("%s %s %s %s %s", res.url, link, res.ref_url, res.encoding, res.type.name)
    r = pipeline.session.get(
        link, headers=_request_headers(res, link), timeout=options.req.timeout
    )
    r.raise_for_status()
    body = r.content
    if not body:
        loggers.error.warning("Empty response body: %s %s", link, r.status_code)
        return res
    res.meta.headers = response_headers(r.headers)
    loggers.response.info("%s %s %s %s %s", r.status_code, r.url, res.url, link, res.ref_url)
    res.mark_download_finish()
    if r.history and r.url != link:
        res.redirected_url = r.url
        res.redirected_save_path = generate_save_path(
            urlsplit(r.url),
            res.type == ResourceType.HTML,
            options.keep_search,
            options.local_src_root,
        )
    res.body = body
    return res


def _is_incomplete(res: Resource, marker: str) -> bool:
    body = res.body
    if isinstance(body, str):
        return marker not in body
    return marker.encode(res.encoding or "utf-8") not in bytes(body)


def download_resource(res: Resource, options: "Options", pipeline: "PipelineExecutor") -> Outcome:
    if res.body is not None:
        return Continue(res)
    if res.type == ResourceType.STREAMING_BINARY or not is_url_http(res.download_link):
        return Continue(res)
    res.mark_download_start()
    request_for_resource(res, options, pipeline)
    if res.body is None:
        return Continue(res)
    marker = options.detect_incomplete_html
    if res.type == ResourceType.HTML and marker and _is_incomplete(res, marker):
        pipeline.loggers.error.info("Detected incomplete html, try again %s", res.download_link)
        res.body = None
        request_for_resource(res, options, pipeline)
        if res.body is not None and _is_incomplete(res, marker):
            pipeline.loggers.error.warning("Detected incomplete html twice %s", res.download_link)
    return Continue(res)


def optionally_set_last_modified_time(
    res: Resource, options: "Options", pipeline: "PipelineExecutor"
) -> None:
    if not options.prefer_remote_last_modified_time or not res.meta.headers:
        return
    mtime = parse_last_modified(res.meta.headers.get("last-modified"))
    if mtime is None:
        return
    save_path = _disk_path(res, options)
    try:
        os.utime(save_path, (mtime, mtime))
    except OSError as e:
        pipeline.loggers.error.warning("skipping utime %s: %s", save_path, e)


def download_streaming_resource(
    res: Resource, options: "Options", pipeline: "PipelineExecutor"
) -> Outcome:
    """Stream a StreamingBinary resource straight into its save path."""
    if res.body is not None:
        return Continue(res)
    if res.type != ResourceType.STREAMING_BINARY or not is_url_http(res.download_link):
        return Continue(res)
    res.mark_download_start()
    link = requote_uri(res.download_link)
    save_path = _disk_path(res, options)
    pipeline.loggers.request.info("%s %s %s stream", res.url, link, res.ref_url)
    with pipeline.session.get(
        link, headers=_request_headers(res, link), timeout=options.req.timeout, stream=True
    ) as r:
        r.raise_for_status()
        res.meta.headers = response_headers(r.headers)
        mkdir_retry(os.path.dirname(save_path))
        written = 0
        with open(save_path, "wb") as f:
            for chunk in r.iter_content(chunk_size=STREAM_CHUNK_SIZE):
                if not chunk:
                    continue
                written += len(chunk)
                f.write(chunk)
        pipeline.loggers.response.info("%s %s %s %d bytes", r.status_code, r.url, save_path, written)
    optionally_set_last_modified_time(res, options, pipeline)
    res.mark_download_finish()
    return Discard("streamed to disk")


def read_or_copy_local_resource(
    res: Resource, options: "Options", pipeline: "PipelineExecutor"
) -> Outcome:
    """Read file:// resources from disk; StreamingBinary ones are copied."""
    if res.body is not None:
        return Continue(res)
    if not res.download_link.startswith(FILE_PREFIX):
        return Continue(res)
    res.mark_download_start()
    src = unquote(urlsplit(res.download_link).path)
    if not src:
        return Discard("empty file path")
    if res.type == ResourceType.HTML and os.path.isdir(src):
        for index in ("index.html", "index.htm"):
            if os.path.isfile(os.path.join(src, index)):
                src = os.path.join(src, index)
                break
    if res.type == ResourceType.STREAMING_BINARY:
        dest = _disk_path(res, options)
        mkdir_retry(os.path.dirname(dest))
        shutil.copyfile(src, dest)
    else:
        with open(src, "rb") as f:
            res.body = f.read()
    try:
        st = os.stat(src)
        res.meta.headers = {
            "last-modified": formatdate(st.st_mtime, usegmt=True),
            "content-length": str(st.st_size),
        }
    except OSError as e:
        pipeline.loggers.error.warning("stat %s: %s", src, e)
    res.mark_download_finish()
    if res.type == ResourceType.STREAMING_BINARY:
        return Discard("copied to disk")
    return Continue(res)
