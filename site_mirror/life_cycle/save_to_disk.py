import os
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlsplit

from ..http import parse_last_modified
from ..io import write_file
from ..resource import Resource, ResourceType, generate_save_path
from ..util import decode_uri, escape_path, relative_path
from .adapters import serialize_html
from .types import Continue, Discard, Outcome

if TYPE_CHECKING:
    from ..options import Options
    from ..pipeline import PipelineExecutor


def redirect_html(relative_path: str, encoding: Optional[str] = None) -> str:
    return (
        '<html lang="en">\n'
        "<head>\n"
        f'<meta charset="{encoding or "utf-8"}">\n'
        f'<meta http-equiv="refresh" content="0; url={relative_path}">\n'
        f"<script>location.replace('{relative_path}' + location.hash);</script>\n"
        "<title>Redirecting</title>\n"
        "</head>\n"
        "</html>"
    )


def resource_body(res: Resource):
    if res.meta.doc is not None:
        return serialize_html(res.meta.doc)
    return res.body


def _remote_mtime(res: Resource, options) -> Optional[float]:
    if options.prefer_remote_last_modified_time and res.meta.headers:
        return parse_last_modified(res.meta.headers.get("last-modified"))
    return None


def _redirected_save_path(res: Resource, options) -> Optional[str]:
    if not res.redirected_url or res.redirected_url == res.url:
        return None
    path = res.redirected_save_path or generate_save_path(
        urlsplit(res.redirected_url),
        res.type == ResourceType.HTML,
        options.keep_search,
        options.local_src_root,
    )
    return path if path != res.save_path else None


def _write(local_root, save_path, data, encoding, mtime) -> None:
    write_file(os.path.join(local_root, decode_uri(save_path)), data, encoding, mtime, root=local_root)


def save_html_to_disk(res: Resource, options: "Options", pipeline: "PipelineExecutor") -> Outcome:
    """Write Html; a redirected page also gets a redirect stub at its original path."""
    if res.type != ResourceType.HTML:
        return Continue(res)
    local_root = res.local_root or options.local_root
    mtime = _remote_mtime(res, options)
    body = resource_body(res)
    redirected = _redirected_save_path(res, options)
    if redirected:
        rel = escape_path(relative_path(redirected, res.save_path))
        _write(local_root, res.save_path, redirect_html(rel, res.encoding), res.encoding, mtime)
        _write(local_root, redirected, body, res.encoding, mtime)
    else:
        _write(local_root, res.save_path, body, res.encoding, mtime)
    pipeline.loggers.complete.info("%s %s", res.url, res.save_path)
    return Discard("saved")


def save_resource_to_disk(
    res: Resource, options: "Options", pipeline: "PipelineExecutor"
) -> Outcome:
    local_root = res.local_root or options.local_root
    mtime = _remote_mtime(res, options)
    body = resource_body(res)
    _write(local_root, res.save_path, body, res.encoding, mtime)
    redirected = _redirected_save_path(res, options)
    if redirected:
        _write(local_root, redirected, body, res.encoding, mtime)
    pipeline.loggers.complete.info("%s %s", res.url, res.save_path)
    return Discard("saved")
