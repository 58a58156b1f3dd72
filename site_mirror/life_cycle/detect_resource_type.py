from typing import TYPE_CHECKING, Optional
from urllib.parse import urlsplit

from ..resource import Resource, ResourceType
from ..util import is_site_map
from .types import Continue, Element, Outcome

if TYPE_CHECKING:
    from ..options import Options
    from ..pipeline import PipelineExecutor

BINARY_EXTENSIONS = frozenset(
    [
        "gif", "jpg", "jpeg", "png",
        "svg",
        "js", "jsm", "json", "txt",
        "woff2", "ttf", "ttc",
        "xul",
        "jar", "zip", "rar", "7z", "tar", "gz", "bz2", "xz",
        "mp3", "ogg",
        "mp4", "flv", "m4v", "mkv", "webm",
        "msi",
        "xpi",
        "rdf",
        "pdf",
        "dia",
        "eot",
        "psd",
    ]
)


def url_extension(url: str) -> str:
    """Lower-cased extension of the last path segment, without the dot."""
    path = urlsplit(url).path
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def guess_resource_type(url: str, type: ResourceType) -> ResourceType:
    if is_site_map(url):
        return ResourceType.SITE_MAP
    if type == ResourceType.HTML:
        ext = url_extension(url)
        if ext in BINARY_EXTENSIONS:
            return ResourceType.BINARY
        if ext == "css":
            return ResourceType.CSS
    return type


def detect_resource_type(
    url: str,
    type: ResourceType,
    element: Element,
    parent: Optional[Resource],
    options: "Options",
    pipeline: "PipelineExecutor",
) -> Outcome:
    return Continue(guess_resource_type(url, type))
