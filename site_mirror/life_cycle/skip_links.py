from typing import TYPE_CHECKING, Dict, List, Optional

from ..resource import Resource
from .types import Continue, Discard, Element, Outcome

if TYPE_CHECKING:
    from ..options import Options
    from ..pipeline import PipelineExecutor

# subset of https://en.wikipedia.org/wiki/List_of_URI_schemes
UNPROCESSABLE_URI_SCHEMES = [
    # official IANA-registered schemes
    "about",
    "attachment",
    "blob",
    "cap",
    "chrome",
    "chrome-extension",
    "cid",
    "content",
    "cvs",
    "data",
    "dav",
    "dns",
    "drm",
    "ed2k",
    "example",
    "feed",
    "file",
    "filesystem",
    "ftp",
    "geo",
    "git",
    "icon",
    "im",
    "imap",
    "info",
    "ipn",
    "ipp",
    "ipps",
    "irc",
    "irc6",
    "ircs",
    "jar",
    "ldap",
    "ldaps",
    "magnet",
    "mailserver",
    "mailto",
    "maps",
    "market",
    "message",
    "mid",
    "mms",
    "modem",
    "ms-help",
    "ms-settings",
    "mvn",
    "news",
    "nfs",
    "oid",
    "pkcs11",
    "platform",
    "pop",
    "redis",
    "rediss",
    "res",
    "resource",
    "rmi",
    "rsync",
    "rtmfp",
    "rtmp",
    "rtsp",
    "s3",
    "service",
    "sftp",
    "shttp",
    "sip",
    "sips",
    "skype",
    "smb",
    "sms",
    "snews",
    "snmp",
    "spotify",
    "ssh",
    "steam",
    "svn",
    "tag",
    "tel",
    "telnet",
    "tftp",
    "udp",
    "unreal",
    "urn",
    "view-source",
    "vnc",
    "ws",
    "wss",
    "xri",
    # unofficial but common
    "admin",
    "app",
    "javascript",
    "jdbc",
    "odbc",
    "unix",
]

# first letter -> schemes
_SCHEMES_BY_INITIAL: Dict[str, List[str]] = {}
for _scheme in UNPROCESSABLE_URI_SCHEMES:
    _SCHEMES_BY_INITIAL.setdefault(_scheme[0], []).append(_scheme)


def is_unprocessable_link(url: str, allow_file: bool = False) -> bool:
    if not url or url.startswith("#"):
        return True
    for scheme in _SCHEMES_BY_INITIAL.get(url[0].lower(), ()):
        n = len(scheme)
        if len(url) > n and url[n] == ":" and url[:n].lower() == scheme:
            return not (allow_file and scheme == "file")
    return False


def skip_links(
    url: str,
    element: Element,
    parent: Optional[Resource],
    options: "Options",
    pipeline: "PipelineExecutor",
) -> Outcome:
    """Skip fragment-only links and links with an unprocessable scheme."""
    # file urls are mirrored only from a configured local source root
    if is_unprocessable_link(url, allow_file=bool(options.local_src_root)):
        return Discard("unprocessable link")
    return Continue(url)
