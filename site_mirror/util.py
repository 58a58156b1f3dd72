import base64
import hashlib
import posixpath
import re
from typing import Optional, Union

# characters which are not allowed in file names on at least one common platform
FORBIDDEN_CHARS_RE = re.compile(r'[:*?"<>|&]|%(?:3A|2A|3F|22|3C|3E|7C|26)', re.IGNORECASE)
PERCENT_RUN_RE = re.compile(r"(?:%[0-9A-Fa-f]{2})+")
ENCODED_DOT_RE = re.compile(r"%2e", re.IGNORECASE)
# decodeURI keeps these encoded
URI_RESERVED = set(";/?:@&=+$,#")

FILE_PROTOCOL_PREFIX = "file:///"


def escape_path(s: str) -> str:
    if not s:
        return s
    return FORBIDDEN_CHARS_RE.sub("_", s)


def order_url_search(search: str) -> str:
    """'?b=2&a=1&b=2' -> '_a=1_b=2'"""
    if search.startswith("?"):
        search = search[1:]
    pairs = sorted({p for p in search.split("&") if p})
    if not pairs:
        return ""
    return "_" + "_".join(pairs)


def simple_hash_string(s: str) -> str:
    digest = hashlib.sha256(s.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def is_site_map(url: Optional[str]) -> bool:
    if not url:
        return False
    return "/sitemaps/" in url and (
        url.endswith("sitemap.xml") or url.endswith("sitemap_other.xml")
    )


def is_url_http(url: str) -> bool:
    u = url[:8].lower()
    return u.startswith("http://") or u.startswith("https://")


def normalize_url_path(path: str) -> str:
    """Resolve dot segments, encoded ones included. Never climbs above "/"."""
    if not path:
        return "/"
    path = ENCODED_DOT_RE.sub(".", path)
    trailing = path.endswith("/")
    path = "/" + path.lstrip("/")
    norm = posixpath.normpath(path)
    if trailing and not norm.endswith("/"):
        norm += "/"
    return norm


def relative_path(target: str, base: str) -> str:
    """Relative reference from the file ``base`` to ``target``, both '/'-separated."""
    if target == base:
        return ""
    t_parts = target.split("/")
    b_dirs = base.split("/")[:-1]
    i = 0
    while i < len(b_dirs) and i < len(t_parts) - 1 and b_dirs[i] == t_parts[i]:
        i += 1
    rel = "../" * (len(b_dirs) - i) + "/".join(t_parts[i:])
    return rel or "./"


def decode_uri(s: str) -> str:
    def repl(m: re.Match) -> str:
        seq = m.group(0)
        try:
            text = bytes.fromhex(seq.replace("%", "")).decode("utf-8")
        except UnicodeDecodeError:
            return seq
        out = []
        for ch in text:
            if ch in URI_RESERVED:
                out.append("%%%02X" % ord(ch))
            else:
                out.append(ch)
        return "".join(out)

    return PERCENT_RUN_RE.sub(repl, s)


def to_text(body: Union[str, bytes, bytearray, memoryview, None], encoding: Optional[str]) -> str:
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    return bytes(body).decode(encoding or "utf-8", errors="replace")
