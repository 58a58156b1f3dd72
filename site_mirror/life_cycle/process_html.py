import re
from typing import TYPE_CHECKING, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Stylesheet

from ..resource import Resource, ResourceType
from ..sources import DEFAULT_SOURCES
from .adapters import bs4_parse, parse_html, serialize_html
from .process_css import process_css_text
from .types import Continue, Element, Outcome, SubmitFunc

if TYPE_CHECKING:
    from ..options import Options
    from ..pipeline import PipelineExecutor

SRCSET_SPLIT_RE = re.compile(r"\s*,\s*")
WS_RE = re.compile(r"\s+")

# https://github.com/stevenvachon/http-equiv-refresh
META_REFRESH_RE = re.compile(
    r"^\s*(\d+)(?:\s*;(?:\s*url\s*=)?\s*(?:[\"']\s*(.*?)\s*['\"]|(.*?)))?\s*$",
    re.IGNORECASE,
)


def parse_srcset(v: str) -> List[Tuple[str, str]]:
    """'a.png 1x, b.png 2x' -> [('a.png', '1x'), ('b.png', '2x')]"""
    out: List[Tuple[str, str]] = []
    if not v:
        return out
    for cand in SRCSET_SPLIT_RE.split(v.strip()):
        if not cand:
            continue
        parts = WS_RE.split(cand.strip(), 1)
        out.append((parts[0], parts[1] if len(parts) > 1 else ""))
    return out


def stringify_srcset(parts: List[Tuple[str, str]]) -> str:
    return ", ".join(f"{u} {d}".strip() for u, d in parts)


def _replace_value(res: Resource) -> str:
    value = res.replace_path
    # historical workaround for links to the site root
    if value in (".html", "/.html"):
        return ""
    return value


def discover_link(
    link: str,
    type: ResourceType,
    elem: Element,
    res: Resource,
    pipeline: "PipelineExecutor",
    depth: int,
    submit: SubmitFunc,
) -> Optional[str]:
    if not link:
        return None
    r = pipeline.create_and_process_resource(link, type, depth, elem, res)
    if r is None:
        return None
    if not r.should_be_discarded_from_download:
        submit(r)
    return _replace_value(r)


def process_html_doc(
    doc: BeautifulSoup,
    res: Resource,
    options: "Options",
    pipeline: "PipelineExecutor",
    depth: int,
    resources: List[Resource],
    submit: SubmitFunc,
) -> None:
    sources = options.sources or DEFAULT_SOURCES
    for source in sources:
        selector, attr, type = source.selector, source.attr, source.type
        for elem in doc.select(selector):
            value = elem.get(attr) if attr else None
            if not value:
                # style block
                if type == ResourceType.CSS_INLINE and elem.string:
                    css = str(elem.string)
                    new_css = process_css_text(css, res, pipeline, depth, resources)
                    if new_css != css:
                        elem.string.replace_with(Stylesheet(new_css))
                continue
            if type == ResourceType.CSS_INLINE:
                elem[attr] = process_css_text(value, res, pipeline, depth, resources)
                continue
            if attr == "srcset":
                parts = parse_srcset(value)
                for i, (u, d) in enumerate(parts):
                    replaced = discover_link(u, type, elem, res, pipeline, depth, submit)
                    if replaced is not None:
                        parts[i] = (replaced, d)
                elem[attr] = stringify_srcset(parts)
                continue
            replaced = discover_link(value, type, elem, res, pipeline, depth, submit)
            if replaced is not None:
                elem[attr] = replaced

    for elem in doc.select("iframe[srcdoc]"):
        src_doc = elem.get("srcdoc")
        if not src_doc:
            continue
        iframe_doc = bs4_parse(src_doc, options.html_parser)
        process_html_doc(iframe_doc, res, options, pipeline, depth, resources, submit)
        elem["srcdoc"] = serialize_html(iframe_doc)


def process_html(
    res: Resource, submit: SubmitFunc, options: "Options", pipeline: "PipelineExecutor"
) -> Outcome:
    if res.type != ResourceType.HTML:
        return Continue(res)
    if res.meta.doc is None:
        res.meta.doc = parse_html(res, options)
    # resources from inline css
    resources: List[Resource] = []
    process_html_doc(res.meta.doc, res, options, pipeline, res.depth + 1, resources, submit)
    if resources:
        submit(resources)
    return Continue(res)


def process_html_meta_refresh(
    res: Resource, submit: SubmitFunc, options: "Options", pipeline: "PipelineExecutor"
) -> Outcome:
    """Rewrite the target of <meta http-equiv="refresh"> tags."""
    if res.type != ResourceType.HTML:
        return Continue(res)
    if res.meta.doc is None:
        res.meta.doc = parse_html(res, options)
    for elem in res.meta.doc.select('meta[http-equiv="refresh"][content]'):
        content = elem.get("content")
        m = META_REFRESH_RE.match(content or "")
        if not m:
            continue
        link = m.group(2) or m.group(3)
        if not link:
            continue
        replaced = discover_link(link, ResourceType.HTML, elem, res, pipeline, res.depth + 1, submit)
        if replaced is not None:
            elem["content"] = content.replace(link, replaced, 1)
    return Continue(res)
