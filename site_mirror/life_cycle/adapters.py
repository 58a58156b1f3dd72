"""Builders turning small predicates and hooks into life cycle stages.

Stages built here are closures; a downloader running them in worker
processes must get its LifeCycle from an importable factory
(``Options.life_cycle``).
"""
from typing import TYPE_CHECKING, Callable, Optional

from bs4 import BeautifulSoup, FeatureNotFound

from ..resource import Resource, ResourceType
from ..util import to_text
from .types import Continue, Discard, Element, Outcome, SubmitFunc

if TYPE_CHECKING:
    from ..options import Options
    from ..pipeline import PipelineExecutor

# -------------------- HTML utils --------------------


def bs4_parse(text: str, parser: str = "lxml") -> BeautifulSoup:
    try:
        return BeautifulSoup(text, parser)
    except FeatureNotFound:
        return BeautifulSoup(text, "html.parser")


def parse_html(res: Resource, options) -> BeautifulSoup:
    encoding = res.encoding or options.encoding.get(res.type) or "utf-8"
    parser = options.html_parser
    if res.type == ResourceType.SVG:
        # keep the case of svg attributes such as viewBox
        parser = "xml"
    return bs4_parse(to_text(res.body, encoding), parser)


def serialize_html(soup: BeautifulSoup) -> str:
    if soup.is_xml:
        return soup.decode(formatter="minimal")
    return soup.decode(formatter="html")


# -------------------- Stage builders --------------------


def skip_process(fn: Callable[[str, Element, Optional[Resource]], bool]):
    """Link redirect stage skipping every url ``fn`` returns True for."""

    def stage(url, element, parent, options, pipeline):
        if fn(url, element, parent):
            return Discard("skip_process")
        return Continue(url)

    return stage


def drop_resource(fn: Callable[[Resource], bool]):
    """Keep the link rewritten but never download resources ``fn`` matches."""

    def stage(res, element, parent, options, pipeline):
        if fn(res):
            res.should_be_discarded_from_download = True
        return Continue(res)

    return stage


def pre_process(fn: Callable[[str, Element, Resource, Optional[Resource]], None]):
    def stage(res, element, parent, options, pipeline):
        fn(res.url, element, res, parent)
        return Continue(res)

    return stage


def request_redirect(fn: Callable[[str, Resource], Optional[str]]):
    """Rewrite the download link; a falsy result discards the resource."""

    def stage(res, element, parent, options, pipeline):
        if res.download_link:
            link = fn(res.download_link, res)
            if not link:
                return Discard("request_redirect")
            res.download_link = link
        return Continue(res)

    return stage


def redirect_filter(fn: Callable[[str, Resource], Optional[str]]):
    def stage(res, submit, options, pipeline):
        if res.redirected_url:
            res.redirected_url = fn(res.redirected_url, res) or None
        return Continue(res)

    return stage


def html_processor(fn: Callable[[BeautifulSoup, Resource], BeautifulSoup]):
    """Post-download stage handing the parsed document of Html resources to ``fn``."""

    def stage(res, submit, options, pipeline):
        if res.type == ResourceType.HTML:
            if res.meta.doc is None:
                res.meta.doc = parse_html(res, options)
            res.meta.doc = fn(res.meta.doc, res)
        return Continue(res)

    return stage


def process_redirected_url(
    res: Resource, submit: SubmitFunc, options: "Options", pipeline: "PipelineExecutor"
) -> Outcome:
    """Let the discovery stages see the url a download was redirected to."""
    if res.redirected_url:
        redirected = pipeline.create_and_process_resource(
            res.redirected_url, res.type, res.depth, None, res
        )
        if redirected is not None:
            res.redirected_url = redirected.url
    return Continue(res)
