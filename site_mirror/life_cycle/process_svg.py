from typing import TYPE_CHECKING

from ..resource import Resource, ResourceType
from ..sources import SVG_SOURCES
from .adapters import parse_html, serialize_html
from .process_html import discover_link
from .types import Continue, Outcome, SubmitFunc

if TYPE_CHECKING:
    from ..options import Options
    from ..pipeline import PipelineExecutor


def process_svg(
    res: Resource, submit: SubmitFunc, options: "Options", pipeline: "PipelineExecutor"
) -> Outcome:
    if res.type != ResourceType.SVG:
        return Continue(res)
    if res.meta.doc is None:
        res.meta.doc = parse_html(res, options)
    doc = res.meta.doc
    depth = res.depth + 1
    for source in SVG_SOURCES:
        # walk the tree instead of selecting: namespaced attributes of xml documents
        for elem in doc.find_all(True):
            value = elem.get(source.attr)
            if not value:
                continue
            replaced = discover_link(value, source.type, elem, res, pipeline, depth, submit)
            if replaced is not None:
                elem[source.attr] = replaced
    res.body = serialize_html(doc)
    return Continue(res)
