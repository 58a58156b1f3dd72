import re
from typing import TYPE_CHECKING, Dict, List, Optional

from ..resource import Resource, ResourceType
from ..util import to_text
from .types import Continue, Outcome, SubmitFunc

if TYPE_CHECKING:
    from ..options import Options
    from ..pipeline import PipelineExecutor

CSS_URL_RE = re.compile(r"url\(\s*([\"']?)([^)\"']+)\1\s*\)", re.IGNORECASE)
# url(...) imports are matched by CSS_URL_RE
CSS_IMPORT_RE = re.compile(r"@import\s+([\"'])([^\"']+)\1", re.IGNORECASE)


def process_css_text(
    css_text: str,
    res: Resource,
    pipeline: "PipelineExecutor",
    depth: int,
    resources: List[Resource],
) -> str:
    """Replace every url in ``css_text`` by its replace path.

    Resources to download are appended to ``resources``.
    """
    replaced: Dict[str, Optional[str]] = {}

    def map_url(u: str) -> Optional[str]:
        if u not in replaced:
            r = pipeline.create_and_process_resource(u, ResourceType.BINARY, depth, None, res)
            if r is None:
                replaced[u] = None
            else:
                if not r.should_be_discarded_from_download:
                    resources.append(r)
                replaced[u] = r.replace_path
        return replaced[u]

    def repl_url(m: re.Match) -> str:
        q = m.group(1) or ""
        nu = map_url(m.group(2).strip())
        if nu is None:
            return m.group(0)
        return f"url({q}{nu}{q})"

    def repl_import(m: re.Match) -> str:
        q = m.group(1)
        nu = map_url(m.group(2).strip())
        if nu is None:
            return m.group(0)
        return f"@import {q}{nu}{q}"

    t = CSS_URL_RE.sub(repl_url, css_text)
    t = CSS_IMPORT_RE.sub(repl_import, t)
    return t


def process_css(
    res: Resource, submit: SubmitFunc, options: "Options", pipeline: "PipelineExecutor"
) -> Outcome:
    if res.type != ResourceType.CSS:
        return Continue(res)
    resources: List[Resource] = []
    text = to_text(res.body, res.encoding or options.encoding.get(ResourceType.CSS))
    res.body = process_css_text(text, res, pipeline, res.depth + 1, resources)
    res.meta.css_processed = True
    submit(resources)
    return Continue(res)
