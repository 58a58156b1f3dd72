import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING, Dict, List

from ..resource import Resource, ResourceType
from .types import Continue, Outcome, SubmitFunc

if TYPE_CHECKING:
    from ..options import Options
    from ..pipeline import PipelineExecutor


def parse_site_map_urls(body) -> List[str]:
    """Unique <loc> urls of a urlset sitemap, in document order."""
    root = ET.fromstring(body)
    urls: Dict[str, None] = {}
    for loc in root.findall(".//{*}url/{*}loc"):
        u = (loc.text or "").strip()
        if u:
            urls.setdefault(u)
    return list(urls)


def process_site_map(
    res: Resource, submit: SubmitFunc, options: "Options", pipeline: "PipelineExecutor"
) -> Outcome:
    """Submit every page of a sitemap. The sitemap itself is saved unchanged."""
    if res.type != ResourceType.SITE_MAP:
        return Continue(res)
    try:
        urls = parse_site_map_urls(res.body)
    except ET.ParseError as e:
        pipeline.loggers.error.warning("invalid sitemap %s: %s", res.url, e)
        return Continue(res)
    depth = res.depth + 1
    resources: List[Resource] = []
    for url in urls:
        link = pipeline.link_redirect(url, None, res)
        if not link:
            continue
        type = pipeline.detect_resource_type(link, ResourceType.HTML, None, res)
        if not type:
            continue
        r = pipeline.create_resource(type, depth, link, res.url, res.local_root)
        r = pipeline.process_before_download(r, None, res)
        if r is None:
            continue
        if not r.should_be_discarded_from_download:
            resources.append(r)
    submit(resources)
    return Continue(res)
