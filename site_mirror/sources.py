from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Union

from .resource import ResourceType


@dataclass(frozen=True)
class SourceDefinition:
    selector: str
    attr: Optional[str] = None
    type: ResourceType = ResourceType.BINARY


def _source(
    selector: str, attr: Optional[str] = None, type: ResourceType = ResourceType.BINARY
) -> SourceDefinition:
    # restrict to elements which carry the attribute, except inside svg
    if attr and not selector.startswith("svg"):
        selector += f"[{attr}]"
    return SourceDefinition(selector, attr, type)


DEFAULT_SOURCES: List[SourceDefinition] = [
    SourceDefinition("style", None, ResourceType.CSS_INLINE),
    SourceDefinition("[style]", "style", ResourceType.CSS_INLINE),
    _source("img", "src"),
    _source("img", "srcset"),
    _source("input", "src"),
    _source("object", "data"),
    _source("embed", "src"),
    _source('param[name="movie"]', "value"),
    _source("script", "src"),
    _source('link[rel="stylesheet"]', "href", ResourceType.CSS),
    _source('link[rel*="icon"]', "href"),
    _source('link[rel*="preload"]', "href"),
    _source(r"svg *[xlink\:href]", "xlink:href"),
    _source("svg *[href]", "href"),
    _source("picture source", "srcset"),
    _source('meta[property="og:image"]', "content"),
    _source('meta[property="og:image:url"]', "content"),
    _source('meta[property="og:image:secure_url"]', "content"),
    _source('meta[property="og:audio"]', "content"),
    _source('meta[property="og:audio:url"]', "content"),
    _source('meta[property="og:audio:secure_url"]', "content"),
    _source('meta[property="og:video"]', "content"),
    _source('meta[property="og:video:url"]', "content"),
    _source('meta[property="og:video:secure_url"]', "content"),
    _source("video", "src"),
    _source("video source", "src"),
    _source("video track", "src"),
    _source("audio", "src"),
    _source("audio source", "src"),
    _source("audio track", "src"),
    _source("frame", "src", ResourceType.HTML),
    _source("iframe", "src", ResourceType.HTML),
    _source("a", "href", ResourceType.HTML),
    _source("[background]", "background"),
]

SVG_SOURCES: List[SourceDefinition] = [
    SourceDefinition(r"*[xlink\:href]", "xlink:href", ResourceType.BINARY),
    SourceDefinition("*[href]", "href", ResourceType.BINARY),
]


def parse_resource_type(value: Union[str, int, ResourceType]) -> ResourceType:
    if isinstance(value, ResourceType):
        return value
    if isinstance(value, int):
        return ResourceType(value)
    key = value.strip().upper().replace("-", "_")
    # CssInline / SiteMap / StreamingBinary spellings
    aliases = {"CSSINLINE": "CSS_INLINE", "SITEMAP": "SITE_MAP", "STREAMINGBINARY": "STREAMING_BINARY"}
    return ResourceType[aliases.get(key, key)]


def load_sources(items: Iterable[Union[SourceDefinition, Mapping[str, Any]]]) -> List[SourceDefinition]:
    """Source definitions from config mappings like ``{selector, attr, type}``."""
    out: List[SourceDefinition] = []
    for item in items:
        if isinstance(item, SourceDefinition):
            out.append(item)
            continue
        out.append(
            SourceDefinition(
                selector=item["selector"],
                attr=item.get("attr"),
                type=parse_resource_type(item.get("type", ResourceType.BINARY)),
            )
        )
    return out
