"""Mirror a site tree to local disk, rewriting links so it browses offline."""

__version__ = "0.1.0"

from .downloader import MultiProcessDownloader, SingleThreadDownloader
from .errors import MirrorError, OptionsError, PathResolutionError
from .life_cycle import Continue, Discard, LifeCycle, Replace, default_life_cycle
from .options import Options, RequestOptions
from .pipeline import PipelineExecutor
from .resource import RawResource, Resource, ResourceType, create_resource

__all__ = [
    "Continue",
    "Discard",
    "LifeCycle",
    "MirrorError",
    "MultiProcessDownloader",
    "Options",
    "OptionsError",
    "PathResolutionError",
    "PipelineExecutor",
    "RawResource",
    "Replace",
    "RequestOptions",
    "Resource",
    "ResourceType",
    "SingleThreadDownloader",
    "create_resource",
    "default_life_cycle",
]
