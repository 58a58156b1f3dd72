import copy
import dataclasses
import importlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import OptionsError
from .resource import ResourceType
from .sources import SourceDefinition, load_sources, parse_resource_type

# -------------------- Config --------------------

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.7",
}

# grouped tables of a config file, flattened into one mapping
CONFIG_GROUPS = ("crawl", "worker", "request", "general")

# keys of the request group which belong to Options.req
REQUEST_KEYS = {
    "headers",
    "timeout",
    "retry_limit",
    "backoff_factor",
    "max_redirects",
    "status_forcelist",
    "verify",
}


def default_encoding() -> Dict[ResourceType, Optional[str]]:
    return {
        ResourceType.BINARY: None,
        ResourceType.HTML: "utf-8",
        ResourceType.CSS: "utf-8",
        ResourceType.CSS_INLINE: "utf-8",
        ResourceType.SITE_MAP: "utf-8",
        ResourceType.SVG: "utf-8",
        ResourceType.STREAMING_BINARY: None,
    }


# -------------------- Settings --------------------


@dataclass
class RequestOptions:
    headers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))
    timeout: float = 30.0
    retry_limit: int = 5
    backoff_factor: float = 0.5
    max_redirects: int = 30
    status_forcelist: List[int] = field(default_factory=lambda: [429, 500, 502, 503, 504])
    verify: bool = True


@dataclass
class Options:
    """Run options. Plain values only, so a copy can be sent to worker processes."""

    local_root: str = ""
    local_src_root: Optional[str] = None
    max_depth: int = 1
    concurrency: int = 12
    min_concurrency: int = 4
    max_concurrency: int = 64
    worker_count: Optional[int] = None
    encoding: Dict[ResourceType, Optional[str]] = field(default_factory=default_encoding)
    # strip the search for deduplication; False keeps it in file names
    deduplicate_strip_search: bool = True
    skip_replace_path_error: bool = False
    initial_url: List[str] = field(default_factory=list)
    log_sub_dir: Optional[str] = None
    # seconds, 0 disables the controller
    adjust_concurrency_period: float = 60.0
    sources: Optional[List[SourceDefinition]] = None
    html_parser: str = "lxml"
    detect_incomplete_html: Optional[str] = "</html>"
    prefer_remote_last_modified_time: bool = False
    # fetch threads wait while the worker pool has more pending tasks than this
    max_pending_tasks: Optional[int] = None
    worker_start_method: str = "spawn"
    # "package.module:factory" returning a LifeCycle
    life_cycle: Optional[str] = None
    req: RequestOptions = field(default_factory=RequestOptions)
    # extra values for custom stages
    meta: Dict[str, Union[str, int, float, bool, None]] = field(default_factory=dict)

    @property
    def keep_search(self) -> bool:
        return not self.deduplicate_strip_search


def check_options(options: Options) -> Options:
    if not options.local_root:
        raise OptionsError("local_root is required")
    if options.concurrency < 1:
        raise OptionsError(f"concurrency must be >= 1, got {options.concurrency}")
    if options.min_concurrency < 1:
        raise OptionsError(f"min_concurrency must be >= 1, got {options.min_concurrency}")
    if options.max_concurrency < options.concurrency:
        options.max_concurrency = options.concurrency
    if options.max_depth < 0:
        raise OptionsError(f"max_depth must be >= 0, got {options.max_depth}")
    if options.worker_count is not None and options.worker_count < 1:
        raise OptionsError(f"worker_count must be >= 1, got {options.worker_count}")
    if options.local_src_root:
        options.local_src_root = options.local_src_root.replace("\\", "/")
    for t in ResourceType:
        options.encoding.setdefault(t, default_encoding()[t])
    return options


def _request_options(base: RequestOptions, value: Mapping[str, Any]) -> RequestOptions:
    req = copy.deepcopy(base)
    for k, v in value.items():
        if k == "headers":
            req.headers.update(v or {})
        elif hasattr(req, k):
            setattr(req, k, v)
        else:
            raise OptionsError(f"unknown request option: {k}")
    return req


def merge_override_options(options: Options, overrides: Optional[Mapping[str, Any]]) -> Options:
    """Copy of ``options`` with ``overrides`` applied; ``req`` and ``meta`` are merged."""
    merged = copy.deepcopy(options)
    if not overrides:
        return check_options(merged)
    names = {f.name for f in dataclasses.fields(Options)}
    for k, v in overrides.items():
        if k == "req":
            if isinstance(v, RequestOptions):
                v = dataclasses.asdict(v)
            merged.req = _request_options(merged.req, v)
        elif k == "meta":
            merged.meta.update(v or {})
        elif k == "encoding":
            enc = dict(merged.encoding)
            enc.update({parse_resource_type(t): e or None for t, e in v.items()})
            merged.encoding = enc
        elif k == "sources":
            merged.sources = load_sources(v) if v is not None else None
        elif k == "initial_url":
            merged.initial_url = [v] if isinstance(v, str) else list(v)
        elif k in names:
            setattr(merged, k, v)
        else:
            raise OptionsError(f"unknown option: {k}")
    return check_options(merged)


# -------------------- Config loader --------------------


def load_config_file(path: str) -> Dict[str, Any]:
    p = Path(path)
    suf = p.suffix.lower()
    if suf in {".toml", ".tml"}:
        try:
            import tomllib  # py311+
        except ImportError:
            import tomli as tomllib  # backport
        with open(p, "rb") as f:
            return tomllib.load(f) or {}
    elif suf in {".yaml", ".yml"}:
        import yaml

        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise OptionsError("Top-level YAML must be a mapping")
            return data
    else:
        raise OptionsError("Unsupported config format. Use .toml or .yaml")


def flatten_config(cfg: Mapping[str, Any]) -> Dict[str, Any]:
    flat = {k: v for k, v in cfg.items() if k not in CONFIG_GROUPS}
    for g in CONFIG_GROUPS:
        group = cfg.get(g)
        if not isinstance(group, dict):
            continue
        if g == "request":
            req = dict(flat.get("req") or {})
            for k, v in group.items():
                if k in REQUEST_KEYS:
                    req[k] = v
                else:
                    flat[k] = v
            flat["req"] = req
        else:
            flat.update(group)
    return flat


def options_from_config(path: str, overrides: Optional[Mapping[str, Any]] = None) -> Options:
    cfg = flatten_config(load_config_file(path))
    logging.debug("config %s: %s", path, sorted(cfg))
    for k, v in (overrides or {}).items():
        if k in ("req", "meta") and isinstance(cfg.get(k), dict):
            cfg[k] = {**cfg[k], **v}
        else:
            cfg[k] = v
    return merge_override_options(Options(), cfg)


def load_life_cycle(spec: str):
    """Import ``"package.module:factory"`` and call the factory."""
    if ":" not in spec:
        raise OptionsError(f"life cycle must look like 'package.module:factory', got {spec!r}")
    module_name, attr = spec.split(":", 1)
    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attr)
    except AttributeError:
        raise OptionsError(f"{module_name} has no attribute {attr}") from None
    return factory() if callable(factory) else factory
