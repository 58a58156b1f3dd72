from typing import Any, Callable, Iterable, Optional, Sequence, Tuple

import requests

from .http import build_session
from .life_cycle.types import Continue, Discard, Element, LifeCycle, Replace, SubmitFunc
from .logger import Loggers
from .options import Options
from .resource import Resource, ResourceType


def _stage_name(stage: Any) -> str:
    return getattr(stage, "__qualname__", None) or getattr(stage, "__name__", None) or repr(stage)


class PipelineExecutor:
    """Runs resources through the stages of a LifeCycle.

    Stages of a phase run in registration order; the first ``Discard`` ends
    the phase. The stage lists are copied at construction and never changed.
    """

    def __init__(
        self,
        life_cycle: LifeCycle,
        options: Options,
        session: Optional[requests.Session] = None,
        loggers: Optional[Loggers] = None,
    ):
        self.life_cycle = life_cycle.copy()
        self.options = options
        self.loggers = loggers or Loggers()
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = build_session(self.options.req)
        return self._session

    def _run(
        self, phase: str, stages: Sequence[Callable[..., Any]], value: Any, call: Callable[[Any, Any], Any]
    ) -> Tuple[Any, bool]:
        for stage in stages:
            outcome = call(stage, value)
            if isinstance(outcome, Discard):
                self.loggers.skip.debug(
                    "%s: discarded by %s %s %s", phase, _stage_name(stage), outcome.reason, value
                )
                return None, True
            if not isinstance(outcome, (Continue, Replace)):
                raise TypeError(
                    f"{phase} stage {_stage_name(stage)} returned "
                    f"{type(outcome).__name__}, expected Continue, Replace or Discard"
                )
            value = outcome.value
        return value, False

    # -------------------- life cycle hooks --------------------

    def init(self, downloader: Any = None) -> None:
        for fn in self.life_cycle.init:
            fn(self, downloader)

    def dispose(self, downloader: Any = None, worker_info: Any = None, exit_code: Optional[int] = None) -> None:
        for fn in self.life_cycle.dispose:
            fn(self, downloader, worker_info, exit_code)

    # -------------------- discovery --------------------

    def link_redirect(self, url: str, element: Element, parent: Optional[Resource]) -> Optional[str]:
        value, _ = self._run(
            "link_redirect",
            self.life_cycle.link_redirect,
            url,
            lambda fn, u: fn(u, element, parent, self.options, self),
        )
        return value

    def detect_resource_type(
        self, url: str, type: ResourceType, element: Element, parent: Optional[Resource]
    ) -> Optional[ResourceType]:
        value, _ = self._run(
            "detect_resource_type",
            self.life_cycle.detect_resource_type,
            type,
            lambda fn, t: fn(url, t, element, parent, self.options, self),
        )
        return value

    def create_resource(
        self,
        type: ResourceType,
        depth: int,
        url: str,
        ref_url: str,
        local_root: Optional[str] = None,
        encoding: Optional[str] = None,
        ref_save_path: Optional[str] = None,
        ref_type: Optional[ResourceType] = None,
    ) -> Resource:
        o = self.options
        return self.life_cycle.create_resource(
            type=type,
            depth=depth,
            url=url,
            ref_url=ref_url,
            local_root=local_root or o.local_root,
            ref_save_path=ref_save_path,
            ref_type=ref_type,
            local_src_root=o.local_src_root,
            encoding=encoding if encoding is not None else o.encoding.get(type),
            keep_search=o.keep_search,
            skip_replace_path_error=o.skip_replace_path_error,
        )

    def process_before_download(
        self, res: Resource, element: Element, parent: Optional[Resource]
    ) -> Optional[Resource]:
        value, _ = self._run(
            "process_before_download",
            self.life_cycle.process_before_download,
            res,
            lambda fn, r: fn(r, element, parent, self.options, self),
        )
        return value

    def create_and_process_resource(
        self,
        raw_url: str,
        default_type: ResourceType,
        depth: Optional[int],
        element: Element,
        parent: Resource,
    ) -> Optional[Resource]:
        """Redirect, detect, create and pre-filter one link found in ``parent``."""
        url = self.link_redirect(raw_url, element, parent)
        if not url:
            self.loggers.skip.debug("skip link_redirect %s %s", raw_url, parent.url)
            return None
        type = self.detect_resource_type(url, default_type, element, parent)
        if not type:
            self.loggers.skip.debug("skip detect_resource_type %s %s", url, parent.url)
            return None
        ref_url = parent.redirected_url or parent.url
        ref_save_path = parent.save_path if ref_url == parent.url else parent.redirected_save_path
        res = self.create_resource(
            type,
            depth if depth is not None else parent.depth + 1,
            url,
            ref_url,
            parent.local_root,
            None,
            ref_save_path,
            parent.type,
        )
        processed = self.process_before_download(res, element, parent)
        if processed is None:
            self.loggers.skip.debug("skip process_before_download %s %s", url, parent.url)
        return processed

    # -------------------- fetch --------------------

    def download(self, res: Resource) -> Optional[Resource]:
        """Run the download chain until a stage produces a body.

        A resource which already has a body is returned untouched.
        """
        if res.should_be_discarded_from_download:
            return None
        if res.body is not None:
            return res
        for stage in self.life_cycle.download:
            outcome = stage(res, self.options, self)
            if isinstance(outcome, Discard):
                self.loggers.skip.debug(
                    "download: discarded by %s %s %s", _stage_name(stage), outcome.reason, res.url
                )
                return None
            if not isinstance(outcome, (Continue, Replace)):
                raise TypeError(
                    f"download stage {_stage_name(stage)} returned "
                    f"{type(outcome).__name__}, expected Continue, Replace or Discard"
                )
            res = outcome.value
            if res.body is not None:
                return res
        self.loggers.skip.debug("download: no body after download chain %s", res.url)
        return None

    # -------------------- post download --------------------

    def process_after_download(self, res: Resource, submit: SubmitFunc) -> Optional[Resource]:
        value, _ = self._run(
            "process_after_download",
            self.life_cycle.process_after_download,
            res,
            lambda fn, r: fn(r, submit, self.options, self),
        )
        return value

    def save_to_disk(self, res: Resource) -> Optional[Resource]:
        """Returns None once a stage handled the resource, the resource if none did."""
        value, handled = self._run(
            "save_to_disk",
            self.life_cycle.save_to_disk,
            res,
            lambda fn, r: fn(r, self.options, self),
        )
        return None if handled else value


def collect_into(bucket: list, transform: Optional[Callable[[Resource], Any]] = None) -> SubmitFunc:
    """A submit function appending resources to ``bucket``."""

    def submit(resources) -> None:
        items: Iterable[Resource] = (
            [resources] if isinstance(resources, Resource) else resources
        )
        for r in items:
            bucket.append(transform(r) if transform else r)

    return submit
