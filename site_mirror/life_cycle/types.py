"""Stage contracts of the processing life cycle.

Every stage returns an outcome:

* ``Continue(value)``: go on with ``value`` (possibly mutated in place)
* ``Replace(value)``: go on with a different object
* ``Discard(reason)``: stop the phase, the resource is dropped

For the persist phase ``Discard`` means the resource has been handled.
"""
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Generic,
    Iterable,
    List,
    Optional,
    Protocol,
    TypeVar,
    Union,
)

from ..resource import Resource, ResourceType, create_resource

if TYPE_CHECKING:
    from ..options import Options
    from ..pipeline import PipelineExecutor

T = TypeVar("T")


@dataclass(frozen=True)
class Continue(Generic[T]):
    value: T


@dataclass(frozen=True)
class Replace(Generic[T]):
    value: T


@dataclass(frozen=True)
class Discard:
    reason: str = ""


Outcome = Union[Continue, Replace, Discard]

# a bs4 Tag the link was found in, or None
Element = Any


class SubmitFunc(Protocol):
    def __call__(self, resources: Union[Resource, Iterable[Resource]]) -> None: ...


class InitFunc(Protocol):
    def __call__(self, pipeline: "PipelineExecutor", downloader: Any = None) -> None: ...


class LinkRedirectFunc(Protocol):
    def __call__(
        self,
        url: str,
        element: Element,
        parent: Optional[Resource],
        options: "Options",
        pipeline: "PipelineExecutor",
    ) -> Outcome: ...


class DetectResourceTypeFunc(Protocol):
    def __call__(
        self,
        url: str,
        type: ResourceType,
        element: Element,
        parent: Optional[Resource],
        options: "Options",
        pipeline: "PipelineExecutor",
    ) -> Outcome: ...


class ProcessBeforeDownloadFunc(Protocol):
    def __call__(
        self,
        res: Resource,
        element: Element,
        parent: Optional[Resource],
        options: "Options",
        pipeline: "PipelineExecutor",
    ) -> Outcome: ...


class DownloadFunc(Protocol):
    """Fetch the body. A resource leaving the chain without a body is discarded.

    Stages that persist the resource themselves return ``Discard``.
    """

    def __call__(self, res: Resource, options: "Options", pipeline: "PipelineExecutor") -> Outcome: ...


class ProcessAfterDownloadFunc(Protocol):
    def __call__(
        self,
        res: Resource,
        submit: SubmitFunc,
        options: "Options",
        pipeline: "PipelineExecutor",
    ) -> Outcome: ...


class SaveToDiskFunc(Protocol):
    def __call__(self, res: Resource, options: "Options", pipeline: "PipelineExecutor") -> Outcome: ...


class DisposeFunc(Protocol):
    def __call__(
        self,
        pipeline: "PipelineExecutor",
        downloader: Any,
        worker_info: Any = None,
        exit_code: Optional[int] = None,
    ) -> None: ...


@dataclass
class LifeCycle:
    init: List[InitFunc] = field(default_factory=list)
    link_redirect: List[LinkRedirectFunc] = field(default_factory=list)
    detect_resource_type: List[DetectResourceTypeFunc] = field(default_factory=list)
    create_resource: Callable[..., Resource] = create_resource
    # links in the parent are replaced after this phase
    process_before_download: List[ProcessBeforeDownloadFunc] = field(default_factory=list)
    # the only phase run by the fetch threads
    download: List[DownloadFunc] = field(default_factory=list)
    process_after_download: List[ProcessAfterDownloadFunc] = field(default_factory=list)
    save_to_disk: List[SaveToDiskFunc] = field(default_factory=list)
    dispose: List[DisposeFunc] = field(default_factory=list)

    def copy(self) -> "LifeCycle":
        return LifeCycle(
            init=list(self.init),
            link_redirect=list(self.link_redirect),
            detect_resource_type=list(self.detect_resource_type),
            create_resource=self.create_resource,
            process_before_download=list(self.process_before_download),
            download=list(self.download),
            process_after_download=list(self.process_after_download),
            save_to_disk=list(self.save_to_disk),
            dispose=list(self.dispose),
        )
