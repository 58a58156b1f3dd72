"""Post-download processing, shared by the in-process and the worker-pool downloaders."""
import functools
import traceback
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

from ..errors import RemoteTaskError
from ..life_cycle import LifeCycle, default_life_cycle
from ..options import Options, load_life_cycle
from ..pipeline import PipelineExecutor, collect_into
from ..resource import RawResource, normalize_resource, prepare_resource_for_clone


@dataclass
class WorkerOutcome:
    # resources discovered while processing, to be queued by the downloader
    body: List[RawResource] = field(default_factory=list)
    error: Optional[BaseException] = None
    redirected_url: Optional[str] = None


def run_post_download(
    pipeline: PipelineExecutor,
    res: RawResource,
    transform: Optional[Callable[[RawResource], RawResource]] = None,
) -> WorkerOutcome:
    """process_after_download then save_to_disk for one downloaded resource.

    Children submitted before a failure are still returned.
    """
    outcome = WorkerOutcome()
    submit = collect_into(outcome.body, transform)
    resource = normalize_resource(res)
    try:
        processed = pipeline.process_after_download(resource, submit)
        if processed is None:
            pipeline.loggers.skip.warning("skipped downloaded resource %s", resource.url)
            return outcome
        if pipeline.save_to_disk(processed) is not None:
            pipeline.loggers.skip.warning("downloaded resource not saved %s", processed.url)
        if processed.redirected_url and processed.redirected_url != processed.url:
            outcome.redirected_url = processed.redirected_url
    except Exception as e:
        outcome.error = e
    return outcome


def process_resource_task(
    pipeline: PipelineExecutor, res: RawResource, data: Optional[bytes] = None
) -> WorkerOutcome:
    """Task handler of a worker context. ``data`` is the body sent as a byte frame."""
    if data is not None:
        res.body = data
    outcome = run_post_download(pipeline, res, prepare_resource_for_clone)
    if outcome.error is not None:
        tb = "".join(
            traceback.format_exception(type(outcome.error), outcome.error, outcome.error.__traceback__)
        )
        outcome.error = RemoteTaskError.from_exception(outcome.error, tb)
    return outcome


def init_worker(options: Options, life_cycle: Union[str, LifeCycle, None] = None):
    """Build the pipeline of one worker context and return its task handler."""
    if isinstance(life_cycle, str):
        life_cycle = load_life_cycle(life_cycle)
    elif life_cycle is None:
        life_cycle = load_life_cycle(options.life_cycle) if options.life_cycle else default_life_cycle()
    pipeline = PipelineExecutor(life_cycle, options)
    pipeline.init()
    return functools.partial(process_resource_task, pipeline)
