import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from .downloader import MultiProcessDownloader, SingleThreadDownloader
from .errors import MirrorError, OptionsError
from .options import Options, flatten_config, load_config_file, merge_override_options
from .util import FILE_PROTOCOL_PREFIX, is_url_http

# argparse destinations which map onto Options fields
OPTION_DESTS = (
    "local_root",
    "max_depth",
    "concurrency",
    "worker_count",
    "skip_replace_path_error",
    "adjust_concurrency_period",
    "local_src_root",
    "life_cycle",
)


# -------------------- CLI --------------------


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="site-mirror",
        description="Mirror a site to a local directory which browses offline.",
        add_help=True,
    )
    p.add_argument("--config", type=str, help="path to config.toml|.yaml", default=None)

    p.add_argument("urls", nargs="*", help="start URL(s), http(s) or a sitemap")
    p.add_argument("-o", "--output", dest="local_root", type=str, default=None, help="output directory")
    p.add_argument("--max-depth", type=int, default=None, help="max link depth")
    p.add_argument("--concurrency", type=int, default=None, help="concurrent downloads")
    p.add_argument("--workers", dest="worker_count", type=int, default=None, help="worker processes")
    p.add_argument(
        "--single-process", action="store_true", help="process downloads in this process"
    )
    p.add_argument(
        "--keep-search", action="store_true", default=None, help="keep ?search in file names"
    )
    p.add_argument(
        "--skip-replace-path-error",
        action="store_true",
        default=None,
        help="skip links whose local path can not be resolved",
    )
    p.add_argument(
        "--adjust-period",
        dest="adjust_concurrency_period",
        type=float,
        default=None,
        help="seconds between concurrency adjustments, 0 disables",
    )
    p.add_argument(
        "--local-src-root", type=str, default=None, help="directory served by file:// links"
    )
    p.add_argument(
        "--life-cycle", type=str, default=None, help="life cycle factory, package.module:factory"
    )
    p.add_argument("--verbose", action="store_true", help="debug logging")
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_arg_parser()
    preliminary, _ = parser.parse_known_args(argv)
    flat: Dict[str, Any] = {}
    if preliminary.config:
        flat = flatten_config(load_config_file(preliminary.config))
        parser.set_defaults(**{k: v for k, v in flat.items() if k in OPTION_DESTS})
    args = parser.parse_args(argv)
    args.config_values = flat
    return args


def build_options(args: argparse.Namespace) -> Options:
    overrides: Dict[str, Any] = dict(getattr(args, "config_values", None) or {})
    for dest in OPTION_DESTS:
        value = getattr(args, dest)
        if value is not None:
            overrides[dest] = value
    if args.keep_search:
        overrides["deduplicate_strip_search"] = False
    if args.urls:
        overrides["initial_url"] = list(args.urls)
    return merge_override_options(Options(), overrides)


def check_urls(options: Options) -> None:
    if not options.initial_url:
        raise OptionsError("at least one URL is required")
    for url in options.initial_url:
        if is_url_http(url):
            continue
        if options.local_src_root and url.startswith(FILE_PROTOCOL_PREFIX):
            continue
        raise OptionsError(f"invalid URL {url!r}, use http:// or https://")


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        options = build_options(args)
        check_urls(options)
    except (OptionsError, OSError, ValueError) as e:
        logging.error("%s", e)
        sys.exit(1)

    downloader_cls = SingleThreadDownloader if args.single_process else MultiProcessDownloader
    try:
        downloader = downloader_cls(options)
    except (MirrorError, ImportError, OSError) as e:
        logging.error("%s", e)
        sys.exit(1)

    print("Reminder: only clone content you own or have permission to copy.")
    exit_code = 0
    try:
        downloader.start()
        downloader.wait_for_idle()
    except KeyboardInterrupt:
        logging.warning("interrupted")
    except MirrorError as e:
        logging.error("%s", e)
        exit_code = 1
    finally:
        downloader.dispose()
    logging.info(
        "downloaded %d resources, %d errors, logs in %s",
        downloader.downloaded_count,
        downloader.failed_count,
        downloader.log_dir,
    )
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
