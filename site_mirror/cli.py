import argparse
import logging
import sys
from typing import List, Optional

from .crawl import Crawler, load_report, write_report
from .mirror import Mirror, write_download_log
from .settings import DEFAULT_START_URL, Settings, flatten_config, load_config_file


def _common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", type=str, help="path to config.toml|.yaml", default=None)
    p.add_argument(
        "--output-dir", type=str, default="crawl-output", help="report directory"
    )
    p.add_argument(
        "--timeout", type=float, default=30.0, help="request timeout seconds"
    )
    p.add_argument("--user-agent", type=str, default=None, help="User-Agent header")
    p.add_argument("--verbose", action="store_true", help="debug logging")


def build_crawl_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Crawl a site breadth-first and write a crawl report.",
    )
    p.add_argument(
        "start_url", nargs="?", default=DEFAULT_START_URL, help="http(s) URL"
    )
    p.add_argument(
        "max_pages", nargs="?", type=int, default=2000, help="max URLs to fetch"
    )
    _common_args(p)
    return p


def build_mirror_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Download every URL of a crawl report into a local mirror.",
    )
    p.add_argument(
        "concurrency", nargs="?", type=int, default=10, help="concurrent downloads"
    )
    _common_args(p)
    p.add_argument(
        "--mirror-dir",
        type=str,
        default=None,
        help="mirror root (default: <output-dir>/mirror)",
    )
    p.add_argument(
        "--report",
        type=str,
        default=None,
        help="crawl report JSON (default: <output-dir>/site-crawl-report.json)",
    )
    return p


def parse_args(
    parser: argparse.ArgumentParser, argv: Optional[List[str]] = None
) -> argparse.Namespace:
    preliminary, _ = parser.parse_known_args(argv)
    if preliminary.config:
        parser.set_defaults(**flatten_config(load_config_file(preliminary.config)))
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    # Config defaults may set keys the other command's parser never defines.
    defaults = Settings()
    settings = Settings(
        start_url=getattr(args, "start_url", defaults.start_url),
        max_pages=max(1, int(getattr(args, "max_pages", defaults.max_pages))),
        concurrency=max(1, int(getattr(args, "concurrency", defaults.concurrency))),
        output_dir=args.output_dir,
        mirror_dir=getattr(args, "mirror_dir", defaults.mirror_dir),
        timeout=max(0.1, float(args.timeout)),
    )
    if args.user_agent:
        settings.user_agent = args.user_agent
    return settings


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )


# -------------------- Entry points --------------------


def crawl_main(argv: Optional[List[str]] = None) -> int:
    try:
        args = parse_args(build_crawl_parser(), argv)
        setup_logging(args.verbose)
        settings = settings_from_args(args)
        report = Crawler(settings.start_url, settings).crawl()
        path = write_report(report, settings.output_path)
        logging.info("report written to %s", path)
    except Exception as e:
        print(f"Crawl failed: {e}", file=sys.stderr)
        return 1
    print(
        f"Crawl complete. Pages: {len(report.pages)}, "
        f"Images: {len(report.images)}, Assets: {len(report.assets)}"
    )
    return 0


def mirror_main(argv: Optional[List[str]] = None) -> int:
    try:
        args = parse_args(build_mirror_parser(), argv)
        setup_logging(args.verbose)
        settings = settings_from_args(args)
        report = load_report(args.report or settings.report_path)
        log = Mirror(settings).run(report)
        path = write_download_log(log, settings.output_path)
        logging.info("download log written to %s", path)
    except Exception as e:
        print(f"Mirror failed: {e}", file=sys.stderr)
        return 1
    print(
        f"Mirror download complete. Requested: {log.total_requested}, "
        f"Downloaded: {log.downloaded}, Failed: {log.failed}"
    )
    return 0


def crawl() -> None:
    sys.exit(crawl_main())


def mirror() -> None:
    sys.exit(mirror_main())
