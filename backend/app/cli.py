"""Command line entry points: sprint-tracker, sprint-lister and jira-fetcher."""

import argparse
import logging
import sys

from services.aggregator import GRANULARITIES
from services.config import load_config
from services.errors import InvalidConfiguration, JiraRequestError, SinkWriteFailure
from services.fetcher import IssueFetcher
from services.issue_cache import IssueCache
from services.jira_client import JiraClient
from services.report import write_report
from services.sprint_tracker import SprintTrackerService

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False):
    """Log to stderr so report output on stdout stays clean."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        stream=sys.stderr
    )


def _add_common_arguments(parser):
    parser.add_argument("--dir", default=None,
                        help="Directory holding the cached issues (default: issues)")
    parser.add_argument("--config", default=None,
                        help="Optional JSON config file")


def build_tracker_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sprint-tracker",
        description="Report sprint membership, story points and statuses over time."
    )
    _add_common_arguments(parser)
    parser.add_argument("--project", default="", help="Filter on a specific project")
    parser.add_argument("--out", default="", help="Output CSV file (omit to print to stdout)")
    parser.add_argument("--sprint-filter", default="",
                        help="If set, only include this sprint in output")
    parser.add_argument("--interval", default="daily", choices=sorted(GRANULARITIES),
                        help="Time interval (default: daily)")
    parser.add_argument("--debug", action="store_true", help="Show debug logging")
    return parser


def sprint_tracker_main(argv=None) -> int:
    args = build_tracker_parser().parse_args(argv)
    configure_logging(args.debug)

    config = load_config(args.config).with_overrides(cache_dir=args.dir)
    service = SprintTrackerService(IssueCache(config.cache_dir, config), config)

    snapshots = service.get_snapshots(
        project=args.project or None,
        sprint_filter=args.sprint_filter or None,
        interval=args.interval,
        debug=args.debug
    )

    try:
        if args.out:
            try:
                sink = open(args.out, "w", newline="")
            except OSError as e:
                raise SinkWriteFailure(f"failed to create output file: {e}")
            with sink:
                logger.info(f"writing to {args.out}")
                write_report(snapshots, config.tracked_statuses, sink)
        else:
            write_report(snapshots, config.tracked_statuses, sys.stdout)
    except SinkWriteFailure as e:
        logger.error(str(e))
        return 1

    return 0


def build_lister_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sprint-lister",
        description="List cached issues currently assigned to a sprint."
    )
    _add_common_arguments(parser)
    parser.add_argument("--project", default="", help="Filter on a specific project")
    parser.add_argument("--sprint-filter", required=True, help="Sprint name to list")
    return parser


def sprint_lister_main(argv=None) -> int:
    args = build_lister_parser().parse_args(argv)
    configure_logging()

    config = load_config(args.config).with_overrides(cache_dir=args.dir)
    cache = IssueCache(config.cache_dir, config)

    keys = cache.issues_in_sprint(args.sprint_filter, args.project or None)
    for ix, key in enumerate(keys):
        print(f"{ix}. {key}")
    return 0


def build_fetcher_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jira-fetcher",
        description="Download a Jira project's issues and changelogs into the local cache."
    )
    _add_common_arguments(parser)
    parser.add_argument("--project", required=True, help="Jira project key (e.g., ABC)")
    parser.add_argument("--token", default=None,
                        help="Jira API token (or fallback to JIRA_TOKEN env var)")
    parser.add_argument("--base-url", default=None,
                        help="Base URL (e.g. https://issues.redhat.com)")
    parser.add_argument("--lookback-hours", type=int, default=0,
                        help="How many hours to look back from the last known updated timestamp")
    parser.add_argument("--force-update", action="store_true",
                        help="Refetch every issue")
    parser.add_argument("--smart-update", action="store_true",
                        help="Refetch issues not fetched within the lookback window")
    parser.add_argument("--sprint", default="", help="Refetch issues in a specific sprint")
    parser.add_argument("--debug", action="store_true", help="Show debug logging")
    return parser


def fetcher_main(argv=None) -> int:
    parser = build_fetcher_parser()
    args = parser.parse_args(argv)
    configure_logging(args.debug)

    config = load_config(args.config).with_overrides(
        cache_dir=args.dir, jira_token=args.token, base_url=args.base_url
    )
    if not config.jira_token:
        parser.error("Token must be passed via --token or JIRA_TOKEN.")

    client = JiraClient(config.base_url, config.jira_token)
    fetcher = IssueFetcher(client, IssueCache(config.cache_dir, config))

    try:
        summary = fetcher.run(
            args.project,
            lookback_hours=args.lookback_hours,
            force_update=args.force_update,
            smart_update=args.smart_update,
            sprint=args.sprint or None
        )
    except (InvalidConfiguration, JiraRequestError) as e:
        logger.error(str(e))
        return 1

    logger.info(", ".join(f"{phase}: {count}" for phase, count in summary.items()))
    return 0
