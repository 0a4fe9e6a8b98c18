"""Sprint membership tracking service."""

import logging
from datetime import datetime
from typing import Optional

from services.aggregator import aggregate, ordered_snapshots, parse_granularity
from services.changelog_resolver import ChangelogResolver
from services.config import TrackerConfig
from services.errors import MalformedRecord, NotFoundInCache
from services.issue_cache import IssueCache
from services.report import write_report
from services.timeline import AggregationState, TimelineBuilder

logger = logging.getLogger(__name__)


class SprintTrackerService:
    """Rebuild sprint membership from the issue cache and report it over time."""

    def __init__(self, cache: IssueCache, config: Optional[TrackerConfig] = None):
        self.cache = cache
        self.config = config or cache.config
        self.resolver = ChangelogResolver(cache, self.config)

    def build_state(self, project: Optional[str] = None,
                    sprint_filter: Optional[str] = None,
                    debug: bool = False) -> AggregationState:
        """Replay every cached issue (numeric key order) into a fresh state.

        Issues that are missing or corrupt are logged and skipped.
        """
        state = AggregationState()
        builder = TimelineBuilder(state, self.config, sprint_filter=sprint_filter, debug=debug)

        keys = self.cache.issue_keys(project)
        skipped = 0
        for key in keys:
            try:
                changelog = self.resolver.resolve(key)
            except (NotFoundInCache, MalformedRecord) as e:
                logger.warning(f"Skipping {key}: {e}")
                skipped += 1
                continue

            builder.replay(key, changelog)

        logger.info(
            f"Processed {len(keys) - skipped} issues ({skipped} skipped), "
            f"{len(state.windows)} issue/sprint pairs, {len(state)} windows"
        )
        return state

    def get_snapshots(self, project: Optional[str] = None,
                      sprint_filter: Optional[str] = None,
                      interval: str = "daily",
                      now: Optional[datetime] = None,
                      debug: bool = False) -> list:
        """Ordered per-(timestamp, sprint) snapshots.

        Raises:
            InvalidConfiguration: unknown interval, before any issue is read
        """
        granularity = parse_granularity(interval)
        state = self.build_state(project, sprint_filter, debug=debug)
        return ordered_snapshots(aggregate(state, granularity, now=now))

    def write_report(self, sink, project: Optional[str] = None,
                     sprint_filter: Optional[str] = None,
                     interval: str = "daily",
                     now: Optional[datetime] = None,
                     debug: bool = False) -> int:
        """Build the report and write it as CSV; returns the number of rows."""
        snapshots = self.get_snapshots(project, sprint_filter, interval, now=now, debug=debug)
        write_report(snapshots, self.config.tracked_statuses, sink)
        return len(snapshots)

    def issue_timeline(self, key: str, sprint_filter: Optional[str] = None) -> dict:
        """Resolved changelog source and windows for a single issue."""
        changelog = self.resolver.resolve(key)
        state = AggregationState()
        TimelineBuilder(state, self.config, sprint_filter=sprint_filter).replay(key, changelog)

        if changelog.synthetic:
            source = "current-sprints"
        elif not changelog.histories:
            source = "none"
        elif changelog.origin == key:
            source = "own"
        else:
            source = "parent"

        sprints = []
        for pair in state.pairs():
            _, sprint = pair
            meta = state.meta[pair]
            sprints.append({
                "sprint": sprint,
                "storyPoints": meta.story_points,
                "status": meta.status,
                "windows": [
                    {
                        "from": window.start.isoformat(),
                        "to": window.end.isoformat() if window.end else None,
                    }
                    for window in state.windows[pair]
                ],
            })

        return {
            "key": key,
            "changelogSource": source,
            "changelogOrigin": changelog.origin,
            "historyEntries": len(changelog),
            "sprints": sprints,
        }
