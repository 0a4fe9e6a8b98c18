"""Sprint membership timeline reconstruction.

Replays an issue's changelog in order and records, for every (issue, sprint)
pair, the windows during which the issue was a member of the sprint.
"""

import logging
from typing import Optional

from services.config import TrackerConfig
from services.errors import UnparsableTimestamp
from services.models import (
    Changelog, MembershipWindow, PairMeta, parse_jira_timestamp, split_sprint_names
)

logger = logging.getLogger(__name__)


class AggregationState:
    """Windows and pair metadata accumulated over a whole run.

    Both maps are keyed by ``(issue_key, sprint_name)``.
    """

    def __init__(self):
        self.windows = {}
        self.meta = {}

    def pairs(self) -> list:
        return sorted(self.windows)

    def windows_for(self, issue_key: str, sprint: str) -> list:
        return self.windows.get((issue_key, sprint), [])

    def open_window(self, issue_key: str, sprint: str, at, story_points: float, status: str):
        pair = (issue_key, sprint)
        # First join wins: metadata is never refreshed on rejoin
        if pair not in self.meta:
            self.meta[pair] = PairMeta(story_points=story_points, status=status)
        self.windows.setdefault(pair, []).append(MembershipWindow(start=at))

    def close_window(self, issue_key: str, sprint: str, at) -> bool:
        """Close the most recently opened window of a pair if it is still open."""
        windows = self.windows.get((issue_key, sprint))
        if windows and windows[-1].is_open:
            windows[-1].end = at
            return True
        return False

    def __len__(self):
        return sum(len(windows) for windows in self.windows.values())


class TimelineBuilder:
    """Replays resolved changelogs into an AggregationState."""

    def __init__(self, state: AggregationState, config: Optional[TrackerConfig] = None,
                 sprint_filter: Optional[str] = None, debug: bool = False):
        self.state = state
        self.config = config or TrackerConfig()
        self.sprint_filter = sprint_filter or None
        self.debug = debug

    def _wanted(self, sprint: str) -> bool:
        return self.sprint_filter is None or sprint == self.sprint_filter

    def replay(self, issue_key: str, changelog: Changelog):
        """Replay one issue's changelog, attributing windows to ``issue_key``.

        Story points and status trackers start at 0 / "" for every issue.
        Entries with an unparsable timestamp are skipped.
        """
        story_points = 0.0
        status = ""

        for entry in changelog.histories:
            try:
                at = parse_jira_timestamp(entry.created)
            except UnparsableTimestamp as e:
                logger.debug(f"{issue_key}: dropping history entry, {e}")
                continue

            for item in entry.items:
                if item.field == self.config.sprint_field:
                    self._apply_sprint_change(
                        issue_key, entry.created, at,
                        item.from_string, item.to_string,
                        story_points, status,
                    )
                elif item.field == self.config.story_points_field and item.to_string:
                    try:
                        story_points = float(item.to_string)
                    except ValueError:
                        pass
                elif item.field == self.config.status_field and item.to_string:
                    status = item.to_string

    def _apply_sprint_change(self, issue_key, created, at, from_string, to_string,
                             story_points, status):
        previous = split_sprint_names(from_string)
        current = split_sprint_names(to_string)

        if self.debug and (self.sprint_filter is None
                           or self.sprint_filter in previous
                           or self.sprint_filter in current):
            logger.debug(f"{created} {issue_key} {previous} -> {current}")

        for sprint in previous:
            if sprint in current or not self._wanted(sprint):
                continue
            self.state.close_window(issue_key, sprint, at)

        for sprint in current:
            if sprint in previous or not self._wanted(sprint):
                continue
            self.state.open_window(issue_key, sprint, at, story_points, status)
