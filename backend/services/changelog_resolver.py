"""Pick the change history used to rebuild an issue's sprint timeline."""

import logging

from services.config import TrackerConfig
from services.models import ChangeItem, Changelog, HistoryEntry

logger = logging.getLogger(__name__)


class ChangelogResolver:
    """Resolve the authoritative changelog for an issue.

    Fallback chain, first match wins:
        1. the issue's own changelog, if it has sprint changes
        2. the parent's changelog, if it has sprint changes (sub-tasks
           usually inherit sprints from their parent without a history)
        3. a one-entry changelog built from the issue's current sprints,
           stamped at creation time
        4. an empty changelog
    """

    def __init__(self, cache, config: TrackerConfig = None):
        self.cache = cache
        self.config = config or TrackerConfig()

    def resolve(self, key: str) -> Changelog:
        """Return the resolved changelog for ``key``.

        Raises:
            NotFoundInCache: the issue itself is not cached
            MalformedRecord: the issue or a consulted changelog is corrupt
        """
        sprint_field = self.config.sprint_field
        issue = self.cache.get_issue(key)

        own = self.cache.get_changelog(key)
        if own is not None and own.has_field_changes(sprint_field):
            logger.debug(f"{key}: using own changelog ({len(own)} entries)")
            return own

        if issue.parent_key:
            parent = self.cache.get_changelog(issue.parent_key)
            if parent is not None and parent.has_field_changes(sprint_field):
                logger.debug(f"{key}: using changelog of parent {issue.parent_key}")
                return parent

        if issue.sprint_names:
            logger.debug(
                f"{key}: no sprint history, assuming {issue.sprint_names} since creation"
            )
            return synthesize_changelog(issue.key, issue.created, issue.sprint_names, sprint_field)

        logger.debug(f"{key}: no sprint history")
        return Changelog(origin=key)


def synthesize_changelog(key: str, created: str, sprint_names, sprint_field: str) -> Changelog:
    """Build a changelog where the issue joined each sprint when it was created."""
    items = tuple(
        ChangeItem(field=sprint_field, from_string="", to_string=name)
        for name in sprint_names
    )
    entry = HistoryEntry(created=created, items=items)
    return Changelog(histories=(entry,), origin=key, synthetic=True)
