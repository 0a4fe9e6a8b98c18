"""Incremental download of a Jira project into the issue cache."""

import logging
from datetime import timedelta
from typing import Optional

from services.errors import InvalidConfiguration, JiraAccessDenied, JiraRequestError
from services.issue_cache import IssueCache
from services.jira_client import JiraClient
from services.models import issue_number

logger = logging.getLogger(__name__)


class IssueFetcher:
    """Keeps the issue cache of one project up to date."""

    def __init__(self, client: JiraClient, cache: IssueCache):
        self.client = client
        self.cache = cache

    def fetch_issue(self, issue_key: str) -> bool:
        """Fetch one issue with its changelog into the cache.

        A 403 marks the issue as denied so later runs skip it. Other
        failures are logged and reported as False.
        """
        try:
            payload = self.client.get_issue_with_changelog(issue_key)
        except JiraAccessDenied as e:
            logger.warning(f"error processing {issue_key}: {e}")
            self.cache.mark_denied(issue_key)
            return False
        except JiraRequestError as e:
            logger.warning(f"error processing {issue_key}: {e}")
            return False

        self.cache.save_issue(issue_key, payload)
        return True

    def refresh_updated(self, project: str, lookback_hours: int = 0) -> int:
        """Refetch issues updated since the newest cached ``updated`` stamp."""
        since = self.cache.latest_updated(project) - timedelta(hours=lookback_hours)
        logger.info(f"Most recent updated timestamp: {since.isoformat()}")

        def is_current(key, updated):
            cached = self.cache.updated_at(key)
            if cached is None:
                logger.info(f"{key}: not found on disk")
                return False
            return updated <= cached

        fetched = 0
        for key, _ in self.client.query_updated_issues(project, since, is_current=is_current):
            if self.cache.is_denied(key):
                logger.info(f"skipping {key}, previously marked as denied")
                continue
            if self.fetch_issue(key):
                fetched += 1
        return fetched

    def backfill_missing(self, project: str) -> int:
        """Fetch every issue number not yet on disk, newest first."""
        latest_key = self.client.get_highest_issue_key(project)
        if not latest_key:
            raise InvalidConfiguration(f"no issues found in project {project}")
        logger.info(f"Latest issue found: {latest_key}")

        max_number = issue_number(latest_key)
        if not max_number:
            raise InvalidConfiguration(f"failed to extract numeric part of issue key from {latest_key}")

        on_disk = self.cache.project_numbers_on_disk(project)
        fetched = 0
        for number in range(max_number, 0, -1):
            if number in on_disk:
                continue
            if self.fetch_issue(f"{project.upper()}-{number}"):
                fetched += 1
        return fetched

    def refetch_all(self, project: str) -> int:
        latest_key = self.client.get_highest_issue_key(project)
        max_number = issue_number(latest_key) if latest_key else None
        if not max_number:
            raise InvalidConfiguration(f"no numbered issues found in project {project}")

        fetched = 0
        for number in range(max_number, 0, -1):
            if self.fetch_issue(f"{project.upper()}-{number}"):
                fetched += 1
        return fetched

    def refetch_stale(self, project: str, lookback_hours: int = 0) -> int:
        """Refetch cached issues not fetched within the lookback window."""
        stale = self.cache.stale_keys(
            self.cache.issue_keys(project), timedelta(hours=lookback_hours)
        )
        stale.reverse()
        logger.info(
            f"Refetching {len(stale)} stale issues (not fetched in the last {lookback_hours} hours)"
        )
        return sum(1 for key in stale if self.fetch_issue(key))

    def refetch_sprint(self, project: str, sprint_name: str) -> int:
        """Refetch every issue currently in the named sprint."""
        sprint_id = self.cache.lookup_sprint_id(project, sprint_name)
        if sprint_id is None:
            logger.info(f"{sprint_name} not in local cache, asking Jira")
            sprint_id = self.client.lookup_sprint_id(
                project, sprint_name, self.cache.config.sprint_custom_field
            )
        if sprint_id is None:
            raise InvalidConfiguration(f"sprint {sprint_name!r} not found")
        logger.info(f"{sprint_name} -> {sprint_id}")

        keys = self.client.get_issues_in_sprint(project, sprint_id)
        return sum(1 for key in keys if self.fetch_issue(key))

    def run(self, project: str, lookback_hours: int = 0, force_update: bool = False,
            smart_update: bool = False, sprint: Optional[str] = None) -> dict:
        """Refresh updated issues, backfill gaps, then run the optional passes.

        Returns:
            Dict with the number of issues fetched per phase
        """
        self.cache.ensure_directory()
        summary = {
            "updated": self.refresh_updated(project, lookback_hours),
            "missing": self.backfill_missing(project),
        }
        if force_update:
            summary["forced"] = self.refetch_all(project)
        if smart_update:
            summary["stale"] = self.refetch_stale(project, lookback_hours)
        if sprint:
            summary["sprint"] = self.refetch_sprint(project, sprint)
        return summary
