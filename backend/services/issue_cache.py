"""Flat-file cache of Jira issues.

Layout of the cache directory:
    <KEY>.json            issue payload without its changelog
    <KEY>.changelog.json  the changelog split out of the issue payload
    <KEY>.denied          marker for issues Jira refused to serve (403)
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from services.config import TrackerConfig
from services.errors import MalformedRecord, NotFoundInCache, UnparsableTimestamp
from services.models import (
    Changelog, IssueRecord, issue_number, parse_jira_timestamp, sort_issue_keys
)

logger = logging.getLogger(__name__)

ISSUE_SUFFIX = ".json"
CHANGELOG_SUFFIX = ".changelog.json"
DENIED_SUFFIX = ".denied"


class IssueCache:
    """Read/write access to a directory of cached Jira issues."""

    def __init__(self, directory: str, config: Optional[TrackerConfig] = None):
        self.directory = directory
        self.config = config or TrackerConfig()

    def _path(self, key: str, suffix: str) -> str:
        return os.path.join(self.directory, f"{key}{suffix}")

    def _load_json(self, key: str, path: str):
        try:
            with open(path, "r") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise MalformedRecord(key, f"invalid JSON in {path}: {e}")
        except UnicodeDecodeError as e:
            raise MalformedRecord(key, f"undecodable bytes in {path}: {e}")
        except RecursionError:
            raise MalformedRecord(key, f"JSON nested too deeply in {path}")
        except OSError as e:
            raise MalformedRecord(key, f"cannot read {path}: {e}")

    # Read side

    def get_issue(self, key: str) -> IssueRecord:
        """Load the current field state of an issue.

        Raises:
            NotFoundInCache: no ``<KEY>.json`` file
            MalformedRecord: file is not a valid issue payload
        """
        path = self._path(key, ISSUE_SUFFIX)
        if not os.path.isfile(path):
            raise NotFoundInCache(key)
        data = self._load_json(key, path)
        return IssueRecord.from_json(
            key, data,
            sprint_field=self.config.sprint_custom_field,
            story_points_field=self.config.story_points_custom_field,
        )

    def get_changelog(self, key: str) -> Optional[Changelog]:
        """Load an issue's changelog, or None if none was cached.

        Raises:
            MalformedRecord: file is not a valid changelog payload
        """
        path = self._path(key, CHANGELOG_SUFFIX)
        if not os.path.isfile(path):
            return None
        return Changelog.from_json(key, self._load_json(key, path))

    def _list_names(self) -> list:
        try:
            return os.listdir(self.directory)
        except FileNotFoundError:
            logger.warning(f"Cache directory {self.directory} does not exist")
            return []

    def issue_keys(self, project: Optional[str] = None) -> list:
        """All cached issue keys in numeric order, optionally for one project."""
        prefix = f"{project.upper()}-" if project else ""
        keys = []
        for name in self._list_names():
            if not name.endswith(ISSUE_SUFFIX) or name.endswith(CHANGELOG_SUFFIX):
                continue
            if not name.startswith(prefix):
                continue
            keys.append(name[:-len(ISSUE_SUFFIX)])
        return sort_issue_keys(keys)

    def project_numbers_on_disk(self, project: str) -> set:
        """Issue numbers already fetched (or denied) for a project."""
        prefix = f"{project.upper()}-"
        found = set()
        for name in self._list_names():
            if not name.startswith(prefix) or name.endswith(CHANGELOG_SUFFIX):
                continue
            for suffix in (ISSUE_SUFFIX, DENIED_SUFFIX):
                if name.endswith(suffix):
                    number = issue_number(name[:-len(suffix)])
                    if number is not None:
                        found.add(number)
        return found

    def is_denied(self, key: str) -> bool:
        return os.path.exists(self._path(key, DENIED_SUFFIX))

    def _raw_issue(self, key: str) -> Optional[dict]:
        try:
            data = self._load_json(key, self._path(key, ISSUE_SUFFIX))
        except MalformedRecord:
            return None
        return data if isinstance(data, dict) else None

    def updated_at(self, key: str) -> Optional[datetime]:
        """The cached ``fields.updated`` timestamp of an issue, if readable."""
        data = self._raw_issue(key)
        if data is None or not isinstance(data.get("fields"), dict):
            return None
        try:
            return parse_jira_timestamp(data["fields"].get("updated"))
        except UnparsableTimestamp:
            return None

    def latest_updated(self, project: str, now: Optional[datetime] = None) -> datetime:
        """Most recent ``updated`` timestamp among a project's cached issues.

        Denied issues are ignored. Falls back to 30 days before ``now`` when
        nothing usable is cached.
        """
        latest = None
        for key in self.issue_keys(project):
            if self.is_denied(key):
                continue
            updated = self.updated_at(key)
            if updated and (latest is None or updated > latest):
                latest = updated

        if latest is None:
            now = now or datetime.now(timezone.utc)
            return now - timedelta(days=30)
        return latest

    def stale_keys(self, keys, window: timedelta, now: Optional[datetime] = None) -> list:
        """Keys not fetched (or updated, for older files) within ``window``."""
        cutoff = (now or datetime.now(timezone.utc)) - window
        remaining = []
        for key in keys:
            data = self._raw_issue(key)
            if data is None:
                remaining.append(key)
                continue

            fetched = data.get("fetched")
            if isinstance(fetched, str):
                try:
                    fetched_at = datetime.fromisoformat(fetched.replace("Z", "+00:00"))
                except ValueError:
                    fetched_at = None
                if fetched_at and fetched_at.tzinfo is None:
                    fetched_at = fetched_at.replace(tzinfo=timezone.utc)
                if fetched_at and fetched_at > cutoff:
                    continue
            else:
                updated = self.updated_at(key)
                if updated and updated > cutoff:
                    continue

            remaining.append(key)
        return remaining

    def lookup_sprint_id(self, project: str, sprint_name: str) -> Optional[int]:
        """Find a sprint id by name among the project's cached issues."""
        for key in self.issue_keys(project):
            try:
                issue = self.get_issue(key)
            except (NotFoundInCache, MalformedRecord):
                continue
            for sprint in issue.sprints:
                if sprint.name == sprint_name:
                    return sprint.id
        return None

    def issues_in_sprint(self, sprint_name: str, project: Optional[str] = None) -> list:
        """Keys of cached issues whose current sprints include ``sprint_name``."""
        matched = []
        for key in self.issue_keys(project):
            try:
                issue = self.get_issue(key)
            except MalformedRecord as e:
                logger.warning(f"Skipping {key}: {e}")
                continue
            if sprint_name in issue.sprint_names:
                matched.append(issue.key)
        return sort_issue_keys(matched)

    # Write side

    def ensure_directory(self):
        os.makedirs(self.directory, exist_ok=True)

    def _write_json(self, path: str, data):
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
        logger.info(f"saved {path}")

    def save_issue(self, key: str, payload: dict, fetched_at: Optional[datetime] = None):
        """Store an issue fetched with ``expand=changelog``.

        The changelog is written to its own file and removed from the issue
        payload, which is stamped with the fetch time.
        """
        payload = dict(payload)
        changelog = payload.pop("changelog", None)
        if changelog is not None:
            self._write_json(self._path(key, CHANGELOG_SUFFIX), changelog)

        fetched_at = fetched_at or datetime.now(timezone.utc)
        payload["fetched"] = fetched_at.strftime("%Y-%m-%dT%H:%M:%SZ")
        self._write_json(self._path(key, ISSUE_SUFFIX), payload)

    def mark_denied(self, key: str):
        with open(self._path(key, DENIED_SUFFIX), "w") as f:
            f.write("denied")
        logger.info(f"marked {key} as denied")
