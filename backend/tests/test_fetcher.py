"""Tests for IssueFetcher."""

import os
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from services.errors import InvalidConfiguration, JiraAccessDenied, JiraNotFound
from services.fetcher import IssueFetcher
from services.jira_client import JiraClient


@pytest.fixture
def jira():
    client = Mock(spec=JiraClient)
    client.get_issue_with_changelog.side_effect = lambda key: {
        "key": key,
        "fields": {"updated": "2024-01-10T09:00:00.000+0000"},
        "changelog": {"histories": []},
    }
    return client


@pytest.fixture
def fetcher(jira, issue_cache):
    return IssueFetcher(jira, issue_cache)


class TestFetchIssue:
    """Test storing a single issue."""

    def test_saves_issue_and_changelog(self, fetcher, cache_dir):
        assert fetcher.fetch_issue("X-1") is True
        assert os.path.exists(os.path.join(cache_dir, "X-1.json"))
        assert os.path.exists(os.path.join(cache_dir, "X-1.changelog.json"))

    def test_access_denied_marks_issue(self, fetcher, jira, issue_cache):
        jira.get_issue_with_changelog.side_effect = JiraAccessDenied("denied", status_code=403)

        assert fetcher.fetch_issue("X-1") is False
        assert issue_cache.is_denied("X-1")

    def test_not_found_is_skipped(self, fetcher, jira, issue_cache):
        jira.get_issue_with_changelog.side_effect = JiraNotFound("gone", status_code=404)

        assert fetcher.fetch_issue("X-1") is False
        assert not issue_cache.is_denied("X-1")


class TestBackfill:
    """Test fetching issue numbers missing from disk."""

    def test_fetches_missing_numbers_newest_first(self, fetcher, jira, write_issue, issue_cache):
        jira.get_highest_issue_key.return_value = "X-4"
        write_issue("X-2")
        issue_cache.mark_denied("X-3")

        assert fetcher.backfill_missing("X") == 2
        fetched = [c.args[0] for c in jira.get_issue_with_changelog.call_args_list]
        assert fetched == ["X-4", "X-1"]

    def test_empty_project(self, fetcher, jira):
        jira.get_highest_issue_key.return_value = None

        with pytest.raises(InvalidConfiguration):
            fetcher.backfill_missing("X")


class TestRefresh:
    """Test incremental refresh passes."""

    def test_refresh_updated_skips_denied(self, fetcher, jira, issue_cache):
        issue_cache.mark_denied("X-2")
        jira.query_updated_issues.return_value = [
            ("X-3", datetime(2024, 1, 3, tzinfo=timezone.utc)),
            ("X-2", datetime(2024, 1, 2, tzinfo=timezone.utc)),
        ]

        assert fetcher.refresh_updated("X") == 1
        jira.get_issue_with_changelog.assert_called_once_with("X-3")

    def test_refresh_updated_stops_at_cached_issue(self, fetcher, jira, write_issue):
        write_issue("X-1", updated="2024-01-05T09:00:00.000+0000")
        jira.query_updated_issues.return_value = []

        assert fetcher.refresh_updated("X", lookback_hours=2) == 0

        since = jira.query_updated_issues.call_args.args[1]
        is_current = jira.query_updated_issues.call_args.kwargs["is_current"]
        assert since == datetime(2024, 1, 5, 7, tzinfo=timezone.utc)
        assert is_current("X-1", datetime(2024, 1, 5, 9, tzinfo=timezone.utc)) is True
        assert is_current("X-1", datetime(2024, 1, 6, tzinfo=timezone.utc)) is False
        assert is_current("X-9", datetime(2024, 1, 6, tzinfo=timezone.utc)) is False

    def test_refetch_sprint(self, fetcher, jira, write_issue):
        write_issue("X-1", sprints=["Sprint 1"])
        jira.get_issues_in_sprint.return_value = ["X-1", "X-5"]

        assert fetcher.refetch_sprint("X", "Sprint 1") == 2
        jira.get_issues_in_sprint.assert_called_once_with("X", 1)
        jira.lookup_sprint_id.assert_not_called()

    def test_refetch_sprint_asks_jira_on_cache_miss(self, fetcher, jira):
        jira.lookup_sprint_id.return_value = 77
        jira.get_issues_in_sprint.return_value = ["X-3"]

        assert fetcher.refetch_sprint("X", "Sprint 7") == 1
        jira.lookup_sprint_id.assert_called_once_with("X", "Sprint 7", "customfield_12310940")
        jira.get_issues_in_sprint.assert_called_once_with("X", 77)

    def test_refetch_unknown_sprint(self, fetcher, jira):
        jira.lookup_sprint_id.return_value = None

        with pytest.raises(InvalidConfiguration):
            fetcher.refetch_sprint("X", "Sprint 404")
        jira.get_issues_in_sprint.assert_not_called()

    def test_run_reports_phases(self, fetcher, jira):
        jira.query_updated_issues.return_value = []
        jira.get_highest_issue_key.return_value = "X-2"

        summary = fetcher.run("X", lookback_hours=1, smart_update=True)

        assert summary == {"updated": 0, "missing": 2, "stale": 0}
