"""Tests for the command line entry points."""

import pytest

from app.cli import fetcher_main, sprint_lister_main, sprint_tracker_main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("JIRA_TOKEN", "JIRA_BASE_URL", "SPRINT_TRACKER_CACHE_DIR"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def sprint_issue(write_issue, history):
    write_issue("X-1", sprints=["Sprint 1"], histories=[
        history("2024-01-02T10:00:00.000+0000", ("Sprint", "", "Sprint 1")),
    ])


class TestSprintTracker:
    """Test the sprint-tracker command."""

    def test_writes_csv_to_stdout(self, cache_dir, sprint_issue, capsys):
        assert sprint_tracker_main(["--dir", cache_dir, "--sprint-filter", "Sprint 1"]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith("timestamp,iteration,issue_count,story_points,Backlog")
        assert lines[1].startswith("2024-01-02,Sprint 1,1,0.0,")

    def test_writes_csv_to_file(self, cache_dir, sprint_issue, tmp_path, capsys):
        out = tmp_path / "report.csv"

        assert sprint_tracker_main(["--dir", cache_dir, "--out", str(out)]) == 0

        assert capsys.readouterr().out == ""
        assert out.read_text().startswith("timestamp,iteration,")

    def test_unwritable_output(self, cache_dir, sprint_issue, tmp_path):
        out = tmp_path / "missing" / "report.csv"

        assert sprint_tracker_main(["--dir", cache_dir, "--out", str(out)]) == 1

    def test_invalid_interval(self, cache_dir):
        with pytest.raises(SystemExit) as exc_info:
            sprint_tracker_main(["--dir", cache_dir, "--interval", "weekly"])
        assert exc_info.value.code == 2


class TestSprintLister:
    """Test the sprint-lister command."""

    def test_lists_sprint_members(self, cache_dir, write_issue, capsys):
        write_issue("X-10", sprints=["Sprint 1"])
        write_issue("X-9", sprints=["Sprint 1", "Sprint 2"])
        write_issue("X-8", sprints=["Sprint 2"])

        assert sprint_lister_main(["--dir", cache_dir, "--sprint-filter", "Sprint 1"]) == 0

        assert capsys.readouterr().out.splitlines() == ["0. X-9", "1. X-10"]

    def test_sprint_filter_required(self, cache_dir):
        with pytest.raises(SystemExit):
            sprint_lister_main(["--dir", cache_dir])


class TestFetcher:
    """Test the jira-fetcher command."""

    def test_missing_token(self, cache_dir):
        with pytest.raises(SystemExit) as exc_info:
            fetcher_main(["--dir", cache_dir, "--project", "X"])
        assert exc_info.value.code == 2
