"""Tests for CSV report rendering."""

import io
from collections import Counter

import pytest

from services.errors import SinkWriteFailure
from services.models import Snapshot
from services.report import snapshot_rows, write_report

STATUSES = ["Backlog", "In Progress", "Review"]


@pytest.fixture
def snapshots():
    return [
        Snapshot("2024-01-01", "Sprint 1", {"X-1", "X-2"}, 8.0, Counter({"Review": 2})),
        Snapshot("2024-01-02", "Sprint 1", {"X-1"}, 2.5, Counter({"Done": 1, "Backlog": 1})),
    ]


class BrokenSink:
    def write(self, data):
        raise OSError("disk full")

    def flush(self):
        pass


class TestWriteReport:
    """Test the CSV table layout."""

    def test_header_and_rows(self, snapshots):
        sink = io.StringIO()

        write_report(snapshots, STATUSES, sink)

        assert sink.getvalue().splitlines() == [
            "timestamp,iteration,issue_count,story_points,Backlog,In Progress,Review",
            "2024-01-01,Sprint 1,2,8.0,0,0,2",
            "2024-01-02,Sprint 1,1,2.5,1,0,0",
        ]

    def test_header_only_when_empty(self):
        sink = io.StringIO()

        write_report([], STATUSES, sink)

        assert sink.getvalue() == "timestamp,iteration,issue_count,story_points,Backlog,In Progress,Review\n"

    def test_write_failure(self, snapshots):
        with pytest.raises(SinkWriteFailure):
            write_report(snapshots, STATUSES, BrokenSink())


class TestSnapshotRows:
    """Test JSON row rendering."""

    def test_untracked_statuses_dropped(self, snapshots):
        rows = snapshot_rows(snapshots, STATUSES)

        assert rows[1] == {
            "timestamp": "2024-01-02",
            "iteration": "Sprint 1",
            "issueCount": 1,
            "storyPoints": 2.5,
            "statuses": {"Backlog": 1, "In Progress": 0, "Review": 0},
        }
