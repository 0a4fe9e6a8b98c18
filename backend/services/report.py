"""CSV rendering of sprint snapshots."""

import csv

from services.errors import SinkWriteFailure

BASE_COLUMNS = ["timestamp", "iteration", "issue_count", "story_points"]


def report_header(statuses) -> list:
    return BASE_COLUMNS + list(statuses)


def report_row(snapshot, statuses) -> list:
    row = [
        snapshot.timestamp,
        snapshot.sprint,
        str(snapshot.issue_count),
        f"{snapshot.story_points:.1f}",
    ]
    row.extend(str(snapshot.statuses.get(status, 0)) for status in statuses)
    return row


def write_report(snapshots, statuses, sink):
    """Write the header and one row per snapshot to a text sink.

    Raises:
        SinkWriteFailure: the sink rejected a write
    """
    try:
        writer = csv.writer(sink, lineterminator="\n")
        writer.writerow(report_header(statuses))
        for snapshot in snapshots:
            writer.writerow(report_row(snapshot, statuses))
        sink.flush()
    except (OSError, ValueError) as e:
        raise SinkWriteFailure(f"failed to write report: {e}")


def snapshot_rows(snapshots, statuses) -> list:
    """Report rows as dicts, for JSON responses."""
    rows = []
    for snapshot in snapshots:
        rows.append({
            "timestamp": snapshot.timestamp,
            "iteration": snapshot.sprint,
            "issueCount": snapshot.issue_count,
            "storyPoints": round(snapshot.story_points, 1),
            "statuses": {status: snapshot.statuses.get(status, 0) for status in statuses},
        })
    return rows
