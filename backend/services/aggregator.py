"""Bucket sprint membership windows into a regular time series."""

from collections import namedtuple
from datetime import datetime, timedelta, timezone
from typing import Optional

from services.errors import InvalidConfiguration
from services.models import Snapshot

Granularity = namedtuple("Granularity", ["name", "step", "label_format"])

GRANULARITIES = {
    "daily": Granularity("daily", timedelta(days=1), "%Y-%m-%d"),
    "hourly": Granularity("hourly", timedelta(hours=1), "%Y-%m-%d %H:00"),
    "minutely": Granularity("minutely", timedelta(minutes=1), "%Y-%m-%d %H:%M"),
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_granularity(name: str) -> Granularity:
    """Look up a granularity by name.

    Raises:
        InvalidConfiguration: unknown name
    """
    try:
        return GRANULARITIES[name]
    except KeyError:
        raise InvalidConfiguration(
            f"invalid interval: {name!r} (expected one of {', '.join(GRANULARITIES)})"
        )


def truncate(moment: datetime, step: timedelta) -> datetime:
    """Round an aware datetime down to a multiple of ``step`` in UTC."""
    moment = moment.astimezone(timezone.utc)
    return _EPOCH + ((moment - _EPOCH) // step) * step


def aggregate(state, granularity: Granularity, now: Optional[datetime] = None) -> dict:
    """Expand every window of ``state`` onto the granularity grid.

    Open windows are treated as ending at ``now`` (defaults to the current
    time) without being modified. Buckets are aligned in UTC and labelled
    in the offset of the window start.

    Per (timestamp label, sprint) bucket:
        - each issue is counted once
        - a pair's story points are added once, however many of its windows
          cover the bucket
        - the status histogram is incremented once per covering window

    Returns:
        Dict mapping (label, sprint) to Snapshot
    """
    now = now or datetime.now(timezone.utc)
    buckets = {}

    for pair in state.pairs():
        issue_key, sprint = pair
        meta = state.meta[pair]
        points_added = set()

        for window in state.windows[pair]:
            end = window.end if window.end is not None else now
            cursor = truncate(window.start, granularity.step)
            while cursor <= end:
                label = cursor.astimezone(window.start.tzinfo).strftime(granularity.label_format)
                bucket_key = (label, sprint)
                snapshot = buckets.get(bucket_key)
                if snapshot is None:
                    snapshot = buckets[bucket_key] = Snapshot(timestamp=label, sprint=sprint)

                snapshot.issues.add(issue_key)
                if bucket_key not in points_added:
                    snapshot.story_points += meta.story_points
                    points_added.add(bucket_key)
                snapshot.statuses[meta.status] += 1

                cursor += granularity.step

    return buckets


def ordered_snapshots(buckets: dict) -> list:
    """Snapshots sorted by timestamp label, then sprint name."""
    return [buckets[key] for key in sorted(buckets)]
