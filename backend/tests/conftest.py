"""Shared fixtures for Sprint Tracker tests."""

import json
import os

import pytest

from services.config import TrackerConfig
from services.issue_cache import IssueCache

SPRINT_FIELD = "customfield_12310940"
POINTS_FIELD = "customfield_12310243"


@pytest.fixture
def tracker_config(tmp_path):
    """Tracker config pointing at a temporary cache directory."""
    return TrackerConfig(cache_dir=str(tmp_path / "issues"))


@pytest.fixture
def cache_dir(tracker_config):
    """Empty cache directory."""
    os.makedirs(tracker_config.cache_dir)
    return tracker_config.cache_dir


@pytest.fixture
def issue_cache(tracker_config, cache_dir):
    """IssueCache over the temporary cache directory."""
    return IssueCache(cache_dir, tracker_config)


@pytest.fixture
def sprint_string():
    """Build a legacy Greenhopper sprint string."""
    def _sprint_string(name, sprint_id=1, state="ACTIVE"):
        return (
            "com.atlassian.greenhopper.service.sprint.Sprint@1a2b3c"
            f"[id={sprint_id},rapidViewId=42,state={state},name={name},"
            "startDate=2024-01-01T00:00:00.000Z,endDate=2024-01-14T00:00:00.000Z,"
            "completeDate=<null>,activatedDate=2024-01-01T00:00:00.000Z,"
            f"sequence={sprint_id},goal=,synced=false,autoStartStop=false,"
            "incompleteIssuesDestinationId=<null>]"
        )
    return _sprint_string


@pytest.fixture
def history():
    """Build a raw changelog history entry from (field, from, to) tuples."""
    def _history(created, *items):
        return {
            "id": "1",
            "created": created,
            "items": [
                {"field": field, "fieldtype": "custom", "fromString": from_string, "toString": to_string}
                for field, from_string, to_string in items
            ]
        }
    return _history


@pytest.fixture
def write_issue(cache_dir, sprint_string):
    """Write an issue (and optionally its changelog) into the cache."""
    def _write_issue(key, sprints=None, parent=None, status="New", points=None,
                     created="2024-01-01T09:00:00.000+0000",
                     updated="2024-01-10T09:00:00.000+0000",
                     histories=None, fetched=None):
        fields = {
            "summary": f"Summary of {key}",
            "created": created,
            "updated": updated,
            "project": {"key": key.split("-")[0]},
            "status": {"name": status},
            SPRINT_FIELD: [
                sprint_string(name, sprint_id=ix + 1) for ix, name in enumerate(sprints or [])
            ] or None,
            POINTS_FIELD: points,
        }
        if parent:
            fields["parent"] = {"key": parent}

        data = {"key": key, "fields": fields}
        if fetched:
            data["fetched"] = fetched

        with open(os.path.join(cache_dir, f"{key}.json"), "w") as f:
            json.dump(data, f)

        if histories is not None:
            with open(os.path.join(cache_dir, f"{key}.changelog.json"), "w") as f:
                json.dump({"startAt": 0, "total": len(histories), "histories": histories}, f)

    return _write_issue


@pytest.fixture
def app(tracker_config, cache_dir):
    """Create Flask test app serving the temporary cache."""
    from app import create_app
    app = create_app()
    app.config['TESTING'] = True
    app.config['TRACKER_CONFIG'] = tracker_config
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
