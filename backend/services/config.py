"""Configuration for the sprint tracker.

Values come from built-in defaults, an optional JSON file and a few
environment variables, in that order of precedence (last wins).
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_TRACKED_STATUSES = [
    "Backlog", "In Progress", "Review", "Testing", "Resolved", "Closed"
]

# Environment variable -> config attribute
ENV_OVERRIDES = {
    "JIRA_TOKEN": "jira_token",
    "JIRA_BASE_URL": "base_url",
    "SPRINT_TRACKER_CACHE_DIR": "cache_dir",
}


@dataclass
class TrackerConfig:
    """Settings shared by the tracker, the fetcher and the HTTP API."""

    cache_dir: str = "issues"
    base_url: str = "https://issues.redhat.com"
    jira_token: Optional[str] = None

    # Changelog field names as Jira reports them in history items
    sprint_field: str = "Sprint"
    story_points_field: str = "Story Points"
    status_field: str = "status"

    # Custom field ids on the issue record itself
    sprint_custom_field: str = "customfield_12310940"
    story_points_custom_field: str = "customfield_12310243"

    tracked_statuses: list = field(
        default_factory=lambda: list(DEFAULT_TRACKED_STATUSES)
    )

    def with_overrides(self, **overrides) -> "TrackerConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _from_mapping(data: dict) -> TrackerConfig:
    known = {f.name for f in fields(TrackerConfig)}
    unknown = set(data) - known
    if unknown:
        logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")

    values = {k: v for k, v in data.items() if k in known}
    if "tracked_statuses" in values:
        values["tracked_statuses"] = [str(s) for s in values["tracked_statuses"]]
    return TrackerConfig(**values)


def load_config(path: Optional[str] = None, environ: Optional[dict] = None) -> TrackerConfig:
    """Load tracker configuration.

    Args:
        path: Optional JSON file. A missing or unreadable file falls back to
            defaults with a warning.
        environ: Mapping used for overrides, defaults to os.environ.

    Returns:
        TrackerConfig instance
    """
    environ = os.environ if environ is None else environ
    config = TrackerConfig()

    if path and os.path.exists(path):
        try:
            with open(path, "r") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level value must be an object")
            config = _from_mapping(data)
            logger.info(f"Loaded tracker config from {path}")
        except (json.JSONDecodeError, IOError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load tracker config {path}: {e}")
            config = TrackerConfig()

    overrides = {
        attr: environ[var]
        for var, attr in ENV_OVERRIDES.items()
        if environ.get(var)
    }
    return config.with_overrides(**overrides)
