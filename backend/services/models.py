"""Typed records decoded from the Jira issue cache."""

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from services.errors import MalformedRecord, UnparsableTimestamp

# Jira timestamps: "2024-10-31T12:11:56.289-0400"
JIRA_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"
_JIRA_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}[+-]\d{4}$"
)


def parse_jira_timestamp(value) -> datetime:
    """Parse a Jira changelog timestamp into an aware datetime.

    Only the exact Jira layout (milliseconds, numeric offset) is accepted;
    no alternate formats are tried. The offset is kept so report labels
    can be rendered in the issue's own time zone.

    Raises:
        UnparsableTimestamp: value does not match the layout
    """
    if not isinstance(value, str) or not _JIRA_TIMESTAMP_RE.match(value):
        raise UnparsableTimestamp(value)
    try:
        return datetime.strptime(value, JIRA_TIMESTAMP_FORMAT)
    except ValueError:
        raise UnparsableTimestamp(value)


def issue_number(key: str) -> Optional[int]:
    """Numeric suffix of an issue key, or None if it has none."""
    _, sep, number = key.partition("-")
    if not sep:
        return None
    try:
        return int(number)
    except ValueError:
        return None


def sort_issue_keys(keys) -> list:
    """Sort ABC-123 style keys by their numeric suffix.

    Keys without a numeric suffix sort lexically after the numbered ones.
    """
    def sort_key(key):
        number = issue_number(key)
        if number is None:
            return (1, 0, key)
        return (0, number, key)

    return sorted(keys, key=sort_key)


def split_sprint_names(value: Optional[str]) -> list:
    """Split a comma separated sprint list, dropping blanks and duplicates."""
    names = []
    for token in (value or "").split(","):
        name = token.strip()
        if name and name not in names:
            names.append(name)
    return names


@dataclass(frozen=True)
class ChangeItem:
    field: str
    from_string: str = ""
    to_string: str = ""


@dataclass(frozen=True)
class HistoryEntry:
    """One change event from an issue changelog."""

    created: str
    items: tuple = ()

    def touches(self, field_name: str) -> bool:
        return any(item.field == field_name for item in self.items)


@dataclass(frozen=True)
class Changelog:
    """Ordered change history, kept in the order Jira returned it."""

    histories: tuple = ()
    origin: Optional[str] = None
    synthetic: bool = False

    def has_field_changes(self, field_name: str) -> bool:
        return any(entry.touches(field_name) for entry in self.histories)

    def __len__(self):
        return len(self.histories)

    @classmethod
    def from_json(cls, key: str, data) -> "Changelog":
        """Decode a cached ``<KEY>.changelog.json`` payload."""
        if not isinstance(data, dict):
            raise MalformedRecord(key, "changelog is not an object")

        histories = data.get("histories") or []
        if not isinstance(histories, list):
            raise MalformedRecord(key, "histories is not a list")

        entries = []
        for history in histories:
            if not isinstance(history, dict):
                raise MalformedRecord(key, "history entry is not an object")
            items = history.get("items") or []
            if not isinstance(items, list):
                raise MalformedRecord(key, "history items is not a list")

            change_items = []
            for item in items:
                if not isinstance(item, dict):
                    raise MalformedRecord(key, "history item is not an object")
                change_items.append(ChangeItem(
                    field=str(item.get("field") or ""),
                    from_string=str(item.get("fromString") or ""),
                    to_string=str(item.get("toString") or ""),
                ))

            entries.append(HistoryEntry(
                created=str(history.get("created") or ""),
                items=tuple(change_items),
            ))

        return cls(histories=tuple(entries), origin=key)


@dataclass
class Sprint:
    id: int = 0
    rapid_view_id: int = 0
    state: str = ""
    name: str = ""
    start_date: str = ""
    end_date: str = ""
    complete_date: Optional[str] = None
    activated_date: str = ""
    sequence: int = 0
    goal: str = ""
    synced: bool = False
    auto_start_stop: bool = False
    incomplete_issues_destination: Optional[str] = None


# Greenhopper key -> (attribute, converter)
_SPRINT_ATTRIBUTES = {
    "id": ("id", "int"),
    "rapidViewId": ("rapid_view_id", "int"),
    "state": ("state", "str"),
    "name": ("name", "str"),
    "startDate": ("start_date", "str"),
    "endDate": ("end_date", "str"),
    "completeDate": ("complete_date", "nullable"),
    "activatedDate": ("activated_date", "str"),
    "sequence": ("sequence", "int"),
    "goal": ("goal", "str"),
    "synced": ("synced", "bool"),
    "autoStartStop": ("auto_start_stop", "bool"),
    "incompleteIssuesDestinationId": ("incomplete_issues_destination", "nullable"),
}


def _convert(kind: str, value):
    if kind == "int":
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0
    if kind == "bool":
        if isinstance(value, bool):
            return value
        return str(value) == "true"
    if kind == "nullable":
        if value is None or value == "<null>":
            return None
        return str(value)
    return "" if value is None else str(value)


def parse_sprint(raw) -> Sprint:
    """Parse a sprint from either field representation.

    Server instances return the legacy Greenhopper string
    ``...Sprint@1a2b[id=1,rapidViewId=2,state=ACTIVE,name=Sprint 1,...]``;
    newer ones return a JSON object with the same keys.

    Raises:
        ValueError: the value is in neither form
    """
    sprint = Sprint()

    if isinstance(raw, dict):
        for source_key, (attr, kind) in _SPRINT_ATTRIBUTES.items():
            if source_key in raw:
                setattr(sprint, attr, _convert(kind, raw[source_key]))
        return sprint

    if not isinstance(raw, str):
        raise ValueError("invalid sprint value")

    start = raw.find("[")
    end = raw.rfind("]")
    if start == -1 or end == -1:
        raise ValueError("invalid sprint string format")

    for part in raw[start + 1:end].split(","):
        source_key, sep, value = part.strip().partition("=")
        if not sep or source_key not in _SPRINT_ATTRIBUTES:
            continue
        attr, kind = _SPRINT_ATTRIBUTES[source_key]
        setattr(sprint, attr, _convert(kind, value.strip()))

    return sprint


@dataclass(frozen=True)
class IssueRecord:
    """Current field state of a cached issue."""

    key: str
    project_key: str = ""
    created: str = ""
    parent_key: Optional[str] = None
    sprints: tuple = ()
    story_points: Optional[float] = None
    status: str = ""
    updated: Optional[str] = None
    fetched: Optional[str] = None

    @property
    def sprint_names(self) -> list:
        return [sprint.name for sprint in self.sprints if sprint.name]

    @classmethod
    def from_json(cls, key: str, data, sprint_field: str, story_points_field: str) -> "IssueRecord":
        """Decode a cached ``<KEY>.json`` payload.

        Args:
            key: Key the record was requested under (used in errors)
            data: Parsed JSON document
            sprint_field: Custom field id holding current sprints
            story_points_field: Custom field id holding the current estimate
        """
        if not isinstance(data, dict):
            raise MalformedRecord(key, "issue is not an object")
        fields = data.get("fields")
        if not isinstance(fields, dict):
            raise MalformedRecord(key, "issue has no fields object")

        parent = fields.get("parent") or {}
        project = fields.get("project") or {}
        status = fields.get("status") or {}
        if not all(isinstance(obj, dict) for obj in (parent, project, status)):
            raise MalformedRecord(key, "parent, project and status must be objects")

        raw_sprints = fields.get(sprint_field) or []
        if not isinstance(raw_sprints, list):
            raise MalformedRecord(key, f"{sprint_field} is not a list")
        sprints = []
        for raw in raw_sprints:
            try:
                sprints.append(parse_sprint(raw))
            except ValueError:
                continue

        story_points = fields.get(story_points_field)
        if story_points is not None:
            try:
                story_points = float(story_points)
            except (TypeError, ValueError):
                story_points = None

        issue_key = data.get("key") or key
        return cls(
            key=issue_key,
            project_key=project.get("key") or issue_key.split("-")[0],
            created=fields.get("created") or "",
            parent_key=parent.get("key") or None,
            sprints=tuple(sprints),
            story_points=story_points,
            status=status.get("name", ""),
            updated=fields.get("updated"),
            fetched=data.get("fetched"),
        )


@dataclass
class MembershipWindow:
    """Half-open interval [start, end) of sprint membership; end None = open."""

    start: datetime
    end: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.end is None


@dataclass(frozen=True)
class PairMeta:
    story_points: float = 0.0
    status: str = ""


@dataclass
class Snapshot:
    """Aggregate for one (timestamp label, sprint) bucket."""

    timestamp: str
    sprint: str
    issues: set = field(default_factory=set)
    story_points: float = 0.0
    statuses: Counter = field(default_factory=Counter)

    @property
    def issue_count(self) -> int:
        return len(self.issues)
