"""Exceptions raised by the sprint tracker services."""

from typing import Optional


class TrackerError(Exception):
    """Base class for all sprint tracker errors."""


class NotFoundInCache(TrackerError):
    """Issue record is not present in the local cache."""

    def __init__(self, key: str):
        super().__init__(f"{key} not found in cache")
        self.key = key


class MalformedRecord(TrackerError):
    """Cached issue or changelog could not be decoded."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"malformed cache entry for {key}: {reason}")
        self.key = key
        self.reason = reason


class UnparsableTimestamp(TrackerError):
    """History entry timestamp does not match the Jira format."""

    def __init__(self, value):
        super().__init__(f"unparsable timestamp: {value!r}")
        self.value = value


class InvalidConfiguration(TrackerError):
    """Fatal configuration problem detected before processing starts."""


class SinkWriteFailure(TrackerError):
    """The report could not be written to its destination."""


class JiraRequestError(TrackerError):
    """Jira REST call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class JiraNotFound(JiraRequestError):
    """Jira answered 404."""


class JiraAccessDenied(JiraRequestError):
    """Jira answered 403; the issue should be marked as denied."""


class JiraRateLimited(JiraRequestError):
    """Retries were exhausted while Jira kept answering 429."""
