"""Jira REST API client used to fill the issue cache."""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

import requests

from services.errors import (
    JiraAccessDenied, JiraNotFound, JiraRateLimited, JiraRequestError, UnparsableTimestamp
)
from services.models import parse_jira_timestamp, parse_sprint

logger = logging.getLogger(__name__)


class JiraClient:
    """Thin wrapper over the Jira v2 REST API with 429 backoff."""

    MAX_ATTEMPTS = 5
    PAGE_SIZE = 100

    def __init__(self, base_url: str, token: str, throttle: float = 0.5, timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.throttle = throttle
        self.timeout = timeout

    def _request(self, endpoint: str, params: Optional[dict] = None):
        """GET an endpoint and return its JSON body.

        Retries on 429, sleeping ``attempt`` seconds between attempts.

        Raises:
            JiraNotFound: 404
            JiraAccessDenied: 403
            JiraRateLimited: still 429 after MAX_ATTEMPTS
            JiraRequestError: transport failure or any other non-200 status
        """
        url = f"{self.base_url}{endpoint}"

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            if attempt == 1:
                logger.info(f"GET {url}")
            else:
                logger.info(f"GET {url} (attempt {attempt})")

            try:
                response = requests.get(
                    url,
                    headers={
                        "Authorization": f"Bearer {self.token}",
                        "Accept": "application/json",
                    },
                    params=params,
                    timeout=self.timeout
                )
            except requests.exceptions.RequestException as e:
                raise JiraRequestError(f"request error: {e}")

            if response.status_code == 429:
                logger.warning(f"Rate limit exceeded. Sleeping {attempt} seconds before retrying...")
                time.sleep(attempt)
                continue

            if response.status_code == 404:
                raise JiraNotFound("resource not found (404)", status_code=404)

            if response.status_code == 403:
                raise JiraAccessDenied("access denied (403)", status_code=403)

            if response.status_code != 200:
                raise JiraRequestError(
                    f"unexpected status {response.status_code}: {response.text}",
                    status_code=response.status_code
                )

            try:
                data = response.json()
            except ValueError as e:
                raise JiraRequestError(f"invalid JSON response: {e}")

            if self.throttle:
                time.sleep(self.throttle)
            return data

        raise JiraRateLimited(f"exceeded retries for GET {url}", status_code=429)

    def get_issue_with_changelog(self, issue_key: str) -> dict:
        return self._request(f"/rest/api/2/issue/{issue_key}", params={"expand": "changelog"})

    def get_highest_issue_key(self, project: str) -> Optional[str]:
        """Key of the most recently created issue in a project."""
        data = self._request(
            "/rest/api/2/search",
            params={
                "jql": f"project={project} ORDER BY created DESC",
                "maxResults": 1,
                "fields": "key"
            }
        )
        issues = data.get("issues", [])
        if not issues:
            return None
        return issues[0].get("key")

    def _search_updated(self, jql: str):
        """Yield (key, updated) for every issue matching ``jql``, page by page."""
        start_at = 0

        while True:
            data = self._request(
                "/rest/api/2/search",
                params={
                    "jql": jql,
                    "fields": "key,updated",
                    "startAt": start_at,
                    "maxResults": self.PAGE_SIZE
                }
            )

            issues = data.get("issues", [])
            total = data.get("total", 0)
            logger.info(f"Fetched {len(issues)} issues (startAt={start_at}/{total})")

            for issue in issues:
                key = issue.get("key")
                updated = issue.get("fields", {}).get("updated")
                try:
                    yield key, parse_jira_timestamp(updated)
                except UnparsableTimestamp:
                    logger.warning(f"could not parse updated time for {key}: {updated!r}")

            start_at += len(issues)
            if start_at >= total or not issues:
                break

    def query_updated_issues(self, project: str, since: datetime, is_current=None) -> list:
        """Issues updated since ``since``, newest first.

        Args:
            project: Jira project key
            since: Lower bound for ``updated``
            is_current: Optional callable (key, updated) -> bool. Paging stops
                at the first issue for which it returns True, since everything
                older is already cached.

        Returns:
            List of (key, updated) tuples
        """
        since_utc = since.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M")
        jql = f'project = {project} AND updated >= "{since_utc}" ORDER BY updated DESC'

        results = []
        for key, updated in self._search_updated(jql):
            if is_current and is_current(key, updated):
                logger.info(f"Stopping early at {key}: already up-to-date")
                break
            results.append((key, updated))

        logger.info(f"Total updated issues to refetch: {len(results)}")
        return results

    def get_issues_in_sprint(self, project: str, sprint_id: int) -> list:
        """Keys of issues currently in a sprint."""
        jql = f"project = {project} AND Sprint = {sprint_id} ORDER BY key ASC"
        return [key for key, _ in self._search_updated(jql)]

    def lookup_sprint_id(self, project: str, sprint_name: str, sprint_field: str) -> Optional[int]:
        """Find a sprint id by name through a JQL search."""
        escaped = sprint_name.replace('"', '\\"')
        data = self._request(
            "/rest/api/2/search",
            params={
                "jql": f'project = {project} AND Sprint ~ "{escaped}"',
                "fields": f"key,{sprint_field}",
                "maxResults": 20
            }
        )

        for issue in data.get("issues", []):
            for raw in issue.get("fields", {}).get(sprint_field) or []:
                try:
                    sprint = parse_sprint(raw)
                except ValueError:
                    continue
                if sprint.name == sprint_name:
                    return sprint.id
        return None
