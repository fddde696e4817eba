"""Jira Cloud REST API client."""

import logging
from datetime import datetime
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from jira_worklog_sync.errors import ApiError, AuthError, DecodeError, TransportError
from jira_worklog_sync.jira.adf import text_to_adf
from jira_worklog_sync.jira.models import (
    JiraIssue,
    JiraSearchResponse,
    JiraUser,
    JiraWorklog,
    JiraWorklogPage,
    JiraWorklogRef,
)
from jira_worklog_sync.utils.timefmt import format_wire

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SEARCH_FIELDS = ["summary", "status", "issuetype", "project"]
SEARCH_PAGE_SIZE = 100


class JiraClient:
    """Async client for the Jira REST API v3, authenticated with email + API token."""

    API_PREFIX = "/rest/api/3"

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Jira client.

        Args:
            base_url: Jira site URL (e.g., 'https://mycompany.atlassian.net').
            email: Account email used for Basic authentication.
            api_token: Jira API token.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (confirmation prompts, tests).
        """
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=f"{self.base_url}{self.API_PREFIX}",
            auth=httpx.BasicAuth(email, api_token),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request and translate transport and status failures.

        Raises:
            TransportError: If no response was received.
            AuthError: On 401 or 403.
            ApiError: On any other non-2xx status.
        """
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.debug(f"{method} {path} failed: {e}")
            raise TransportError(f"Request failed: {e}") from e

        logger.debug(f"{method} {path} -> {response.status_code}")
        if response.is_success:
            return response

        message = _status_message(response)
        if response.status_code in (401, 403):
            raise AuthError(message, response.status_code)
        raise ApiError(message, response.status_code)

    @staticmethod
    def _decode(response: httpx.Response, model: type[ModelT]) -> ModelT:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            preview = response.text[:500]
            raise DecodeError(f"Failed to parse response: {e}. Body preview: {preview}") from e

    async def identify(self) -> JiraUser:
        """Get the authenticated account.

        Returns:
            Account id and display name.

        Raises:
            AuthError: On any non-2xx answer.
            TransportError: If the request could not be sent.
            DecodeError: If the payload is malformed.
        """
        try:
            response = await self._request("GET", "/myself")
        except ApiError as e:
            raise AuthError(str(e), e.status_code) from e
        return self._decode(response, JiraUser)

    async def search_issues(self, jql: str, max_results: int | None = 50) -> list[JiraIssue]:
        """Search issues with JQL, following ``nextPageToken`` across pages.

        Args:
            jql: JQL query.
            max_results: Maximum number of issues returned, or None for all.

        Returns:
            Issues in the order Jira returned them.
        """
        issues: list[JiraIssue] = []
        page_token: str | None = None

        while max_results is None or len(issues) < max_results:
            page_size = SEARCH_PAGE_SIZE
            if max_results is not None:
                page_size = min(page_size, max_results - len(issues))
            body: dict[str, Any] = {
                "jql": jql,
                "fields": SEARCH_FIELDS,
                "maxResults": page_size,
            }
            if page_token:
                body["nextPageToken"] = page_token

            response = await self._request("POST", "/search/jql", json=body)
            page = self._decode(response, JiraSearchResponse)
            issues.extend(JiraIssue.from_raw(raw) for raw in page.issues)

            page_token = page.next_page_token
            if page.is_last or not page_token or not page.issues:
                break

        return issues

    async def list_worklogs(
        self,
        issue_key: str,
        started_after: int | None = None,
    ) -> list[JiraWorklog]:
        """List every worklog of an issue, following pagination.

        Args:
            issue_key: Issue key (e.g., 'OPS-12').
            started_after: Only worklogs started at or after this epoch (milliseconds).

        Returns:
            Worklogs of the issue.
        """
        worklogs: list[JiraWorklog] = []
        start_at = 0

        while True:
            params: dict[str, Any] = {"startAt": start_at}
            if started_after is not None:
                params["startedAfter"] = started_after

            response = await self._request("GET", f"/issue/{issue_key}/worklog", params=params)
            page = self._decode(response, JiraWorklogPage)
            worklogs.extend(page.worklogs)

            start_at = page.start_at + len(page.worklogs)
            if not page.worklogs or start_at >= page.total:
                return worklogs

    async def create_worklog(
        self,
        issue_key: str,
        duration_seconds: int,
        started_at: datetime,
        comment: str = "",
    ) -> JiraWorklogRef:
        """Add a worklog to an issue.

        Args:
            issue_key: Issue key.
            duration_seconds: Time spent in seconds.
            started_at: Aware start instant.
            comment: Plain-text comment, omitted when empty.

        Returns:
            Reference holding the new remote worklog id.
        """
        body = _worklog_body(duration_seconds, started_at, comment)
        response = await self._request("POST", f"/issue/{issue_key}/worklog", json=body)
        return self._decode(response, JiraWorklogRef)

    async def update_worklog(
        self,
        issue_key: str,
        worklog_id: str,
        duration_seconds: int,
        started_at: datetime,
        comment: str = "",
    ) -> JiraWorklogRef:
        """Replace an existing worklog's duration, start and comment."""
        body = _worklog_body(duration_seconds, started_at, comment)
        response = await self._request(
            "PUT",
            f"/issue/{issue_key}/worklog/{worklog_id}",
            json=body,
        )
        return self._decode(response, JiraWorklogRef)

    async def delete_worklog(self, issue_key: str, worklog_id: str) -> None:
        """Delete a worklog."""
        await self._request("DELETE", f"/issue/{issue_key}/worklog/{worklog_id}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "JiraClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def _worklog_body(duration_seconds: int, started_at: datetime, comment: str) -> dict[str, Any]:
    body: dict[str, Any] = {
        "timeSpentSeconds": duration_seconds,
        "started": format_wire(started_at),
    }
    if comment:
        body["comment"] = text_to_adf(comment)
    return body


def _status_message(response: httpx.Response) -> str:
    """Build 'Jira API error: 400 Bad Request (...)' including Jira's own messages."""
    message = f"Jira API error: {response.status_code} {response.reason_phrase}"
    try:
        data = response.json()
    except ValueError:
        return message

    details: list[str] = []
    if isinstance(data, dict):
        details.extend(str(m) for m in data.get("errorMessages") or [])
        errors = data.get("errors") or {}
        if isinstance(errors, dict):
            details.extend(f"{field}: {text}" for field, text in errors.items())
    if details:
        message = f"{message} ({'; '.join(details)})"
    return message
