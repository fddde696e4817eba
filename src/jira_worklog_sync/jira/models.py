"""Pydantic models for Jira REST API payloads."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from jira_worklog_sync.jira.adf import extract_text
from jira_worklog_sync.utils.timefmt import parse_wire


class JiraUser(BaseModel):
    """Authenticated Jira account."""

    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(alias="accountId")
    display_name: str = Field(alias="displayName")
    email_address: str | None = Field(default=None, alias="emailAddress")


class JiraNamed(BaseModel):
    name: str


class JiraProjectRef(BaseModel):
    key: str


class JiraIssueFields(BaseModel):
    model_config = ConfigDict(extra="ignore")

    summary: str
    status: JiraNamed | None = None
    issuetype: JiraNamed | None = None
    project: JiraProjectRef | None = None


class JiraIssueRaw(BaseModel):
    """Issue as returned by the search endpoint."""

    model_config = ConfigDict(extra="ignore")

    key: str
    fields: JiraIssueFields


class JiraSearchResponse(BaseModel):
    """One page of the enhanced JQL search."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    issues: list[JiraIssueRaw] = Field(default_factory=list)
    next_page_token: str | None = Field(default=None, alias="nextPageToken")
    is_last: bool = Field(default=True, alias="isLast")


class JiraIssue(BaseModel):
    """Flattened issue used throughout the application."""

    issue_key: str
    summary: str
    project_key: str = ""
    status: str | None = None
    issue_type: str | None = None

    @classmethod
    def from_raw(cls, raw: JiraIssueRaw) -> "JiraIssue":
        """Flatten a search result issue."""
        fields = raw.fields
        return cls(
            issue_key=raw.key,
            summary=fields.summary,
            project_key=fields.project.key if fields.project else "",
            status=fields.status.name if fields.status else None,
            issue_type=fields.issuetype.name if fields.issuetype else None,
        )


class JiraWorklogAuthor(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    account_id: str = Field(alias="accountId")


class JiraWorklog(BaseModel):
    """Worklog as returned by the issue worklog endpoints."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    started: str
    updated: str
    time_spent_seconds: int = Field(alias="timeSpentSeconds")
    comment: Any = None
    author: JiraWorklogAuthor

    @property
    def started_at(self) -> datetime:
        """Start instant parsed from the wire format."""
        return parse_wire(self.started)

    @property
    def description(self) -> str:
        """Plain-text comment."""
        return extract_text(self.comment)


class JiraWorklogPage(BaseModel):
    """One page of the issue worklog listing."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    start_at: int = Field(default=0, alias="startAt")
    max_results: int = Field(default=0, alias="maxResults")
    total: int = 0
    worklogs: list[JiraWorklog] = Field(default_factory=list)


class JiraWorklogRef(BaseModel):
    """Response of a worklog create or update."""

    model_config = ConfigDict(extra="ignore")

    id: str
    updated: str | None = None
