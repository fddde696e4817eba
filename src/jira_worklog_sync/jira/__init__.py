"""Jira REST API integration."""

from jira_worklog_sync.jira.client import JiraClient
from jira_worklog_sync.jira.models import (
    JiraIssue,
    JiraUser,
    JiraWorklog,
    JiraWorklogRef,
)

__all__ = [
    "JiraClient",
    "JiraIssue",
    "JiraUser",
    "JiraWorklog",
    "JiraWorklogRef",
]
