"""Synchronization between the local ledger and Jira."""

from jira_worklog_sync.sync.context import SessionContext
from jira_worklog_sync.sync.importer import ImportEngine, ImportSummary
from jira_worklog_sync.sync.push import PushEngine, PushSummary
from jira_worklog_sync.sync.search import search_issues

__all__ = [
    "ImportEngine",
    "ImportSummary",
    "PushEngine",
    "PushSummary",
    "SessionContext",
    "search_issues",
]
