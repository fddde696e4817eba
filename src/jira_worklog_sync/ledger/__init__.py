"""Local ledger of worklog entries."""

from jira_worklog_sync.ledger.schemas import NewWorklog, SyncStatus, WorklogEntry, WorklogFilter
from jira_worklog_sync.ledger.store import LedgerStore

__all__ = [
    "LedgerStore",
    "NewWorklog",
    "SyncStatus",
    "WorklogEntry",
    "WorklogFilter",
]
