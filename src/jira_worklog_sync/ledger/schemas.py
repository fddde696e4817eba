"""Pydantic views of ledger rows."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SyncStatus(str, Enum):
    """Relationship of a ledger entry to Jira."""

    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


class WorklogEntry(BaseModel):
    """A ledger entry as handed to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    issue_key: str
    started_at: str
    duration_seconds: int
    description: str = ""
    sync_status: SyncStatus
    jira_worklog_id: str | None = None
    jira_updated_at: str | None = None
    sync_error: str | None = None
    created_at: str
    updated_at: str
    issue_summary: str | None = None


class NewWorklog(BaseModel):
    """Values of an entry about to be inserted."""

    issue_key: str
    started_at: str
    duration_seconds: int = Field(ge=0)
    description: str = ""
    sync_status: SyncStatus = SyncStatus.PENDING
    jira_worklog_id: str | None = None
    jira_updated_at: str | None = None


class WorklogFilter(BaseModel):
    """Listing filter; ``sync_status="all"`` disables the status filter.

    ``date_from`` is inclusive and ``date_to`` exclusive, both compared
    against the stored start timestamp.
    """

    issue_key: str | None = None
    sync_status: str | None = None
    date_from: str | None = None
    date_to: str | None = None
