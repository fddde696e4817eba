"""Pytest configuration and fixtures."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from jira_worklog_sync.config import Config
from jira_worklog_sync.jira import JiraClient, JiraIssue, JiraUser, JiraWorklog
from jira_worklog_sync.ledger import LedgerStore
from jira_worklog_sync.sync import SessionContext
from jira_worklog_sync.utils import StorageManager

UTC_MINUS_5 = timezone(timedelta(hours=-5))


class FakeClock:
    """Controllable clock returning aware datetimes."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def temp_config_dir() -> Path:
    """Create a temporary configuration directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage_manager(temp_config_dir: Path) -> StorageManager:
    """Create a storage manager with temporary directory."""
    return StorageManager(temp_config_dir)


@pytest.fixture
def config(temp_config_dir: Path) -> Config:
    """Create a config instance with temporary directory."""
    return Config(temp_config_dir)


@pytest.fixture
async def ledger(temp_config_dir: Path) -> LedgerStore:
    """Create a ledger on a temporary SQLite file."""
    store = LedgerStore(temp_config_dir / "ledger.db")
    await store.create_schema()
    yield store
    await store.close()


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at 2024-03-01 09:00 in UTC-5."""
    return FakeClock(datetime(2024, 3, 1, 9, 0, tzinfo=UTC_MINUS_5))


@pytest.fixture
def sample_user() -> JiraUser:
    """Create a sample Jira account."""
    return JiraUser(accountId="acc-1", displayName="Jane Doe", emailAddress="jane@example.com")


@pytest.fixture
def sample_issue() -> JiraIssue:
    """Create a sample Jira issue."""
    return JiraIssue(
        issue_key="OPS-12",
        summary="Rotate certificates",
        project_key="OPS",
        status="In Progress",
        issue_type="Task",
    )


def make_worklog(
    worklog_id: str,
    started: str,
    seconds: int = 3600,
    updated: str = "2024-03-01T10:00:00.000-0500",
    comment=None,
    account_id: str = "acc-1",
) -> JiraWorklog:
    """Build a Jira worklog payload model."""
    return JiraWorklog.model_validate(
        {
            "id": worklog_id,
            "started": started,
            "updated": updated,
            "timeSpentSeconds": seconds,
            "comment": comment,
            "author": {"accountId": account_id},
        }
    )


@pytest.fixture
def mock_client(sample_user: JiraUser) -> MagicMock:
    """Create a mock JiraClient with async methods."""
    client = MagicMock(spec=JiraClient)
    client.identify = AsyncMock(return_value=sample_user)
    client.search_issues = AsyncMock(return_value=[])
    client.list_worklogs = AsyncMock(return_value=[])
    client.create_worklog = AsyncMock()
    client.update_worklog = AsyncMock()
    client.delete_worklog = AsyncMock(return_value=None)
    return client


@pytest.fixture
def context() -> SessionContext:
    """Create an empty session context."""
    return SessionContext()


@pytest.fixture
def worklog_factory():
    """Factory for Jira worklog models."""
    return make_worklog
