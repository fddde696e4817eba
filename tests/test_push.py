"""Tests for the push engine."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from jira_worklog_sync.errors import (
    AlreadySynced,
    ApiError,
    InvalidState,
    InvalidTimestamp,
    PartialFailure,
    TransportError,
)
from jira_worklog_sync.jira import JiraWorklogRef
from jira_worklog_sync.ledger import LedgerStore, NewWorklog, SyncStatus
from jira_worklog_sync.sync import PushEngine, PushSummary

UTC_MINUS_5 = timezone(timedelta(hours=-5))


def new_entry(
    issue_key: str = "OPS-12",
    started_at: str = "2024-03-01T09:00:00-05:00",
    duration: int = 1500,
) -> NewWorklog:
    return NewWorklog(issue_key=issue_key, started_at=started_at, duration_seconds=duration)


@pytest.fixture
def engine(ledger: LedgerStore, mock_client: MagicMock) -> PushEngine:
    return PushEngine(ledger, mock_client, delay=0)


class TestPushOne:
    """Test pushing single entries."""

    async def test_success(self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock) -> None:
        """Test that a pushed entry becomes synced with the remote id."""
        mock_client.create_worklog.return_value = JiraWorklogRef(id="10042", updated="u1")
        entry = await ledger.add_worklog(new_entry())

        jira_id = await engine.push_one(entry.id)

        assert jira_id == "10042"
        mock_client.create_worklog.assert_awaited_once_with(
            "OPS-12", 1500, datetime(2024, 3, 1, 9, tzinfo=UTC_MINUS_5), ""
        )
        loaded = await ledger.get_worklog(entry.id)
        assert loaded.sync_status == SyncStatus.SYNCED
        assert loaded.jira_worklog_id == "10042"
        assert loaded.jira_updated_at == "u1"
        assert loaded.sync_error is None

    async def test_remote_failure_marks_error(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that a rejected entry records the error and nothing else."""
        mock_client.create_worklog.side_effect = ApiError("Jira API error: 400 Bad Request", 400)
        entry = await ledger.add_worklog(new_entry())

        with pytest.raises(ApiError):
            await engine.push_one(entry.id)

        loaded = await ledger.get_worklog(entry.id)
        assert loaded.sync_status == SyncStatus.ERROR
        assert loaded.sync_error == "Jira API error: 400 Bad Request"
        assert loaded.jira_worklog_id is None
        assert loaded.duration_seconds == 1500
        assert loaded.started_at == "2024-03-01T09:00:00-05:00"

    async def test_error_entry_can_be_retried(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that an entry in error can be pushed again."""
        entry = await ledger.add_worklog(new_entry())
        await ledger.mark_error(entry.id, "timeout")
        mock_client.create_worklog.return_value = JiraWorklogRef(id="7")

        await engine.push_one(entry.id)

        assert (await ledger.get_worklog(entry.id)).sync_status == SyncStatus.SYNCED

    async def test_already_synced(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that a synced entry is not pushed twice."""
        entry = await ledger.add_worklog(new_entry())
        await ledger.mark_synced(entry.id, "10042")

        with pytest.raises(AlreadySynced):
            await engine.push_one(entry.id)

        mock_client.create_worklog.assert_not_awaited()

    async def test_invalid_stored_start(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that a start without offset is rejected before any remote call."""
        entry = await ledger.add_worklog(new_entry(started_at="2024-03-01T09:00:00"))

        with pytest.raises(InvalidTimestamp):
            await engine.push_one(entry.id)

        mock_client.create_worklog.assert_not_awaited()
        assert (await ledger.get_worklog(entry.id)).sync_status == SyncStatus.PENDING


class TestPushAll:
    """Test pushing every pending entry of a day."""

    async def test_partial_failure(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that one failing entry does not stop the batch."""
        await ledger.add_worklog(new_entry("OPS-12", "2024-03-01T09:00:00-05:00"))
        await ledger.add_worklog(new_entry("KEY-9", "2024-03-01T10:00:00-05:00"))
        await ledger.add_worklog(new_entry("OPS-13", "2024-03-01T11:00:00-05:00"))
        await ledger.add_worklog(new_entry("OPS-14", "2024-03-02T09:00:00-05:00"))

        async def create(issue_key, duration_seconds, started_at, comment=""):
            if issue_key == "KEY-9":
                raise ApiError("Jira API error: 400 Bad Request", 400)
            return JiraWorklogRef(id=f"id-{issue_key}")

        mock_client.create_worklog.side_effect = create

        summary = await engine.push_all_pending(date(2024, 3, 1))

        assert summary == PushSummary(
            total=3, success=2, failed=1, errors=["KEY-9: Jira API error: 400 Bad Request"]
        )
        assert mock_client.create_worklog.await_count == 3
        with pytest.raises(PartialFailure) as exc_info:
            summary.raise_for_failures()
        assert exc_info.value.failures == ["KEY-9: Jira API error: 400 Bad Request"]

    async def test_invalid_timestamp_recorded_as_error(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that an unparseable start marks the entry and the batch continues."""
        bad = await ledger.add_worklog(new_entry("OPS-1", "2024-03-01T08:00:00"))
        await ledger.add_worklog(new_entry("OPS-2", "2024-03-01T09:00:00-05:00"))
        mock_client.create_worklog.return_value = JiraWorklogRef(id="1")

        summary = await engine.push_all_pending(date(2024, 3, 1))

        assert (summary.success, summary.failed) == (1, 1)
        loaded = await ledger.get_worklog(bad.id)
        assert loaded.sync_status == SyncStatus.ERROR
        assert "missing UTC offset" in loaded.sync_error

    async def test_worklog_already_imported(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that an entry whose Jira worklog was imported meanwhile is merged away."""
        await ledger.insert_synced_if_absent(
            NewWorklog(
                issue_key="OPS-12",
                started_at="2024-03-01T09:00:00-05:00",
                duration_seconds=1500,
                sync_status=SyncStatus.SYNCED,
                jira_worklog_id="10042",
            )
        )
        first = await ledger.add_worklog(new_entry("OPS-12", "2024-03-01T09:00:00-05:00"))
        second = await ledger.add_worklog(new_entry("OPS-13", "2024-03-01T10:00:00-05:00"))
        mock_client.create_worklog.side_effect = [
            JiraWorklogRef(id="10042"),
            JiraWorklogRef(id="10043"),
        ]

        summary = await engine.push_all_pending(date(2024, 3, 1))

        assert (summary.success, summary.failed) == (2, 0)
        assert mock_client.create_worklog.await_count == 2
        entries = await ledger.list_worklogs()
        assert sorted(e.jira_worklog_id for e in entries) == ["10042", "10043"]
        assert all(e.sync_status == SyncStatus.SYNCED for e in entries)
        assert first.id not in {e.id for e in entries}
        assert (await ledger.get_worklog(second.id)).jira_worklog_id == "10043"

    async def test_delay_between_pushes(
        self, ledger: LedgerStore, mock_client: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that uploads are paced by the configured delay."""
        sleep = AsyncMock()
        monkeypatch.setattr("jira_worklog_sync.sync.push.asyncio.sleep", sleep)
        for hour in (9, 10, 11):
            await ledger.add_worklog(new_entry(started_at=f"2024-03-01T{hour:02d}:00:00-05:00"))
        mock_client.create_worklog.side_effect = [JiraWorklogRef(id=str(n)) for n in range(3)]

        summary = await PushEngine(ledger, mock_client, delay=0.2).push_all_pending(date(2024, 3, 1))

        assert summary.success == 3
        assert sleep.await_args_list == [call(0.2), call(0.2)]

    async def test_nothing_pending(self, engine: PushEngine) -> None:
        """Test an empty day."""
        summary = await engine.push_all_pending(date(2024, 3, 1))

        assert summary == PushSummary()
        summary.raise_for_failures()
        assert str(summary) == "Total: 0, Pushed: 0, Failed: 0"


class TestRemoteChanges:
    """Test update and delete of synced entries."""

    async def synced_entry(self, ledger: LedgerStore):
        entry = await ledger.add_worklog(new_entry())
        await ledger.mark_synced(entry.id, "10042", "u1")
        return entry

    async def test_update_remote(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that Jira is updated before the ledger."""
        entry = await self.synced_entry(ledger)
        mock_client.update_worklog.return_value = JiraWorklogRef(id="10042", updated="u2")

        updated = await engine.update_remote(entry.id, duration_seconds=1800, description="More")

        mock_client.update_worklog.assert_awaited_once_with(
            "OPS-12", "10042", 1800, datetime(2024, 3, 1, 9, tzinfo=UTC_MINUS_5), "More"
        )
        assert updated.duration_seconds == 1800
        assert updated.description == "More"
        assert updated.jira_updated_at == "u2"
        assert updated.sync_status == SyncStatus.SYNCED

    async def test_update_remote_failure_changes_nothing(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that a rejected update leaves the ledger untouched."""
        entry = await self.synced_entry(ledger)
        mock_client.update_worklog.side_effect = TransportError("Request failed: timeout")

        with pytest.raises(TransportError):
            await engine.update_remote(entry.id, duration_seconds=1800)

        loaded = await ledger.get_worklog(entry.id)
        assert loaded.duration_seconds == 1500
        assert loaded.jira_updated_at == "u1"

    async def test_delete_remote(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that a remote delete removes the local entry afterwards."""
        entry = await self.synced_entry(ledger)

        await engine.delete_remote(entry.id)

        mock_client.delete_worklog.assert_awaited_once_with("OPS-12", "10042")
        assert await ledger.find_by_jira_id("10042") is None

    async def test_delete_remote_failure_keeps_entry(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that a refused delete keeps the local entry."""
        entry = await self.synced_entry(ledger)
        mock_client.delete_worklog.side_effect = ApiError("Jira API error: 404 Not Found", 404)

        with pytest.raises(ApiError):
            await engine.delete_remote(entry.id)

        assert (await ledger.get_worklog(entry.id)).jira_worklog_id == "10042"

    async def test_pending_entries_cannot_change_remotely(
        self, engine: PushEngine, ledger: LedgerStore, mock_client: MagicMock
    ) -> None:
        """Test that only synced entries can be updated or deleted in Jira."""
        entry = await ledger.add_worklog(new_entry())

        with pytest.raises(InvalidState):
            await engine.update_remote(entry.id, duration_seconds=60)
        with pytest.raises(InvalidState):
            await engine.delete_remote(entry.id)

        mock_client.update_worklog.assert_not_awaited()
        mock_client.delete_worklog.assert_not_awaited()
