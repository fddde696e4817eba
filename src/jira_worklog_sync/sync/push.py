"""Upload of local worklog entries to Jira."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date

from jira_worklog_sync.config import DEFAULT_PUSH_DELAY
from jira_worklog_sync.errors import (
    AlreadySynced,
    InvalidState,
    InvalidTimestamp,
    PartialFailure,
    RemoteError,
    WorklogSyncError,
)
from jira_worklog_sync.jira import JiraClient
from jira_worklog_sync.ledger import LedgerStore, SyncStatus, WorklogEntry
from jira_worklog_sync.utils.timefmt import day_bounds, parse_stored

logger = logging.getLogger(__name__)


@dataclass
class PushSummary:
    """Outcome of a batch push."""

    total: int = 0
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def add_success(self) -> None:
        self.success += 1

    def add_failure(self, issue_key: str, error: str) -> None:
        self.failed += 1
        self.errors.append(f"{issue_key}: {error}")

    def raise_for_failures(self) -> None:
        """Raise PartialFailure if any entry failed."""
        if self.failed:
            raise PartialFailure(
                f"{self.failed} of {self.total} worklogs failed to push", self.errors
            )

    def __str__(self) -> str:
        return f"Total: {self.total}, Pushed: {self.success}, Failed: {self.failed}"


class PushEngine:
    """Pushes entries to Jira and keeps their sync status current."""

    def __init__(
        self,
        store: LedgerStore,
        client: JiraClient,
        delay: float = DEFAULT_PUSH_DELAY,
    ) -> None:
        """Initialize push engine.

        Args:
            store: Local ledger.
            client: Jira API client.
            delay: Seconds to wait between uploads of a batch.
        """
        self.store = store
        self.client = client
        self.delay = delay

    async def push_one(self, worklog_id: int) -> str:
        """Create the Jira worklog for one entry.

        The outcome is recorded on the entry either way: ``synced`` with the
        remote id, or ``error`` with the failure message.

        Returns:
            The Jira worklog id.

        Raises:
            NotFound: If the entry does not exist.
            AlreadySynced: If the entry is already synced.
            InvalidTimestamp: If the stored start is not a timestamp with offset.
            RemoteError: If Jira rejected the worklog.
        """
        entry = await self.store.get_worklog(worklog_id)
        return await self._push(entry)

    async def _push(self, entry: WorklogEntry) -> str:
        if entry.sync_status == SyncStatus.SYNCED:
            raise AlreadySynced()
        started_at = parse_stored(entry.started_at)

        try:
            ref = await self.client.create_worklog(
                entry.issue_key,
                entry.duration_seconds,
                started_at,
                entry.description,
            )
        except RemoteError as e:
            await self.store.mark_error(entry.id, str(e))
            logger.warning(f"Failed to push worklog {entry.id} ({entry.issue_key}): {e}")
            raise

        if await self.store.mark_synced(entry.id, ref.id, ref.updated):
            logger.info(f"Pushed worklog {entry.id} to {entry.issue_key} as Jira worklog {ref.id}")
        return ref.id

    async def push_all_pending(self, day: date) -> PushSummary:
        """Push every pending entry that started on a local calendar day.

        Entries are pushed one after another with a fixed delay in between;
        a failing entry is recorded and the batch continues.
        """
        start, end = day_bounds(day)
        entries = await self.store.worklogs_between(start, end, SyncStatus.PENDING)
        summary = PushSummary(total=len(entries))
        logger.info(f"Pushing {len(entries)} pending worklogs for {day}")

        for index, entry in enumerate(entries):
            if index > 0 and self.delay > 0:
                await asyncio.sleep(self.delay)
            try:
                # Re-read: the entry may have been pushed or deleted meanwhile
                current = await self.store.get_worklog(entry.id)
                await self._push(current)
                summary.add_success()
            except RemoteError as e:
                summary.add_failure(entry.issue_key, str(e))
            except InvalidTimestamp as e:
                await self.store.mark_error(entry.id, str(e))
                logger.warning(f"Skipped worklog {entry.id} ({entry.issue_key}): {e}")
                summary.add_failure(entry.issue_key, str(e))
            except WorklogSyncError as e:
                logger.warning(f"Skipped worklog {entry.id} ({entry.issue_key}): {e}")
                summary.add_failure(entry.issue_key, str(e))

        logger.info(f"Push complete: {summary}")
        return summary

    async def update_remote(
        self,
        worklog_id: int,
        duration_seconds: int | None = None,
        description: str | None = None,
        started_at: str | None = None,
    ) -> WorklogEntry:
        """Change a synced entry in Jira, then locally.

        Nothing changes locally until Jira has accepted the update.

        Raises:
            NotFound: If the entry does not exist.
            InvalidState: If the entry is not synced.
            InvalidTimestamp: If the start (stored or supplied) cannot be parsed.
            RemoteError: If Jira rejected the update.
        """
        entry = await self.store.get_worklog(worklog_id)
        if entry.sync_status != SyncStatus.SYNCED or not entry.jira_worklog_id:
            raise InvalidState("Only synced worklogs can be updated in Jira")
        if duration_seconds is not None and duration_seconds < 0:
            raise ValueError("Duration must not be negative")

        new_duration = entry.duration_seconds if duration_seconds is None else duration_seconds
        new_description = entry.description if description is None else description
        stored_start = self.store.normalize_start(
            entry.started_at if started_at is None else started_at
        )
        new_started = parse_stored(stored_start)

        ref = await self.client.update_worklog(
            entry.issue_key,
            entry.jira_worklog_id,
            new_duration,
            new_started,
            new_description,
        )

        await self.store.apply_remote_state(
            entry.id,
            started_at=stored_start,
            duration_seconds=new_duration,
            description=new_description,
            jira_updated_at=ref.updated,
        )
        logger.info(f"Updated Jira worklog {entry.jira_worklog_id} on {entry.issue_key}")
        return await self.store.get_worklog(entry.id)

    async def delete_remote(self, worklog_id: int) -> None:
        """Delete a synced entry from Jira, then remove it locally.

        Raises:
            NotFound: If the entry does not exist.
            InvalidState: If the entry is not synced.
            RemoteError: If Jira refused the deletion; the local row is kept.
        """
        entry = await self.store.get_worklog(worklog_id)
        if entry.sync_status != SyncStatus.SYNCED or not entry.jira_worklog_id:
            raise InvalidState("Only synced worklogs can be deleted from Jira")

        await self.client.delete_worklog(entry.issue_key, entry.jira_worklog_id)
        await self.store.remove_synced(entry.id)
        logger.info(f"Deleted Jira worklog {entry.jira_worklog_id} on {entry.issue_key}")
