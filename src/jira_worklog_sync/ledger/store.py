"""Async SQLite store for worklog entries, the active timer and the issue cache."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import tzinfo
from pathlib import Path

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from jira_worklog_sync.errors import InvalidState, NotFound
from jira_worklog_sync.jira.models import JiraIssue
from jira_worklog_sync.ledger.models import ActiveTimerRow, Base, IssueRow, WorklogRow
from jira_worklog_sync.ledger.schemas import NewWorklog, SyncStatus, WorklogEntry, WorklogFilter
from jira_worklog_sync.utils.timefmt import parse_stored, to_stored, utcnow_iso

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 5


def _to_entry(row: WorklogRow, issue_summary: str | None = None) -> WorklogEntry:
    entry = WorklogEntry.model_validate(row)
    entry.issue_summary = issue_summary
    return entry


class LedgerStore:
    """Durable ledger backed by SQLite through a bounded connection pool."""

    def __init__(
        self,
        database_path: Path | str,
        pool_size: int = DEFAULT_POOL_SIZE,
        tz: tzinfo | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            database_path: Path of the SQLite file (created on first use).
            pool_size: Maximum number of pooled connections.
            tz: Zone that hand-entered starts are stored in. None keeps the
                offset they were given with.
        """
        self.database_path = Path(database_path)
        self.tz = tz
        self.engine = create_async_engine(
            f"sqlite+aiosqlite:///{self.database_path}",
            poolclass=AsyncAdaptedQueuePool,
            pool_size=pool_size,
            max_overflow=0,
            connect_args={"timeout": 30},
        )
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_schema(self) -> None:
        """Create missing tables and indexes."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose of the connection pool."""
        await self.engine.dispose()

    def normalize_start(self, value: str) -> str:
        """Stored form of a start timestamp, converted to the ledger zone if set.

        Raises:
            InvalidTimestamp: If the value is not a timestamp with offset.
        """
        parsed = parse_stored(value)
        if self.tz is not None:
            parsed = parsed.astimezone(self.tz)
        return to_stored(parsed)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session whose work is committed atomically, or rolled back on error."""
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    # Worklog entries

    async def get_worklog(self, worklog_id: int) -> WorklogEntry:
        """Get one entry.

        Raises:
            NotFound: If no entry has this id.
        """
        async with self.transaction() as session:
            row = await session.get(WorklogRow, worklog_id)
            if row is None:
                raise NotFound("Worklog not found")
            summary = await session.scalar(
                select(IssueRow.summary).where(IssueRow.issue_key == row.issue_key)
            )
            return _to_entry(row, summary)

    async def list_worklogs(self, worklog_filter: WorklogFilter | None = None) -> list[WorklogEntry]:
        """List entries, newest start first.

        Args:
            worklog_filter: Optional issue, status and start-range filter.

        Returns:
            Matching entries with the cached issue summary attached.
        """
        stmt = select(WorklogRow, IssueRow.summary).outerjoin(
            IssueRow, WorklogRow.issue_key == IssueRow.issue_key
        )
        if worklog_filter is not None:
            if worklog_filter.sync_status and worklog_filter.sync_status != "all":
                stmt = stmt.where(WorklogRow.sync_status == worklog_filter.sync_status)
            if worklog_filter.issue_key:
                stmt = stmt.where(WorklogRow.issue_key == worklog_filter.issue_key)
            if worklog_filter.date_from:
                stmt = stmt.where(WorklogRow.started_at >= worklog_filter.date_from)
            if worklog_filter.date_to:
                stmt = stmt.where(WorklogRow.started_at < worklog_filter.date_to)
        stmt = stmt.order_by(WorklogRow.started_at.desc(), WorklogRow.id.desc())

        async with self.transaction() as session:
            result = await session.execute(stmt)
            return [_to_entry(row, summary) for row, summary in result.all()]

    async def insert_worklog(self, session: AsyncSession, new: NewWorklog) -> WorklogRow:
        """Insert an entry inside an existing transaction."""
        row = WorklogRow(
            issue_key=new.issue_key,
            started_at=new.started_at,
            duration_seconds=new.duration_seconds,
            description=new.description,
            sync_status=new.sync_status.value,
            jira_worklog_id=new.jira_worklog_id,
            jira_updated_at=new.jira_updated_at,
        )
        session.add(row)
        await session.flush()
        return row

    async def add_worklog(self, new: NewWorklog) -> WorklogEntry:
        """Insert an entry in its own transaction."""
        async with self.transaction() as session:
            row = await self.insert_worklog(session, new)
            return _to_entry(row)

    async def create_worklog(
        self,
        issue_key: str,
        started_at: str,
        duration_seconds: int,
        description: str = "",
    ) -> WorklogEntry:
        """Record a pending entry entered by hand.

        Raises:
            InvalidTimestamp: If the start is not a timestamp with offset.
            ValueError: If the duration is negative.
        """
        if duration_seconds < 0:
            raise ValueError("Duration must not be negative")
        return await self.add_worklog(
            NewWorklog(
                issue_key=issue_key,
                started_at=self.normalize_start(started_at),
                duration_seconds=duration_seconds,
                description=description,
            )
        )

    async def update_worklog(
        self,
        worklog_id: int,
        issue_key: str | None = None,
        duration_seconds: int | None = None,
        description: str | None = None,
        started_at: str | None = None,
    ) -> WorklogEntry:
        """Edit a local entry that has not been synced.

        An entry in ``error`` goes back to ``pending`` with its error cleared.

        Raises:
            NotFound: If no entry has this id.
            InvalidState: If the entry is synced.
            InvalidTimestamp: If a new start is not a timestamp with offset.
        """
        if duration_seconds is not None and duration_seconds < 0:
            raise ValueError("Duration must not be negative")
        if started_at is not None:
            started_at = self.normalize_start(started_at)

        changes = {
            "issue_key": issue_key,
            "duration_seconds": duration_seconds,
            "description": description,
            "started_at": started_at,
        }
        changes = {field: value for field, value in changes.items() if value is not None}

        async with self.transaction() as session:
            row = await session.get(WorklogRow, worklog_id)
            if row is None:
                raise NotFound("Worklog not found")
            if row.sync_status == SyncStatus.SYNCED.value:
                raise InvalidState("Cannot edit a synced worklog")

            if changes:
                for field, value in changes.items():
                    setattr(row, field, value)
                if row.sync_status == SyncStatus.ERROR.value:
                    row.sync_status = SyncStatus.PENDING.value
                    row.sync_error = None
                row.updated_at = utcnow_iso()
                await session.flush()
            return _to_entry(row)

    async def delete_worklog(self, worklog_id: int) -> None:
        """Delete a local entry that has not been synced.

        Raises:
            NotFound: If no entry has this id.
            InvalidState: If the entry is synced.
        """
        async with self.transaction() as session:
            row = await session.get(WorklogRow, worklog_id)
            if row is None:
                raise NotFound("Worklog not found")
            if row.sync_status == SyncStatus.SYNCED.value:
                raise InvalidState("Cannot delete a synced worklog")
            await session.delete(row)

    async def mark_synced(
        self,
        worklog_id: int,
        jira_worklog_id: str,
        jira_updated_at: str | None = None,
    ) -> bool:
        """Record a confirmed upload.

        If an import has already recorded the same Jira worklog, that row
        mirrors the remote state and this entry is removed instead.

        Returns:
            True if the entry became synced, False if it was merged away.
        """
        try:
            async with self.transaction() as session:
                await session.execute(
                    update(WorklogRow)
                    .where(WorklogRow.id == worklog_id)
                    .values(
                        sync_status=SyncStatus.SYNCED.value,
                        jira_worklog_id=jira_worklog_id,
                        jira_updated_at=jira_updated_at,
                        sync_error=None,
                        updated_at=utcnow_iso(),
                    )
                )
        except IntegrityError:
            async with self.transaction() as session:
                await session.execute(
                    delete(WorklogRow)
                    .where(WorklogRow.id == worklog_id)
                    .where(WorklogRow.sync_status != SyncStatus.SYNCED.value)
                )
            logger.info(
                f"Jira worklog {jira_worklog_id} is already in the ledger, "
                f"removed duplicate entry {worklog_id}"
            )
            return False
        return True

    async def mark_error(self, worklog_id: int, message: str) -> None:
        """Record a failed upload."""
        async with self.transaction() as session:
            await session.execute(
                update(WorklogRow)
                .where(WorklogRow.id == worklog_id)
                .values(
                    sync_status=SyncStatus.ERROR.value,
                    sync_error=message,
                    updated_at=utcnow_iso(),
                )
            )

    async def apply_remote_state(
        self,
        worklog_id: int,
        started_at: str,
        duration_seconds: int,
        description: str,
        jira_updated_at: str | None,
    ) -> None:
        """Overwrite a synced entry with values confirmed by Jira."""
        values = {
            "started_at": started_at,
            "duration_seconds": duration_seconds,
            "description": description,
            "updated_at": utcnow_iso(),
        }
        if jira_updated_at is not None:
            values["jira_updated_at"] = jira_updated_at

        async with self.transaction() as session:
            await session.execute(
                update(WorklogRow).where(WorklogRow.id == worklog_id).values(**values)
            )

    async def remove_synced(self, worklog_id: int) -> None:
        """Delete an entry whose Jira worklog is already gone."""
        async with self.transaction() as session:
            await session.execute(delete(WorklogRow).where(WorklogRow.id == worklog_id))

    async def worklogs_between(
        self,
        start: str,
        end: str,
        status: SyncStatus,
    ) -> list[WorklogEntry]:
        """Entries with the given status whose stored start is in ``[start, end)``."""
        stmt = (
            select(WorklogRow)
            .where(WorklogRow.sync_status == status.value)
            .where(WorklogRow.started_at >= start)
            .where(WorklogRow.started_at < end)
            .order_by(WorklogRow.started_at, WorklogRow.id)
        )
        async with self.transaction() as session:
            rows = (await session.scalars(stmt)).all()
            return [_to_entry(row) for row in rows]

    async def find_by_jira_id(self, jira_worklog_id: str) -> WorklogEntry | None:
        """Entry linked to a Jira worklog id, if any."""
        async with self.transaction() as session:
            row = await session.scalar(
                select(WorklogRow).where(WorklogRow.jira_worklog_id == jira_worklog_id)
            )
            return _to_entry(row) if row is not None else None

    async def insert_synced_if_absent(self, new: NewWorklog) -> bool:
        """Insert a synced entry unless one already holds its Jira worklog id.

        Returns:
            True if a row was inserted, False if the id was already present.
        """
        now = utcnow_iso()
        stmt = (
            sqlite_insert(WorklogRow)
            .values(
                issue_key=new.issue_key,
                started_at=new.started_at,
                duration_seconds=new.duration_seconds,
                description=new.description,
                sync_status=SyncStatus.SYNCED.value,
                jira_worklog_id=new.jira_worklog_id,
                jira_updated_at=new.jira_updated_at,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing()
        )
        async with self.transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    # Active timer

    async def get_active_timer(self, session: AsyncSession) -> ActiveTimerRow | None:
        return await session.get(ActiveTimerRow, 1)

    async def save_active_timer(
        self,
        session: AsyncSession,
        issue_key: str,
        started_at: str,
        accumulated_secs: int,
        is_paused: bool,
        paused_at: str | None,
        description: str,
    ) -> None:
        """Create or replace the timer row."""
        values = {
            "issue_key": issue_key,
            "started_at": started_at,
            "accumulated_secs": accumulated_secs,
            "is_paused": is_paused,
            "paused_at": paused_at,
            "description": description,
        }
        stmt = sqlite_insert(ActiveTimerRow).values(id=1, **values)
        stmt = stmt.on_conflict_do_update(index_elements=[ActiveTimerRow.id], set_=values)
        await session.execute(stmt)

    async def clear_active_timer(self, session: AsyncSession) -> None:
        await session.execute(delete(ActiveTimerRow).where(ActiveTimerRow.id == 1))

    # Issue cache

    async def cache_issues(self, issues: list[JiraIssue]) -> None:
        """Upsert searched issues into the cache; failures are logged and ignored."""
        if not issues:
            return

        now = utcnow_iso()
        stmt = sqlite_insert(IssueRow).values(
            [
                {
                    "issue_key": issue.issue_key,
                    "summary": issue.summary,
                    "project_key": issue.project_key,
                    "status": issue.status,
                    "issue_type": issue.issue_type,
                    "updated_at": now,
                }
                for issue in issues
            ]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[IssueRow.issue_key],
            set_={
                "summary": stmt.excluded.summary,
                "project_key": stmt.excluded.project_key,
                "status": stmt.excluded.status,
                "issue_type": stmt.excluded.issue_type,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        try:
            async with self.transaction() as session:
                await session.execute(stmt)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to cache {len(issues)} issues: {e}")

    async def get_cached_issue(self, issue_key: str) -> JiraIssue | None:
        async with self.transaction() as session:
            row = await session.get(IssueRow, issue_key)
            if row is None:
                return None
            return JiraIssue(
                issue_key=row.issue_key,
                summary=row.summary,
                project_key=row.project_key,
                status=row.status,
                issue_type=row.issue_type,
            )
