"""Import of Jira worklogs into the local ledger for one calendar day."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo

from jira_worklog_sync.config import DEFAULT_IMPORT_CONCURRENCY
from jira_worklog_sync.errors import InvalidTimestamp, PartialFailure, RemoteError
from jira_worklog_sync.jira import JiraClient, JiraWorklog
from jira_worklog_sync.ledger import LedgerStore, NewWorklog, SyncStatus
from jira_worklog_sync.sync.context import SessionContext
from jira_worklog_sync.sync.search import search_issues
from jira_worklog_sync.utils.timefmt import (
    day_bounds,
    epoch_millis,
    parse_stored,
    start_of_day,
    to_local,
    to_stored,
)

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    """Outcome of importing one day."""

    imported: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    issues_checked: int = 0
    warnings: list[str] = field(default_factory=list)

    def add_warning(self, warning: str) -> None:
        logger.warning(warning)
        self.warnings.append(warning)

    def raise_for_warnings(self) -> None:
        """Raise PartialFailure if part of the import could not be done."""
        if self.warnings:
            raise PartialFailure(
                f"Import finished with {len(self.warnings)} warnings", self.warnings
            )

    def __str__(self) -> str:
        return (
            f"Imported: {self.imported}, "
            f"Updated: {self.updated}, "
            f"Deleted: {self.deleted}, "
            f"Skipped: {self.skipped}, "
            f"Issues: {self.issues_checked}"
        )


def build_import_jql(day: date) -> str:
    """Worklogs by the current user within a day either side of ``day``.

    Jira evaluates ``worklogDate`` in the account's timezone, which may differ
    from the local one; the exact filtering happens after fetching.
    """
    before = (day - timedelta(days=1)).isoformat()
    after = (day + timedelta(days=1)).isoformat()
    return (
        f'worklogDate >= "{before}" AND worklogDate <= "{after}" '
        f"AND worklogAuthor = currentUser()"
    )


class ImportEngine:
    """Makes the synced entries of a day mirror the user's Jira worklogs."""

    def __init__(
        self,
        store: LedgerStore,
        client: JiraClient,
        context: SessionContext,
        tz: tzinfo | None = None,
        concurrency: int = DEFAULT_IMPORT_CONCURRENCY,
    ) -> None:
        """Initialize import engine.

        Args:
            store: Local ledger.
            client: Jira API client.
            context: Session state caching the account id.
            tz: Zone deciding the local calendar day. Defaults to the system zone.
            concurrency: Maximum simultaneous worklog fetches.
        """
        self.store = store
        self.client = client
        self.context = context
        self.tz = tz
        self.concurrency = concurrency

    async def import_day(self, day: date) -> ImportSummary:
        """Reconcile the ledger with Jira for one local calendar day.

        Failures of the search or of single issues are reported as warnings.
        Deletion of local entries is skipped when the search failed, and never
        touches issues whose worklogs could not be fetched.

        Raises:
            RemoteError: If the current account cannot be identified.
        """
        async with self.context.import_lock(day):
            return await self._import_day(day)

    async def _import_day(self, day: date) -> ImportSummary:
        summary = ImportSummary()
        account_id = await self.context.resolve_account_id(self.client)
        logger.info(f"Importing Jira worklogs for {day}")

        issue_keys: list[str] = []
        search_ok = True
        try:
            issues = await search_issues(
                self.client, self.store, build_import_jql(day), max_results=None
            )
            issue_keys = list(dict.fromkeys(issue.issue_key for issue in issues))
        except RemoteError as e:
            search_ok = False
            summary.add_warning(f"Search failed: {e}")

        summary.issues_checked = len(issue_keys)
        fetched, failed = await self._fetch_all(issue_keys, day, summary)

        padded_start, _ = day_bounds(day - timedelta(days=1))
        _, padded_end = day_bounds(day + timedelta(days=1))
        existing = {
            entry.jira_worklog_id: entry
            for entry in await self.store.worklogs_between(
                padded_start, padded_end, SyncStatus.SYNCED
            )
            if entry.jira_worklog_id
        }

        seen: set[str] = set()
        for issue_key, worklogs in fetched.items():
            for worklog in worklogs:
                try:
                    await self._reconcile(
                        issue_key, worklog, day, account_id, existing, seen, summary
                    )
                except InvalidTimestamp as e:
                    # Unknown date: protect the issue's entries from deletion
                    failed.add(issue_key)
                    summary.add_warning(f"{issue_key}: worklog {worklog.id}: {e}")

        if search_ok:
            await self._delete_missing(day, existing, seen, failed, summary)
        else:
            logger.info("Skipping deletion detection because the search failed")

        logger.info(f"Import complete for {day}: {summary}")
        return summary

    async def _fetch_all(
        self,
        issue_keys: list[str],
        day: date,
        summary: ImportSummary,
    ) -> tuple[dict[str, list[JiraWorklog]], set[str]]:
        started_after = epoch_millis(start_of_day(day - timedelta(days=1), self.tz))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch(issue_key: str) -> tuple[str, list[JiraWorklog] | None, str | None]:
            async with semaphore:
                try:
                    worklogs = await self.client.list_worklogs(issue_key, started_after)
                    return issue_key, worklogs, None
                except RemoteError as e:
                    return issue_key, None, str(e)

        fetched: dict[str, list[JiraWorklog]] = {}
        failed: set[str] = set()
        for issue_key, worklogs, error in await asyncio.gather(
            *(fetch(key) for key in issue_keys)
        ):
            if worklogs is None:
                failed.add(issue_key)
                summary.add_warning(f"{issue_key}: failed to fetch worklogs: {error}")
            else:
                fetched[issue_key] = worklogs
        return fetched, failed

    async def _reconcile(
        self,
        issue_key: str,
        worklog: JiraWorklog,
        day: date,
        account_id: str,
        existing: dict,
        seen: set[str],
        summary: ImportSummary,
    ) -> None:
        if worklog.author.account_id != account_id:
            return

        started_local = to_local(worklog.started_at, self.tz)
        if started_local.date() != day:
            logger.debug(f"{issue_key}: worklog {worklog.id} is on {started_local.date()}, not {day}")
            return

        seen.add(worklog.id)
        started_at = to_stored(started_local)
        description = worklog.description

        entry = existing.get(worklog.id) or await self.store.find_by_jira_id(worklog.id)
        if entry is None:
            inserted = await self.store.insert_synced_if_absent(
                NewWorklog(
                    issue_key=issue_key,
                    started_at=started_at,
                    duration_seconds=worklog.time_spent_seconds,
                    description=description,
                    sync_status=SyncStatus.SYNCED,
                    jira_worklog_id=worklog.id,
                    jira_updated_at=worklog.updated,
                )
            )
            if inserted:
                summary.imported += 1
                logger.debug(f"{issue_key}: imported worklog {worklog.id}")
            else:
                summary.skipped += 1
            return

        if entry.jira_updated_at != worklog.updated:
            await self.store.apply_remote_state(
                entry.id,
                started_at=started_at,
                duration_seconds=worklog.time_spent_seconds,
                description=description,
                jira_updated_at=worklog.updated,
            )
            summary.updated += 1
            logger.debug(f"{issue_key}: updated entry {entry.id} from worklog {worklog.id}")
        else:
            summary.skipped += 1

    async def _delete_missing(
        self,
        day: date,
        existing: dict,
        seen: set[str],
        failed: set[str],
        summary: ImportSummary,
    ) -> None:
        for jira_worklog_id, entry in existing.items():
            if jira_worklog_id in seen or entry.issue_key in failed:
                continue
            try:
                entry_day = parse_stored(entry.started_at).date()
            except InvalidTimestamp:
                continue
            if entry_day != day:
                continue

            await self.store.remove_synced(entry.id)
            summary.deleted += 1
            logger.info(
                f"{entry.issue_key}: removed entry {entry.id}, "
                f"Jira worklog {jira_worklog_id} no longer exists"
            )
