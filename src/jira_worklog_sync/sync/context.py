"""Per-process session state shared by the sync engines."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date

from jira_worklog_sync.config import JiraConfig
from jira_worklog_sync.errors import NotConfigured
from jira_worklog_sync.jira import JiraClient

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Explicit holder for values cached during one run.

    ``None`` means "not loaded yet" for both the credentials and the account id.
    """

    jira_config: JiraConfig | None = None
    account_id: str | None = None
    _import_locks: dict[date, asyncio.Lock] = field(default_factory=dict, repr=False)

    def require_jira_config(self) -> JiraConfig:
        """Credentials, or NotConfigured if they were never provided."""
        if self.jira_config is None:
            raise NotConfigured("Jira not configured. Run 'jira-worklog-sync configure' first.")
        return self.jira_config

    async def resolve_account_id(self, client: JiraClient) -> str:
        """Jira account id of the current user, looked up once per session."""
        if self.account_id is None:
            user = await client.identify()
            self.account_id = user.account_id
            logger.debug(f"Resolved Jira account {user.display_name} ({user.account_id})")
        return self.account_id

    def import_lock(self, day: date) -> asyncio.Lock:
        """Lock serializing imports of the same date within this process."""
        lock = self._import_locks.get(day)
        if lock is None:
            lock = self._import_locks[day] = asyncio.Lock()
        return lock
