"""Wiring of configuration, ledger, session context and Jira client for one run."""

import logging
from pathlib import Path

from jira_worklog_sync.config import Config
from jira_worklog_sync.jira import JiraClient, JiraUser
from jira_worklog_sync.ledger import LedgerStore
from jira_worklog_sync.sync import ImportEngine, PushEngine, SessionContext
from jira_worklog_sync.timer import TimerService
from jira_worklog_sync.utils.confirmation import create_confirming_transport
from jira_worklog_sync.utils.timefmt import now_local

logger = logging.getLogger(__name__)


class Runtime:
    """Everything a command needs, created once per process."""

    def __init__(self, config_dir: Path | None = None, confirm: bool = False) -> None:
        """Initialize runtime.

        Args:
            config_dir: Configuration directory. Defaults to ~/.jira-worklog-sync/
            confirm: Prompt before every Jira API call.
        """
        self.config = Config(config_dir)
        self.confirm = confirm
        self.store = LedgerStore(self.config.database_path, tz=self.config.timezone)
        self.context = SessionContext(jira_config=self.config.get_jira_config())
        self._client: JiraClient | None = None

    async def __aenter__(self) -> "Runtime":
        await self.store.create_schema()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
        await self.store.close()

    def client(self) -> JiraClient:
        """Jira client for the configured site, created on first use.

        Raises:
            NotConfigured: If Jira credentials are missing.
        """
        if self._client is None:
            jira = self.context.require_jira_config()
            transport = create_confirming_transport() if self.confirm else None
            self._client = JiraClient(
                base_url=jira.base_url,
                email=jira.email,
                api_token=jira.api_token,
                transport=transport,
            )
        return self._client

    def timer(self) -> TimerService:
        tz = self.config.timezone
        return TimerService(self.store, clock=lambda: now_local(tz))

    def push_engine(self) -> PushEngine:
        return PushEngine(self.store, self.client(), delay=self.config.push_delay)

    def import_engine(self) -> ImportEngine:
        return ImportEngine(
            self.store,
            self.client(),
            self.context,
            tz=self.config.timezone,
            concurrency=self.config.import_concurrency,
        )


async def test_connection(
    base_url: str,
    email: str,
    api_token: str,
    confirm: bool = False,
) -> JiraUser:
    """Identify against Jira with ad-hoc credentials.

    Raises:
        AuthError: If the credentials are rejected.
        RemoteError: If Jira cannot be reached.
    """
    transport = create_confirming_transport() if confirm else None
    async with JiraClient(base_url, email, api_token, transport=transport) as client:
        user = await client.identify()
    logger.info(f"Connected to {base_url} as {user.display_name}")
    return user
