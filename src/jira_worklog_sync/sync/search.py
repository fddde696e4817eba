"""Issue search with opportunistic caching."""

import logging

from jira_worklog_sync.jira import JiraClient, JiraIssue
from jira_worklog_sync.ledger import LedgerStore

logger = logging.getLogger(__name__)


async def search_issues(
    client: JiraClient,
    store: LedgerStore,
    jql: str,
    max_results: int | None = 50,
) -> list[JiraIssue]:
    """Search Jira and remember the issues found.

    Caching is best-effort: a failed cache write is logged and the search
    result is still returned.
    """
    issues = await client.search_issues(jql, max_results)
    logger.debug(f"Search '{jql}' returned {len(issues)} issues")
    await store.cache_issues(issues)
    return issues
