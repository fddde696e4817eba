"""Utility modules for jira worklog synchronizer."""

from jira_worklog_sync.utils.logging import get_logger, setup_logging
from jira_worklog_sync.utils.storage import StorageManager

__all__ = ["get_logger", "setup_logging", "StorageManager"]
