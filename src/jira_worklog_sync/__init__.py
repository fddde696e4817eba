"""Jira worklog synchronizer: local time tracking reconciled with Jira worklogs."""

__version__ = "0.1.0"
