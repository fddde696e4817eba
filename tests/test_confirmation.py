"""Tests for interactive request confirmation."""

import httpx
import pytest

from jira_worklog_sync.errors import TransportError
from jira_worklog_sync.jira import JiraClient
from jira_worklog_sync.utils.confirmation import (
    ConfirmationTransport,
    format_payload,
    redact_headers,
    redact_value,
)


def identity_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"accountId": "acc-1", "displayName": "Jane"})


class TestRedaction:
    """Test hiding secrets in displayed requests."""

    def test_redact_value(self) -> None:
        """Test that long secrets keep only their edges."""
        assert redact_value("Basic abcdefghijkl") == "Basi...ijkl"
        assert redact_value("short") == "****"

    def test_redact_headers(self) -> None:
        """Test that only sensitive headers are redacted."""
        headers = {"Authorization": "Basic abcdefghijkl", "Accept": "application/json"}

        redacted = redact_headers(headers)

        assert redacted["Authorization"] == "Basi...ijkl"
        assert redacted["Accept"] == "application/json"

    def test_format_payload(self) -> None:
        """Test rendering request bodies."""
        assert format_payload(b'{"timeSpentSeconds": 60}') == '{\n  "timeSpentSeconds": 60\n}'
        assert format_payload(b"\x80abc") == "[binary data]"
        assert format_payload(None) == "[no payload]"


class TestConfirmationTransport:
    """Test the confirming transport."""

    async def test_confirmed_request_is_sent(self) -> None:
        """Test that an accepted request reaches the wrapped transport."""
        transport = ConfirmationTransport(httpx.MockTransport(identity_handler), prompt=lambda: True)

        async with JiraClient("https://example.atlassian.net", "a@b.c", "tok", transport=transport) as client:
            user = await client.identify()

        assert user.account_id == "acc-1"

    async def test_declined_request_is_cancelled(self) -> None:
        """Test that a declined request never leaves the process."""
        sent: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            return identity_handler(request)

        transport = ConfirmationTransport(httpx.MockTransport(handler), prompt=lambda: False)

        async with JiraClient("https://example.atlassian.net", "a@b.c", "tok", transport=transport) as client:
            with pytest.raises(TransportError, match="cancelled by user"):
                await client.identify()

        assert sent == []
