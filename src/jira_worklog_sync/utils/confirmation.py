"""Interactive confirmation of outgoing Jira API calls."""

import json
import logging
from typing import Any

import httpx
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

logger = logging.getLogger(__name__)
console = Console()

SENSITIVE_HEADERS = {"authorization", "x-api-key", "x-access-token", "cookie"}


def redact_value(text: str) -> str:
    """Redact a secret, keeping the first and last four characters.

    Args:
        text: Text that may contain sensitive data.

    Returns:
        Text with sensitive data redacted.
    """
    if len(text) <= 8:
        return "****"

    return f"{text[:4]}...{text[-4:]}"


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Redact sensitive headers like Authorization.

    Args:
        headers: Original headers dictionary.

    Returns:
        Dictionary with sensitive values redacted.
    """
    redacted = {}

    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            redacted[key] = redact_value(value)
        else:
            redacted[key] = value

    return redacted


def format_payload(data: Any) -> str:
    """Format request payload for display."""
    if isinstance(data, bytes):
        try:
            data = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return "[binary data]"

    if isinstance(data, dict):
        try:
            return json.dumps(data, indent=2)
        except (TypeError, ValueError):
            return str(data)

    return str(data) if data else "[no payload]"


def _prompt_for_confirmation() -> bool:
    """Ask whether to send the request that was just displayed."""
    while True:
        response = console.input(
            "[bold cyan]Proceed with this API call? [y/n][/bold cyan] "
        ).strip().lower()

        if response in ("y", "yes"):
            return True
        elif response in ("n", "no"):
            return False
        else:
            console.print("[yellow]Please enter 'y' or 'n'[/yellow]")


def _show_request(request: httpx.Request) -> None:
    console.print("\n" + "=" * 80)
    console.print("[bold blue]API Request[/bold blue]")
    console.print("=" * 80)

    console.print(f"[bold cyan]Method:[/bold cyan] {request.method}")
    console.print(f"[bold cyan]URL:[/bold cyan] {request.url}")

    if request.headers:
        table = Table(title="Headers", show_header=True, header_style="bold magenta")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")

        for key, value in redact_headers(dict(request.headers)).items():
            table.add_row(key, value)

        console.print(table)

    if request.content:
        payload_str = format_payload(request.content)
        console.print("\n[bold cyan]Payload:[/bold cyan]")
        if payload_str.startswith("{"):
            console.print(Syntax(payload_str, "json", theme="monokai", line_numbers=False))
        else:
            console.print(payload_str)

    console.print("=" * 80)


class ConfirmationTransport(httpx.AsyncBaseTransport):
    """Async httpx transport that prompts for confirmation before each request."""

    def __init__(self, transport: httpx.AsyncBaseTransport, prompt=_prompt_for_confirmation) -> None:
        """Initialize confirmation transport.

        Args:
            transport: The underlying httpx transport to wrap.
            prompt: Callable returning True when the request may be sent.
        """
        self.transport = transport
        self.prompt = prompt

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """Show the request, ask for confirmation, then forward it.

        Raises:
            httpx.RequestError: If user declines confirmation.
        """
        _show_request(request)

        if not self.prompt():
            console.print("[bold red]✗ API call cancelled by user[/bold red]\n")
            logger.info(f"Declined {request.method} {request.url.path}")
            raise httpx.RequestError("API call cancelled by user", request=request)

        console.print("[bold green]✓ Proceeding with API call[/bold green]\n")
        return await self.transport.handle_async_request(request)

    async def aclose(self) -> None:
        await self.transport.aclose()


def create_confirming_transport() -> ConfirmationTransport:
    """Create the default network transport wrapped in confirmation prompts."""
    return ConfirmationTransport(httpx.AsyncHTTPTransport())
