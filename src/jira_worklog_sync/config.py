"""Configuration management for jira worklog synchronizer."""

from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from jira_worklog_sync.utils.storage import StorageManager

DEFAULT_PUSH_DELAY = 0.2
DEFAULT_IMPORT_CONCURRENCY = 5

JIRA_TOKEN_SERVICE = "jira"


def _load_zone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone '{name}'") from e


@dataclass(frozen=True)
class JiraConfig:
    """Credentials for one Jira site."""

    base_url: str
    email: str
    api_token: str


class Config:
    """Typed access to settings and credentials."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize configuration.

        Args:
            config_dir: Directory for storing configuration.
        """
        self.storage = StorageManager(config_dir)

    @property
    def database_path(self) -> Path:
        return self.storage.database_path

    def get(self, key: str, default: Any = None) -> Any:
        return self.storage.get_setting(key, default)

    def set(self, key: str, value: Any) -> None:
        self.storage.set_setting(key, value)

    def update(self, key: str, value: str) -> None:
        """Validate a setting given as text and save it.

        Args:
            key: Setting name.
            value: New value as typed by the user.

        Raises:
            ValueError: If the value is invalid for a known setting, or the
                key is the API token, which only `configure` may store.
        """
        if key in ("jira_api_token", "api_token", JIRA_TOKEN_SERVICE):
            raise ValueError("The API token is stored with 'configure', not in settings")

        parsed: Any = value
        if key == "timezone":
            _load_zone(value)
        elif key == "jira_base_url":
            parsed = value.rstrip("/")
        elif key == "push_delay":
            try:
                parsed = float(value)
            except ValueError:
                raise ValueError(f"Invalid push_delay '{value}', expected seconds") from None
            if parsed < 0:
                raise ValueError("push_delay must not be negative")
        elif key == "import_concurrency":
            try:
                parsed = int(value)
            except ValueError:
                raise ValueError(f"Invalid import_concurrency '{value}', expected a number") from None
            if parsed < 1:
                raise ValueError("import_concurrency must be at least 1")

        self.set(key, parsed)

    def all(self) -> dict[str, Any]:
        return self.storage.load_settings()

    def get_jira_config(self) -> JiraConfig | None:
        """Get Jira credentials.

        Returns:
            Credentials, or None unless URL, email and token are all present.
        """
        settings = self.storage.load_settings()
        base_url = settings.get("jira_base_url")
        email = settings.get("jira_email")
        api_token = self.storage.get_token(JIRA_TOKEN_SERVICE)

        if not (base_url and email and api_token):
            return None
        return JiraConfig(base_url=base_url, email=email, api_token=api_token)

    def save_jira_config(self, base_url: str, email: str, api_token: str) -> JiraConfig:
        """Persist Jira credentials; the token goes to the restricted token file.

        Args:
            base_url: Jira site URL.
            email: Account email.
            api_token: API token.
        """
        settings = self.storage.load_settings()
        settings["jira_base_url"] = base_url.rstrip("/")
        settings["jira_email"] = email
        self.storage.save_settings(settings)
        self.storage.set_token(JIRA_TOKEN_SERVICE, api_token)
        return JiraConfig(base_url=settings["jira_base_url"], email=email, api_token=api_token)

    def masked(self) -> dict[str, Any]:
        """Settings for display, with the API token replaced by ``***``."""
        settings = dict(self.storage.load_settings())
        if self.storage.get_token(JIRA_TOKEN_SERVICE):
            settings["jira_api_token"] = "***"
        return settings

    @property
    def timezone(self) -> tzinfo | None:
        """Zone used to decide which calendar day a worklog belongs to.

        Uses the ``timezone`` setting (an IANA name) when present. None means
        the system local zone, applied per instant so DST rules hold.

        Raises:
            ValueError: If the configured name is not a known zone.
        """
        name = self.get("timezone")
        return _load_zone(name) if name else None

    @property
    def push_delay(self) -> float:
        """Pause between uploads in a batch push, in seconds."""
        return float(self.get("push_delay", DEFAULT_PUSH_DELAY))

    @property
    def import_concurrency(self) -> int:
        """Maximum simultaneous worklog fetches during an import."""
        return max(1, int(self.get("import_concurrency", DEFAULT_IMPORT_CONCURRENCY)))
