"""File-backed settings and secret storage for jira worklog synchronizer."""

import json
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_DIR = Path.home() / ".jira-worklog-sync"


class StorageManager:
    """Manages the settings file, the token file and the ledger location."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize storage manager.

        Args:
            config_dir: Directory to store configuration. Defaults to ~/.jira-worklog-sync/
        """
        self.config_dir = config_dir or DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.settings_file = self.config_dir / "settings.yaml"
        self.tokens_file = self.config_dir / "tokens.json"
        self.database_path = self.config_dir / "ledger.db"

    def load_settings(self) -> dict[str, Any]:
        """Load the key/value settings.

        Returns:
            Settings dictionary.
        """
        if self.settings_file.exists():
            with open(self.settings_file) as f:
                return yaml.safe_load(f) or {}
        return {}

    def save_settings(self, settings: dict[str, Any]) -> None:
        """Save the key/value settings.

        Args:
            settings: Settings to save.
        """
        with open(self.settings_file, "w") as f:
            yaml.dump(settings, f, default_flow_style=False, sort_keys=False)

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a single setting.

        Args:
            key: Setting name.
            default: Value returned when the setting is absent.
        """
        return self.load_settings().get(key, default)

    def set_setting(self, key: str, value: Any) -> None:
        """Set a single setting.

        Args:
            key: Setting name.
            value: Setting value.
        """
        settings = self.load_settings()
        settings[key] = value
        self.save_settings(settings)

    def load_tokens(self) -> dict[str, str]:
        """Load cached authentication tokens.

        Returns:
            Dictionary of service names to tokens.
        """
        if self.tokens_file.exists():
            with open(self.tokens_file) as f:
                return json.load(f)
        return {}

    def save_tokens(self, tokens: dict[str, str]) -> None:
        """Save authentication tokens.

        Args:
            tokens: Dictionary of service names to tokens.
        """
        self.tokens_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.tokens_file, "w") as f:
            json.dump(tokens, f)
        # Set restrictive permissions (user read/write only)
        self.tokens_file.chmod(0o600)

    def get_token(self, service: str) -> str | None:
        """Get cached token for a service.

        Args:
            service: Service name (e.g., "jira").

        Returns:
            Token if available, None otherwise.
        """
        tokens = self.load_tokens()
        return tokens.get(service)

    def set_token(self, service: str, token: str) -> None:
        """Save token for a service.

        Args:
            service: Service name.
            token: Authentication token.
        """
        tokens = self.load_tokens()
        tokens[service] = token
        self.save_tokens(tokens)
