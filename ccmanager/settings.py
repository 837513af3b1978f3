"""
Application settings and persisted state for CCManager.

Settings are loaded once at startup, changed through explicit setters and
written back only when ``SettingsStore.save_settings`` is called. The
repository list and the usage samples are separate, independent blobs.
"""

import json
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ccmanager.exceptions import ConfigurationError
from ccmanager.logging import get_logger
from ccmanager.types.auth import Credentials, Provider
from ccmanager.types.repos import Repository
from ccmanager.types.usage import AssistantModel, UsageSample
from ccmanager.vault import atomic_write

logger = get_logger("settings")

DEFAULT_HOME = "~/.ccmanager"
SETTINGS_FILE = "settings.json"
REPOSITORIES_FILE = "repositories.json"
USAGE_FILE = "usage.json"

MIN_MAX_TOKENS = 1024
MAX_MAX_TOKENS = 8192


class AppTheme(str, Enum):
    DARK = "Dark"
    LIGHT = "Light"
    AUTO = "Auto"


@dataclass
class Settings:
    """User preferences and per-provider credential records."""

    default_local_path: str = "~/Developer"
    auto_sync: bool = True
    sync_interval: float = 300.0  # seconds
    show_notifications: bool = True
    theme: AppTheme = AppTheme.DARK
    model: AssistantModel = AssistantModel.OPUS
    max_tokens: int = 4096
    daily_token_limit: int = 100_000
    credentials: dict[Provider, Credentials] = field(default_factory=dict)

    def set_default_local_path(self, path: str) -> None:
        if not path:
            raise ConfigurationError("Default local path must not be empty")
        self.default_local_path = path

    def set_auto_sync(self, enabled: bool, interval: float | None = None) -> None:
        if interval is not None:
            if interval <= 0:
                raise ConfigurationError("Sync interval must be positive")
            self.sync_interval = interval
        self.auto_sync = enabled

    def set_notifications(self, enabled: bool) -> None:
        self.show_notifications = enabled

    def set_theme(self, theme: AppTheme | str) -> None:
        try:
            self.theme = AppTheme(theme)
        except ValueError as e:
            raise ConfigurationError(f"Unknown theme: {theme}") from e

    def set_model(self, model: AssistantModel | str) -> None:
        if isinstance(model, str):
            try:
                model = AssistantModel.from_label(model)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        self.model = model

    def set_max_tokens(self, max_tokens: int) -> None:
        if not MIN_MAX_TOKENS <= max_tokens <= MAX_MAX_TOKENS:
            raise ConfigurationError(
                f"max_tokens must be between {MIN_MAX_TOKENS} and {MAX_MAX_TOKENS}"
            )
        self.max_tokens = max_tokens

    def set_credentials(self, provider: Provider, credentials: Credentials) -> None:
        self.credentials[provider] = credentials

    def clear_credentials(self, provider: Provider) -> None:
        self.credentials.pop(provider, None)

    def to_dict(self) -> dict[str, Any]:
        """Serialize settings; credential secrets are left out."""
        return {
            "default_local_path": self.default_local_path,
            "auto_sync": self.auto_sync,
            "sync_interval": self.sync_interval,
            "show_notifications": self.show_notifications,
            "theme": self.theme.value,
            "model": self.model.label,
            "max_tokens": self.max_tokens,
            "daily_token_limit": self.daily_token_limit,
            "credentials": {
                provider.value: creds.metadata()
                for provider, creds in self.credentials.items()
            },
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        load_token: Callable[[Provider], str | None] | None = None,
    ) -> "Settings":
        """
        Build settings from a serialized blob.

        Args:
            data: Output of ``to_dict``
            load_token: Looks up a provider's secret; a credential record whose
                secret is missing is dropped

        Unknown keys are ignored; unknown enum values fall back to defaults.
        """
        defaults = cls()

        credentials: dict[Provider, Credentials] = {}
        for name, meta in (data.get("credentials") or {}).items():
            try:
                provider = Provider(name)
            except ValueError:
                logger.warning("Ignoring credentials for unknown provider %r", name)
                continue
            token = load_token(provider) if load_token else None
            if not token:
                continue
            credentials[provider] = Credentials(
                token=token,
                username=(meta or {}).get("username"),
                organization_id=(meta or {}).get("organization_id"),
            )

        try:
            theme = AppTheme(data.get("theme", defaults.theme.value))
        except ValueError:
            theme = defaults.theme
        try:
            model = AssistantModel.from_label(data.get("model", defaults.model.label))
        except ValueError:
            model = defaults.model

        return cls(
            default_local_path=data.get("default_local_path", defaults.default_local_path),
            auto_sync=bool(data.get("auto_sync", defaults.auto_sync)),
            sync_interval=float(data.get("sync_interval", defaults.sync_interval)),
            show_notifications=bool(data.get("show_notifications", defaults.show_notifications)),
            theme=theme,
            model=model,
            max_tokens=int(data.get("max_tokens", defaults.max_tokens)),
            daily_token_limit=int(data.get("daily_token_limit", defaults.daily_token_limit)),
            credentials=credentials,
        )


class SettingsStore:
    """
    Reads and writes the two persisted blobs under one state directory.

    Each blob is loaded and saved as a whole. A missing or unreadable blob
    loads as defaults and is logged.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    @classmethod
    def from_env(cls) -> "SettingsStore":
        """
        Create a store rooted at $CCMANAGER_HOME (default: ~/.ccmanager).
        """
        return cls(os.environ.get("CCMANAGER_HOME", DEFAULT_HOME))

    @property
    def settings_path(self) -> Path:
        return self.directory / SETTINGS_FILE

    @property
    def repositories_path(self) -> Path:
        return self.directory / REPOSITORIES_FILE

    @property
    def usage_path(self) -> Path:
        return self.directory / USAGE_FILE

    def load_settings(
        self, load_token: Callable[[Provider], str | None] | None = None
    ) -> Settings:
        data = self._read_json(self.settings_path)
        if not isinstance(data, dict):
            return Settings()
        return Settings.from_dict(data, load_token)

    def save_settings(self, settings: Settings) -> None:
        self._write_json(self.settings_path, settings.to_dict())

    def load_repositories(self) -> list[Repository]:
        data = self._read_json(self.repositories_path)
        if not isinstance(data, list):
            return []
        try:
            return [Repository.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable %s: %s", self.repositories_path, e)
            return []

    def save_repositories(self, repositories: list[Repository]) -> None:
        self._write_json(self.repositories_path, [repo.to_dict() for repo in repositories])

    def load_usage(self) -> list[UsageSample]:
        data = self._read_json(self.usage_path)
        if not isinstance(data, list):
            return []
        try:
            return [UsageSample.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable %s: %s", self.usage_path, e)
            return []

    def save_usage(self, samples: list[UsageSample]) -> None:
        self._write_json(self.usage_path, [sample.to_dict() for sample in samples])

    def _read_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Discarding unreadable %s: %s", path, e)
            return None

    def _write_json(self, path: Path, data: Any) -> None:
        atomic_write(path, json.dumps(data, indent=2).encode("utf-8"))
        logger.debug("Saved %s", path)
