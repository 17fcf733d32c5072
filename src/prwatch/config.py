"""Configuration management using pydantic-settings."""

import re
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# View ids: lowercase alphanumeric plus dashes/underscores
VIEW_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")

# Virtual views manage their own data and are never fetched from the API
VIEW_NOTIFICATIONS_ID = "notifications"
VIEW_PINNED_ID = "pinned"
VIRTUAL_VIEW_IDS = frozenset({VIEW_NOTIFICATIONS_ID, VIEW_PINNED_ID})

MIN_POLLING_INTERVAL_SECONDS = 60
MAX_POLLING_INTERVAL_SECONDS = 60 * 60


def is_virtual_view(view_id: str) -> bool:
    """Check whether a view manages its own data (inbox, pinned items)."""
    return view_id in VIRTUAL_VIEW_IDS


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PRWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Polling
    polling_enabled: bool = True
    polling_interval_seconds: int = Field(
        default=60, ge=MIN_POLLING_INTERVAL_SECONDS, le=MAX_POLLING_INTERVAL_SECONDS
    )
    poll_timeout_seconds: float = Field(default=30.0, gt=0)
    background_polling_enabled: bool = True

    # Notifications
    notifications_enabled: bool = True
    notify_on_new_item: bool = True
    notify_on_new_activity: bool = True

    # Features
    prefetch_on_hover_enabled: bool = True
    follow_up_enabled: bool = True

    # GitHub
    github_token: str = ""
    github_api_url: str = "https://api.github.com"

    # Views: semicolon-separated "id=query" pairs; {username} is substituted
    view_queries: str = (
        "review-requested=is:pr is:open review-requested:{username};"
        "mine=is:pr is:open author:{username}"
    )
    active_view: str = "review-requested"

    # Storage and logging
    data_dir: Path = Path.home() / ".prwatch"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @property
    def view_queries_map(self) -> dict[str, str]:
        """Get configured views as a validated ``{view_id: query}`` mapping.

        Raises:
            ValueError: If an entry is malformed or a view id is invalid
        """
        views: dict[str, str] = {}
        for entry in self.view_queries.split(";"):
            entry = entry.strip()
            if not entry:
                continue
            view_id, sep, query = entry.partition("=")
            view_id = view_id.strip()
            if not sep or not query.strip():
                raise ValueError(f"Invalid view entry: '{entry}'. Expected 'id=query'.")
            if not VIEW_ID_PATTERN.match(view_id):
                raise ValueError(
                    f"Invalid view id: '{view_id}'. View ids must start with a lowercase "
                    "letter or digit and contain only lowercase letters, digits, "
                    "dashes and underscores."
                )
            views[view_id] = query.strip()
        return views

    @property
    def has_github(self) -> bool:
        """Check if a GitHub token is configured."""
        return bool(self.github_token)

    @property
    def db_path(self) -> Path:
        """Get the SQLite key/value store path."""
        return self.data_dir / "prwatch.db"

    @property
    def log_file(self) -> Path:
        """Get the watcher log file path."""
        return self.data_dir / "prwatch.log"

    def ensure_directories(self) -> None:
        """Create the data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
