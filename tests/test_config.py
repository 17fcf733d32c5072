"""Tests for configuration management."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from prwatch.config import Settings, is_virtual_view


def make_settings(**overrides) -> Settings:
    """Create a Settings instance with test defaults."""
    defaults = {
        "github_token": "test-token",
        "data_dir": Path("/tmp/prwatch-test"),
    }
    return Settings(**(defaults | overrides))  # type: ignore[arg-type]


class TestSettings:
    """Test Settings class."""

    def test_default_values(self) -> None:
        """Test that settings have expected defaults."""
        settings = make_settings()
        assert settings.polling_enabled is True
        assert settings.polling_interval_seconds == 60
        assert settings.poll_timeout_seconds == 30.0
        assert settings.active_view == "review-requested"
        assert settings.has_github

    @pytest.mark.parametrize("interval", [59, 3601], ids=["too-short", "too-long"])
    def test_interval_bounds(self, interval: int) -> None:
        """Test the polling interval is kept between one minute and one hour."""
        with pytest.raises(ValidationError):
            make_settings(polling_interval_seconds=interval)

    def test_has_github_false_without_token(self) -> None:
        """Test has_github reflects the token."""
        assert not make_settings(github_token="").has_github

    @pytest.mark.parametrize(
        ("views_input", "expected"),
        [
            ("inbox=is:pr is:open", {"inbox": "is:pr is:open"}),
            (" a = q1 ; b = q2 ;", {"a": "q1", "b": "q2"}),
            ("", {}),
        ],
        ids=["single", "whitespace", "empty"],
    )
    def test_view_queries_map(self, views_input: str, expected: dict[str, str]) -> None:
        """Test view_queries string is parsed to a mapping."""
        assert make_settings(view_queries=views_input).view_queries_map == expected

    @pytest.mark.parametrize(
        "views_input",
        ["inbox", "inbox=", "Inbox=is:pr", "-x=is:pr"],
        ids=["no-separator", "empty-query", "uppercase-id", "leading-dash"],
    )
    def test_view_queries_map_rejects_invalid(self, views_input: str) -> None:
        """Test malformed view entries raise ValueError."""
        with pytest.raises(ValueError):
            _ = make_settings(view_queries=views_input).view_queries_map

    def test_default_views_use_username(self) -> None:
        """Test the default views are parameterised on the current user."""
        views = make_settings().view_queries_map
        assert set(views) == {"review-requested", "mine"}
        assert all("{username}" in query for query in views.values())

    def test_paths_under_data_dir(self, tmp_path: Path) -> None:
        """Test database and log paths live in the data directory."""
        settings = make_settings(data_dir=tmp_path)
        assert settings.db_path == tmp_path / "prwatch.db"
        assert settings.log_file == tmp_path / "prwatch.log"

    def test_ensure_directories_creates_dirs(self, tmp_path: Path) -> None:
        """Test ensure_directories creates the data directory."""
        data_dir = tmp_path / "nested" / "prwatch"
        assert not data_dir.exists()
        make_settings(data_dir=data_dir).ensure_directories()
        assert data_dir.exists()

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test settings are read from PRWATCH_ environment variables."""
        monkeypatch.setenv("PRWATCH_POLLING_INTERVAL_SECONDS", "120")
        monkeypatch.setenv("PRWATCH_NOTIFICATIONS_ENABLED", "false")
        settings = Settings()
        assert settings.polling_interval_seconds == 120
        assert settings.notifications_enabled is False


class TestVirtualViews:
    """Test virtual view detection."""

    @pytest.mark.parametrize(
        ("view_id", "expected"),
        [("notifications", True), ("pinned", True), ("review-requested", False)],
    )
    def test_is_virtual_view(self, view_id: str, expected: bool) -> None:
        """Test only self-managed views are virtual."""
        assert is_virtual_view(view_id) is expected
