"""Data sources the polling core fetches from."""

from .base import DataSource, FollowedItemsSource, FollowUpChange, FollowUpPollResult
from .followup import FollowedItem, FollowUpPrefs, FollowUpService, FollowUpStore
from .github import GitHubDataSource

__all__ = [
    # Protocols
    "DataSource",
    "FollowedItemsSource",
    "FollowUpChange",
    "FollowUpPollResult",
    # Follow-up tracking
    "FollowUpService",
    "FollowUpStore",
    "FollowedItem",
    "FollowUpPrefs",
    # Providers
    "GitHubDataSource",
]
