"""Collaborator interfaces for the polling core.

The core never talks HTTP itself; it depends on these protocols so it can
run against a real provider or an in-memory fake.
"""

from dataclasses import dataclass, field
from typing import Protocol

from prwatch.models import ItemBatch, PullRequest, ViewSelector


@dataclass
class FollowUpChange:
    """Activity detected on one followed item during a follow-up poll."""

    item_id: str
    number: int
    repository: str
    title: str
    url: str = ""
    new_commits: int = 0
    new_comments: int = 0
    new_reviews: int = 0
    closed: bool = False


@dataclass
class FollowUpPollResult:
    """Outcome of one follow-up polling pass."""

    checked: int = 0
    changes_detected: int = 0
    notifications_created: list[FollowUpChange] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class DataSource(Protocol):
    """Fetches items from a remote provider.

    Implementations must be safe to call repeatedly and concurrently, and
    own any retry/backoff policy. Failures surface as exceptions with a
    human-readable message.
    """

    async def fetch_items(self, selector: ViewSelector) -> ItemBatch: ...

    async def fetch_item(self, repository: str, number: int) -> PullRequest: ...

    async def current_user_id(self) -> str: ...


class FollowedItemsSource(Protocol):
    """Checks items the user explicitly follows for new activity."""

    async def poll_followed_items(self) -> FollowUpPollResult: ...
