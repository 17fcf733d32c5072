"""Domain types shared by the polling core and its collaborators."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class PageInfo:
    """Pagination cursor returned alongside a batch of items."""

    has_next_page: bool = False
    end_cursor: str | None = None


@dataclass
class PullRequest:
    """A remotely hosted pull/merge request, normalized across providers."""

    id: str
    number: int
    title: str
    url: str = ""
    state: str = "OPEN"
    author_login: str = ""
    repository: str = ""  # name with owner, e.g. "octo/repo"
    comment_count: int = 0
    review_comment_count: int = 0
    review_count: int = 0
    commit_count: int = 0
    updated_at: datetime | None = None

    @property
    def total_comment_count(self) -> int:
        """Discussion comments plus inline review comments."""
        return self.comment_count + self.review_comment_count

    @property
    def is_open(self) -> bool:
        return self.state.upper() == "OPEN"


@dataclass
class ItemBatch:
    """One page of items fetched from a data source."""

    items: list[PullRequest] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=PageInfo)


@dataclass(frozen=True)
class ViewSelector:
    """Describes what a data source should fetch for a view.

    ``query`` may contain a ``{username}`` placeholder, filled with the
    current user's login before the request is made.
    """

    view_id: str
    query: str
    page_size: int = 30
    cursor: str | None = None

    def resolve(self, username: str) -> str:
        return self.query.replace("{username}", username)


@dataclass
class Notification:
    """Payload handed to a notification sink."""

    title: str
    body: str
    subtitle: str | None = None
    url: str | None = None
