"""Shared test fixtures for prwatch."""

import asyncio
from pathlib import Path

import pytest

from prwatch.models import ItemBatch, Notification, PullRequest, ViewSelector
from prwatch.sources.base import FollowUpPollResult
from prwatch.store import MemoryKeyValueStore


def make_pr(item_id: str = "PR_1", comments: int = 0, **overrides) -> PullRequest:
    """Create a PullRequest with test defaults."""
    number = int(item_id.rsplit("_", 1)[-1]) if item_id.rsplit("_", 1)[-1].isdigit() else 1
    defaults = {
        "id": item_id,
        "number": number,
        "title": f"Change {item_id}",
        "url": f"https://github.com/octo/repo/pull/{number}",
        "author_login": "alice",
        "repository": "octo/repo",
        "comment_count": comments,
    }
    return PullRequest(**(defaults | overrides))


class FakeDataSource:
    """In-memory DataSource.

    With ``gated`` set, every ``fetch_items`` call parks on a future appended
    to ``gates`` so tests control the order in which fetches resolve.
    ``item_gated`` does the same for ``fetch_item`` via ``item_gates``.
    """

    def __init__(self) -> None:
        self.batches: dict[str, list[PullRequest]] = {}
        self.items: dict[tuple[str, int], PullRequest] = {}
        self.calls: list[str] = []
        self.item_calls: list[tuple[str, int]] = []
        self.error: Exception | None = None
        self.item_errors: dict[tuple[str, int], Exception] = {}
        self.gated = False
        self.gates: list[asyncio.Future[ItemBatch]] = []
        self.item_gated = False
        self.item_gates: list[asyncio.Future[PullRequest]] = []

    async def fetch_items(self, selector: ViewSelector) -> ItemBatch:
        self.calls.append(selector.view_id)
        if self.gated:
            gate: asyncio.Future[ItemBatch] = asyncio.get_running_loop().create_future()
            self.gates.append(gate)
            return await gate
        if self.error is not None:
            raise self.error
        return ItemBatch(items=list(self.batches.get(selector.view_id, [])))

    async def fetch_item(self, repository: str, number: int) -> PullRequest:
        key = (repository, number)
        self.item_calls.append(key)
        if self.item_gated:
            gate: asyncio.Future[PullRequest] = asyncio.get_running_loop().create_future()
            self.item_gates.append(gate)
            return await gate
        if key in self.item_errors:
            raise self.item_errors[key]
        return self.items[key]

    async def current_user_id(self) -> str:
        return "octo"


class FakeFollowedSource:
    """FollowedItemsSource that counts calls and optionally raises."""

    def __init__(self, result: FollowUpPollResult | None = None) -> None:
        self.result = result or FollowUpPollResult()
        self.calls = 0
        self.error: Exception | None = None

    async def poll_followed_items(self) -> FollowUpPollResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class RecordingSink:
    """NotificationSink that records what it was asked to send."""

    def __init__(self, error: Exception | None = None) -> None:
        self.sent: list[Notification] = []
        self.error = error

    async def send(self, notification: Notification) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(notification)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def data_source() -> FakeDataSource:
    return FakeDataSource()


@pytest.fixture
def followed_source() -> FakeFollowedSource:
    return FakeFollowedSource()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    """Fresh in-memory key/value store."""
    return MemoryKeyValueStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Temporary data directory for stores and PID files."""
    path = tmp_path / "prwatch"
    path.mkdir()
    return path
