"""GitHub REST data source.

Thin adapter over the search and pulls endpoints. Search results carry
discussion comment counts only; :meth:`GitHubDataSource.fetch_item` also
fills in review comments, reviews and commits.
"""

import logging
from datetime import datetime
from typing import Any

import httpx

from prwatch.exceptions import DataSourceError
from prwatch.models import ItemBatch, PageInfo, PullRequest, ViewSelector

logger = logging.getLogger(__name__)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _repository_from_url(repository_url: str) -> str:
    # https://api.github.com/repos/<owner>/<name>
    parts = repository_url.rstrip("/").split("/")
    return "/".join(parts[-2:])


class GitHubDataSource:
    """Fetches pull requests from the GitHub REST API."""

    DEFAULT_TIMEOUT: float = 30.0
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._login: str | None = None

    def _get_headers(self) -> dict[str, str]:
        headers = self.DEFAULT_HEADERS.copy()
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self.DEFAULT_TIMEOUT,
                headers=self._get_headers(),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._get_client().get(path, params=params)
        except httpx.HTTPError as e:
            raise DataSourceError(f"GitHub request failed: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise DataSourceError(f"GitHub API error {response.status_code}: {message}")
        return response.json()

    async def current_user_id(self) -> str:
        if self._login is None:
            data = await self._get("/user")
            self._login = data["login"]
        return self._login

    async def fetch_items(self, selector: ViewSelector) -> ItemBatch:
        username = await self.current_user_id() if "{username}" in selector.query else ""
        page = int(selector.cursor) if selector.cursor else 1
        data = await self._get(
            "/search/issues",
            params={
                "q": selector.resolve(username),
                "per_page": selector.page_size,
                "page": page,
                "sort": "updated",
            },
        )
        items = [self._from_search_item(raw) for raw in data.get("items", [])]
        has_next = page * selector.page_size < data.get("total_count", 0)
        return ItemBatch(
            items=items,
            page_info=PageInfo(has_next_page=has_next, end_cursor=str(page + 1) if has_next else None),
        )

    async def fetch_item(self, repository: str, number: int) -> PullRequest:
        data = await self._get(f"/repos/{repository}/pulls/{number}")
        reviews = await self._get(
            f"/repos/{repository}/pulls/{number}/reviews", params={"per_page": 100}
        )
        return PullRequest(
            id=data["node_id"],
            number=data["number"],
            title=data["title"],
            url=data["html_url"],
            state="MERGED" if data.get("merged") else data["state"].upper(),
            author_login=(data.get("user") or {}).get("login", ""),
            repository=repository,
            comment_count=data.get("comments", 0),
            review_comment_count=data.get("review_comments", 0),
            review_count=len(reviews),
            commit_count=data.get("commits", 0),
            updated_at=_parse_timestamp(data.get("updated_at")),
        )

    @staticmethod
    def _from_search_item(raw: dict[str, Any]) -> PullRequest:
        return PullRequest(
            id=raw["node_id"],
            number=raw["number"],
            title=raw["title"],
            url=raw["html_url"],
            state=raw.get("state", "open").upper(),
            author_login=(raw.get("user") or {}).get("login", ""),
            repository=_repository_from_url(raw["repository_url"]),
            comment_count=raw.get("comments", 0),
            updated_at=_parse_timestamp(raw.get("updated_at")),
        )
