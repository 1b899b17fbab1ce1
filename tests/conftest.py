import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

import pytest
from fastmcp import FastMCP
from fastmcp.server.middleware.logging import LoggingMiddleware

from github_issue_notebooks.errors import SearchFailedError
from github_issue_notebooks.language.symbols import SymbolTable
from github_issue_notebooks.models import SearchItem, SearchPage


class FakeSearch:
    """An in-memory search capability serving pages out of `results`."""

    results: dict[str, list[SearchItem]]
    total_counts: dict[str, int]
    failures: set[str]
    gate: asyncio.Event | None
    calls: list[tuple[str, str | None, str | None, int, int]]

    def __init__(self):
        self.results = {}
        self.total_counts = {}
        self.failures = set()
        self.gate = None
        self.calls = []

    async def search(self, query: str, sort: str | None, order: str | None, page: int, per_page: int) -> SearchPage:
        self.calls.append((query, sort, order, page, per_page))

        if self.gate is not None:
            await self.gate.wait()

        if query in self.failures:
            raise SearchFailedError(query=query, cause=RuntimeError("API rate limit exceeded"))

        items = self.results.get(query, [])
        offset = (page - 1) * per_page

        return SearchPage(items=items[offset : offset + per_page], total_count=self.total_counts.get(query, len(items)))


MakeItem = Callable[..., SearchItem]


@pytest.fixture
def fake_search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def make_item() -> MakeItem:
    def _make_item(number: int, created: str = "2024-01-01", updated: str | None = None, comments: int = 0) -> SearchItem:
        created_at = datetime.fromisoformat(created).replace(tzinfo=UTC)
        updated_at = datetime.fromisoformat(updated).replace(tzinfo=UTC) if updated else created_at

        return SearchItem(
            url=f"https://api.github.com/repos/octo/hello/issues/{number}",
            html_url=f"https://github.com/octo/hello/issues/{number}",
            id=1000 + number,
            number=number,
            title=f"Issue {number}",
            state="open",
            created_at=created_at,
            updated_at=updated_at,
            comments=comments,
        )

    return _make_item


@pytest.fixture
def symbols() -> SymbolTable:
    return SymbolTable()


@pytest.fixture
def fastmcp() -> FastMCP:
    return FastMCP(middleware=[LoggingMiddleware()])
