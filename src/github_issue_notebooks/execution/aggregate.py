import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Protocol

from fastmcp.utilities.logging import get_logger
from pydantic import BaseModel, Field

from github_issue_notebooks.language.compiler import CompiledQuery
from github_issue_notebooks.models import SearchItem, SearchPage

logger = get_logger(__name__)

# The search API never returns more than 1000 results for a query.
MAX_RESULTS = 1000
PAGE_SIZE = 100


class SearchCapability(Protocol):
    async def search(self, query: str, sort: str | None, order: str | None, page: int, per_page: int) -> SearchPage: ...


class SubQueryResult(BaseModel):
    query: CompiledQuery = Field(description="The compiled query that was executed.")
    items: list[SearchItem] = Field(description="Every item fetched for the query, in page order.")
    truncated: bool = Field(description="Whether the search API reported more results than could be fetched.")


class AggregatedResult(BaseModel):
    items: list[SearchItem] = Field(description="The ordered, deduplicated items of every sub-query.")
    truncated: bool = Field(description="Whether any sub-query had more results than could be fetched.")

    @property
    def status_message(self) -> str:
        return f"{len(self.items)}{'+' if self.truncated else ''} results"


def _by_comments(item: SearchItem) -> int:
    return item.comments


def _by_created(item: SearchItem) -> datetime:
    return item.created_at


def _by_updated(item: SearchItem) -> datetime:
    return item.updated_at


SORT_KEYS: dict[str, Callable[[SearchItem], int | datetime]] = {
    "comments": _by_comments,
    "created": _by_created,
    "updated": _by_updated,
}


def dedupe(items: Sequence[SearchItem]) -> list[SearchItem]:
    """Drop every item whose url was already seen, keeping the first occurrence."""

    seen: set[str] = set()
    unique: list[SearchItem] = []

    for item in items:
        if item.url in seen:
            continue
        seen.add(item.url)
        unique.append(item)

    return unique


def merge_results(results: Sequence[SubQueryResult]) -> AggregatedResult:
    """Concatenate the items of every sub-query, sort them when all sub-queries share a sort field, then dedupe.

    Sorting only happens when there are at least two sub-queries and every one of them declares the same
    sort field, and that field has a comparator. Otherwise the concatenation order is kept as is.
    """

    items: list[SearchItem] = [item for result in results for item in result.items]

    if len(results) >= 2:
        first = results[0].query

        if all(result.query.sort == first.sort for result in results) and first.sort in SORT_KEYS:
            items = sorted(items, key=SORT_KEYS[first.sort], reverse=first.order != "asc")

    return AggregatedResult(items=dedupe(items), truncated=any(result.truncated for result in results))


async def fetch_query(
    search: SearchCapability,
    query: CompiledQuery,
    cancelled: asyncio.Event,
    max_results: int = MAX_RESULTS,
    page_size: int = PAGE_SIZE,
) -> SubQueryResult:
    """Fetch pages of `query` one after the other until `max_results` (or the reported total) is reached or `cancelled` is set."""

    items: list[SearchItem] = []
    truncated = False
    page = 1

    while not cancelled.is_set():
        logger.debug(f"Requesting page {page} of {query.q!r}")

        search_page: SearchPage = await search.search(query=query.q, sort=query.sort, order=query.order, page=page, per_page=page_size)

        items.extend(search_page.items[: max_results - len(items)])
        truncated = truncated or search_page.total_count > max_results

        if len(items) >= min(max_results, search_page.total_count) or not search_page.items:
            break

        page += 1

    return SubQueryResult(query=query, items=items, truncated=truncated)


async def aggregate(
    search: SearchCapability,
    queries: Sequence[CompiledQuery],
    cancelled: asyncio.Event,
    max_results: int = MAX_RESULTS,
    page_size: int = PAGE_SIZE,
) -> AggregatedResult:
    """Fetch every query concurrently and merge the results. A failure of any query fails the whole aggregation."""

    tasks = [
        asyncio.create_task(fetch_query(search=search, query=query, cancelled=cancelled, max_results=max_results, page_size=page_size))
        for query in queries
    ]

    try:
        results: list[SubQueryResult] = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise

    return merge_results(results)
