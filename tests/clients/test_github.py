from typing import Any

import pytest
from githubkit.exception import GitHubException
from pydantic import ValidationError

from github_issue_notebooks.clients.github import GitHubSearchClient
from github_issue_notebooks.errors import SearchFailedError

SEARCH_RESPONSE = {
    "total_count": 1,
    "incomplete_results": False,
    "items": [
        {
            "url": "https://api.github.com/repos/octo/hello/issues/7",
            "html_url": "https://github.com/octo/hello/pull/7",
            "repository_url": "https://api.github.com/repos/octo/hello",
            "id": 1007,
            "number": 7,
            "title": "Fix the thing",
            "state": "open",
            "created_at": "2024-01-01T00:00:00Z",
            "updated_at": "2024-01-02T00:00:00Z",
            "closed_at": None,
            "comments": 3,
            "labels": [{"name": "bug", "color": "d73a4a", "id": 1}],
            "assignees": [],
            "user": {"login": "octocat", "id": 1},
            "pull_request": {"url": "https://api.github.com/repos/octo/hello/pulls/7"},
            "score": 1.0,
        }
    ],
}


class FakeResponse:
    payload: dict[str, Any]

    def __init__(self, payload: dict[str, Any]):
        self.payload = payload

    def json(self) -> dict[str, Any]:
        return self.payload


class FakeSearchApi:
    calls: list[dict[str, Any]]
    error: Exception | None
    payload: dict[str, Any]

    def __init__(self, error: Exception | None = None, payload: dict[str, Any] | None = None):
        self.calls = []
        self.error = error
        self.payload = payload or SEARCH_RESPONSE

    async def async_issues_and_pull_requests(self, **parameters: Any) -> FakeResponse:
        self.calls.append(parameters)

        if self.error is not None:
            raise self.error

        return FakeResponse(self.payload)


class FakeRest:
    def __init__(self, search: FakeSearchApi):
        self.search = search


class FakeGitHub:
    def __init__(self, search: FakeSearchApi):
        self.rest = FakeRest(search)


async def test_search():
    search_api = FakeSearchApi()
    client = GitHubSearchClient(github_client=FakeGitHub(search_api))  # pyright: ignore[reportArgumentType]

    page = await client.search(query="repo:octo/hello is:pr", sort="created", order="asc", page=2, per_page=50)

    assert search_api.calls == [{"q": "repo:octo/hello is:pr", "page": 2, "per_page": 50, "sort": "created", "order": "asc"}]
    assert page.total_count == 1
    assert page.items[0].number == 7
    assert page.items[0].is_pull_request
    assert page.items[0].labels[0].name == "bug"


async def test_search_without_sort():
    search_api = FakeSearchApi()
    client = GitHubSearchClient(github_client=FakeGitHub(search_api))  # pyright: ignore[reportArgumentType]

    await client.search(query="is:open", sort=None, order=None, page=1, per_page=100)

    assert search_api.calls == [{"q": "is:open", "page": 1, "per_page": 100}]


async def test_search_failure():
    client = GitHubSearchClient(github_client=FakeGitHub(FakeSearchApi(error=GitHubException("Validation Failed"))))  # pyright: ignore[reportArgumentType]

    with pytest.raises(SearchFailedError, match="Validation Failed") as exc_info:
        await client.search(query="is:open", sort=None, order=None, page=1, per_page=100)

    assert exc_info.value.query == "is:open"


async def test_search_malformed_payload():
    search_api = FakeSearchApi(payload={"items": [{"url": "x"}], "total_count": 1})
    client = GitHubSearchClient(github_client=FakeGitHub(search_api))  # pyright: ignore[reportArgumentType]

    with pytest.raises(SearchFailedError) as exc_info:
        await client.search(query="is:open", sort=None, order=None, page=1, per_page=100)

    assert exc_info.value.query == "is:open"
    assert isinstance(exc_info.value.__cause__, ValidationError)
