import os
from typing import Any

from fastmcp.utilities.logging import get_logger
from pydantic import ValidationError
from githubkit.auth import TokenAuthStrategy, UnauthAuthStrategy
from githubkit.exception import GitHubException
from githubkit.github import GitHub

from github_issue_notebooks.errors import SearchFailedError
from github_issue_notebooks.models import SearchPage

logger = get_logger(__name__)


def get_github_client() -> GitHub[Any]:
    """Build a GitHub client, authenticated when `GITHUB_TOKEN` or `GITHUB_PERSONAL_ACCESS_TOKEN` is set."""

    token = os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_PERSONAL_ACCESS_TOKEN")

    if not token:
        logger.warning("No GitHub token configured, searches will be unauthenticated and heavily rate limited")
        return GitHub(UnauthAuthStrategy())

    return GitHub(TokenAuthStrategy(token))


class GitHubSearchClient:
    """Issue and pull request search over the GitHub REST API."""

    github_client: GitHub[Any]

    def __init__(self, github_client: GitHub[Any]):
        self.github_client = github_client

    async def search(self, query: str, sort: str | None, order: str | None, page: int, per_page: int) -> SearchPage:
        parameters: dict[str, Any] = {"q": query, "page": page, "per_page": per_page}

        if sort is not None:
            parameters["sort"] = sort
        if order is not None:
            parameters["order"] = order

        try:
            response = await self.github_client.rest.search.async_issues_and_pull_requests(**parameters)
        except GitHubException as e:
            raise SearchFailedError(query=query, cause=e) from e

        try:
            return SearchPage.model_validate(response.json())
        except ValidationError as e:
            raise SearchFailedError(query=query, cause=e) from e
