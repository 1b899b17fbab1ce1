import asyncio
import os
from typing import Any, Literal

import asyncclick as click
from fastmcp import FastMCP
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.tools import FunctionTool
from fastmcp.utilities.logging import configure_logging
from githubkit.github import GitHub

from github_issue_notebooks.clients.github import GitHubSearchClient, get_github_client
from github_issue_notebooks.errors import ConfigurationError
from github_issue_notebooks.execution.aggregate import MAX_RESULTS, PAGE_SIZE
from github_issue_notebooks.servers.notebook import NotebookServer


def get_int_setting(name: str, default: int, minimum: int, maximum: int) -> int:
    raw_value = os.getenv(name)

    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        value = int(raw_value)
    except ValueError as e:
        msg = f"The {name} environment variable must be an integer, got {raw_value!r}"
        raise ConfigurationError(msg) from e

    if value < minimum:
        msg = f"The {name} environment variable must be at least {minimum}, got {value}"
        raise ConfigurationError(msg)

    return min(value, maximum)


configure_logging(level=os.getenv("LOG_LEVEL", "INFO").upper())  # pyright: ignore[reportArgumentType]

max_results: int = get_int_setting("MAX_RESULTS", default=MAX_RESULTS, minimum=1, maximum=MAX_RESULTS)
page_size: int = get_int_setting("PAGE_SIZE", default=PAGE_SIZE, minimum=1, maximum=PAGE_SIZE)

mcp = FastMCP[None](name="GitHub Issue Notebooks")

github_client: GitHub[Any] = get_github_client()

notebook_server: NotebookServer = NotebookServer(
    search=GitHubSearchClient(github_client=github_client), max_results=max_results, page_size=page_size
)

mcp.add_tool(tool=FunctionTool.from_function(fn=notebook_server.check_query))
mcp.add_tool(tool=FunctionTool.from_function(fn=notebook_server.compile_query))
mcp.add_tool(tool=FunctionTool.from_function(fn=notebook_server.run_query))
mcp.add_tool(tool=FunctionTool.from_function(fn=notebook_server.run_notebook))

mcp.add_middleware(middleware=LoggingMiddleware())


@click.command()
@click.option(
    "--mcp-transport", type=click.Choice(["stdio", "streamable-http"]), default="stdio", help="The transport to run the MCP server on"
)
async def cli(mcp_transport: Literal["stdio", "streamable-http"]):
    await mcp.run_async(transport=mcp_transport)


def run_mcp():
    asyncio.run(cli())


if __name__ == "__main__":
    run_mcp()
