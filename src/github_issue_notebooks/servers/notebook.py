import asyncio
from collections import defaultdict
from pathlib import Path
from typing import Annotated, Self

from fastmcp.utilities.logging import get_logger
from pydantic import BaseModel, Field

from github_issue_notebooks.execution.aggregate import MAX_RESULTS, PAGE_SIZE, SearchCapability
from github_issue_notebooks.execution.kernel import NotebookKernel
from github_issue_notebooks.language.compiler import CompiledQuery, Order
from github_issue_notebooks.language.diagnostics import Diagnostic, Severity
from github_issue_notebooks.models import SearchItem
from github_issue_notebooks.notebook import Cell, CellError, CellState, Notebook
from github_issue_notebooks.workspace import Workspace

logger = get_logger(__name__)

QUERY_TEXT = Annotated[
    str,
    Field(
        description=(
            "GitHub issue search statements, one per line. A line like `$mine=assignee:octocat` defines a variable that later "
            "lines can reference as `$mine`. Every other line is a query such as `repo:octo/hello is:open label:bug sort:created-asc`."
        )
    ),
]
NOTEBOOK_PATH = Annotated[str, Field(description="The path to a `.github-issues` notebook file.")]


class QueryCheck(BaseModel):
    valid: bool = Field(description="Whether the statements are free of errors. Warnings do not make a query invalid.")
    diagnostics: list[Diagnostic] = Field(description="The problems found, in source order.")


class CompiledQueryResult(BaseModel):
    q: str = Field(description="The query string sent to the search API.")
    sort: str | None = Field(default=None, description="The field the results are sorted by.")
    order: Order | None = Field(default=None, description="The sort order.")
    browser_url: str = Field(description="The github.com page showing the same results.")

    @classmethod
    def from_compiled_query(cls, compiled_query: CompiledQuery) -> Self:
        return cls(q=compiled_query.q, sort=compiled_query.sort, order=compiled_query.order, browser_url=compiled_query.browser_url())


class CellResult(BaseModel):
    cell_id: str = Field(description="The id of the cell within its notebook.")
    state: CellState = Field(description="The state the cell finished in.")
    status_message: str | None = Field(default=None, description="A summary like '42 results', '+' marks truncated results.")
    items: list[SearchItem] = Field(default_factory=list, description="The ordered, deduplicated results.")
    truncated: bool = Field(default=False, description="Whether there were more results than could be fetched.")
    error: CellError | None = Field(default=None, description="Why the cell failed, if it did.")
    diagnostics: list[Diagnostic] = Field(default_factory=list, description="Problems found in the cell's statements.")

    @classmethod
    def from_cell(cls, cell: Cell, diagnostics: list[Diagnostic]) -> Self:
        return cls(
            cell_id=cell.id,
            state=cell.state,
            status_message=cell.status_message,
            items=cell.output.items if cell.output else [],
            truncated=cell.output.truncated if cell.output else False,
            error=cell.error,
            diagnostics=diagnostics,
        )


class NotebookResult(BaseModel):
    uri: str = Field(description="Where the notebook was loaded from.")
    cells: list[CellResult] = Field(description="The outcome of every code cell, in notebook order.")


class NotebookServer:
    search: SearchCapability
    max_results: int
    page_size: int
    run_locks: dict[str, asyncio.Lock]

    def __init__(self, search: SearchCapability, max_results: int = MAX_RESULTS, page_size: int = PAGE_SIZE):
        self.search = search
        self.max_results = max_results
        self.page_size = page_size
        self.run_locks = defaultdict(asyncio.Lock)

    def _kernel(self, workspace: Workspace) -> NotebookKernel:
        return NotebookKernel(workspace=workspace, search=self.search, max_results=self.max_results, page_size=self.page_size)

    async def check_query(self, text: QUERY_TEXT) -> QueryCheck:
        """Check GitHub issue search statements for syntax errors, unknown qualifiers, invalid values and variable problems."""

        workspace = Workspace(notebook=Notebook.from_text(text))
        cell = workspace.notebook.cells[0]

        diagnostics = workspace.diagnostics(cell)

        return QueryCheck(
            valid=not any(diagnostic.severity is Severity.ERROR for diagnostic in diagnostics),
            diagnostics=diagnostics,
        )

    async def compile_query(self, text: QUERY_TEXT) -> list[CompiledQueryResult]:
        """Expand variables and compile GitHub issue search statements into search API queries and github.com links."""

        workspace = Workspace(notebook=Notebook.from_text(text))

        return [CompiledQueryResult.from_compiled_query(compiled_query) for compiled_query in workspace.compile(workspace.notebook.cells[0])]

    async def run_query(self, text: QUERY_TEXT) -> CellResult:
        """Run GitHub issue search statements and return the merged, deduplicated results of every query."""

        workspace = Workspace(notebook=Notebook.from_text(text))
        cell = workspace.notebook.cells[0]

        await self._kernel(workspace).execute_cell(cell)

        return CellResult.from_cell(cell, diagnostics=workspace.diagnostics(cell))

    async def run_notebook(self, path: NOTEBOOK_PATH) -> NotebookResult:
        """Load a `.github-issues` notebook and run its code cells one after the other."""

        notebook_path = Path(path).resolve()

        async with self.run_locks[str(notebook_path)]:
            notebook = Notebook.from_file(notebook_path)
            workspace = Workspace(notebook=notebook)

            logger.info(f"Running notebook {notebook.uri} with {len(notebook.code_cells())} code cells")

            await self._kernel(workspace).execute_notebook()

            return NotebookResult(
                uri=notebook.uri,
                cells=[CellResult.from_cell(cell, diagnostics=workspace.diagnostics(cell)) for cell in notebook.code_cells()],
            )
