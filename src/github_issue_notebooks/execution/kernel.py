import asyncio
import itertools
import time

from fastmcp.utilities.logging import get_logger

from github_issue_notebooks.errors import SearchFailedError
from github_issue_notebooks.execution.aggregate import MAX_RESULTS, PAGE_SIZE, AggregatedResult, SearchCapability, aggregate
from github_issue_notebooks.notebook import Cell, CellError, CellOutput, CellState, NotebookState
from github_issue_notebooks.workspace import Workspace

logger = get_logger(__name__)


class CellExecution:
    """One run of one cell. Only the run holding the cell's latest generation may write to the cell."""

    cell: Cell
    generation: int
    cancelled: asyncio.Event
    task: "asyncio.Task[AggregatedResult] | None"

    _previous_state: CellState
    _start_time: float

    def __init__(self, cell: Cell, generation: int):
        self.cell = cell
        self.generation = generation
        self.cancelled = asyncio.Event()
        self.task = None

        self._previous_state = cell.state
        self._start_time = time.monotonic()

        cell.state = CellState.RUNNING

    def restore(self) -> None:
        self.cell.state = self._previous_state

    def resolve(self, result: AggregatedResult) -> None:
        self.cell.state = CellState.SUCCESS
        self.cell.output = CellOutput(items=result.items, truncated=result.truncated)
        self.cell.error = None
        self.cell.status_message = result.status_message
        self.cell.last_run_duration = time.monotonic() - self._start_time

    def reject(self, error: Exception) -> None:
        self.cell.state = CellState.ERROR
        self.cell.output = None
        self.cell.error = CellError(name=type(error).__name__, message=str(error))
        self.cell.status_message = "Error"
        self.cell.last_run_duration = None


class NotebookExecution:
    generation: int
    cancelled: asyncio.Event
    current_cell: Cell | None

    _previous_state: NotebookState

    def __init__(self, generation: int, previous_state: NotebookState):
        self.generation = generation
        self.cancelled = asyncio.Event()
        self.current_cell = None
        self._previous_state = previous_state

    @property
    def previous_state(self) -> NotebookState:
        return self._previous_state


class NotebookKernel:
    """Runs the cells of a notebook against the search API.

    Every run gets a new generation from a monotonically increasing counter. Starting a run cancels
    the previous run of the same cell, and a run only writes its outcome if its generation is still
    the cell's current one, so a superseded or cancelled run can never overwrite a newer result.
    """

    workspace: Workspace
    search: SearchCapability
    max_results: int
    page_size: int

    _generations: "itertools.count[int]"
    _cell_generations: dict[str, int]
    _cell_executions: dict[str, CellExecution]
    _notebook_generation: int | None
    _notebook_execution: NotebookExecution | None

    def __init__(self, workspace: Workspace, search: SearchCapability, max_results: int = MAX_RESULTS, page_size: int = PAGE_SIZE):
        self.workspace = workspace
        self.search = search
        self.max_results = max_results
        self.page_size = page_size

        self._generations = itertools.count(1)
        self._cell_generations = {}
        self._cell_executions = {}
        self._notebook_generation = None
        self._notebook_execution = None

    # -- cells

    def _is_latest(self, execution: CellExecution) -> bool:
        return self._cell_generations.get(execution.cell.id) == execution.generation

    def cancel_cell(self, cell: Cell) -> None:
        execution = self._cell_executions.get(cell.id)

        if execution is None or not self._is_latest(execution):
            return

        logger.info(f"Cancelling execution {execution.generation} of cell {cell.id}")

        execution.cancelled.set()
        if execution.task is not None:
            execution.task.cancel()

        execution.restore()
        del self._cell_generations[cell.id]

    async def execute_cell(self, cell: Cell) -> None:
        self.cancel_cell(cell)

        execution = CellExecution(cell=cell, generation=next(self._generations))
        self._cell_generations[cell.id] = execution.generation
        self._cell_executions[cell.id] = execution

        try:
            await self._execute_cell(execution)
        finally:
            if self._cell_executions.get(cell.id) is execution:
                del self._cell_executions[cell.id]

    async def _execute_cell(self, execution: CellExecution) -> None:
        cell = execution.cell
        queries = self.workspace.compile(cell)

        logger.info(f"Executing cell {cell.id} with {len(queries)} queries")

        execution.task = asyncio.create_task(
            aggregate(
                search=self.search,
                queries=queries,
                cancelled=execution.cancelled,
                max_results=self.max_results,
                page_size=self.page_size,
            )
        )

        try:
            result: AggregatedResult = await execution.task
        except asyncio.CancelledError:
            if execution.cancelled.is_set():
                return
            # the caller was cancelled rather than the cell, undo the running state before propagating
            self.cancel_cell(cell)
            raise
        except SearchFailedError as e:
            logger.error(f"Execution of cell {cell.id} failed: {e}")
            if self._is_latest(execution):
                execution.reject(e)
            return
        except Exception as e:
            logger.exception(f"Execution of cell {cell.id} failed unexpectedly")
            if self._is_latest(execution):
                execution.reject(e)
            return

        if not self._is_latest(execution):
            logger.info(f"Dropping stale result of execution {execution.generation} for cell {cell.id}")
            return

        logger.info(f"Cell {cell.id} finished with {result.status_message}")

        execution.resolve(result)

    # -- notebook

    def cancel_notebook(self) -> None:
        execution = self._notebook_execution

        if execution is None or self._notebook_generation != execution.generation:
            return

        logger.info("Cancelling notebook execution")

        execution.cancelled.set()
        self.workspace.notebook.state = execution.previous_state
        self._notebook_generation = None

        if execution.current_cell is not None:
            self.cancel_cell(execution.current_cell)

    async def execute_notebook(self) -> None:
        """Run every code cell in order, one at a time, stopping at the first cancellation."""

        self.cancel_notebook()

        notebook = self.workspace.notebook
        execution = NotebookExecution(generation=next(self._generations), previous_state=notebook.state)
        self._notebook_generation = execution.generation
        self._notebook_execution = execution

        notebook.state = NotebookState.RUNNING

        try:
            for cell in notebook.code_cells():
                execution.current_cell = cell

                await self.execute_cell(cell)

                if execution.cancelled.is_set():
                    break
        finally:
            if self._notebook_generation == execution.generation:
                notebook.state = NotebookState.IDLE
            if self._notebook_execution is execution:
                self._notebook_execution = None
