import json
from enum import IntEnum, StrEnum
from pathlib import Path
from typing import Self

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from github_issue_notebooks.errors import NotebookFormatError
from github_issue_notebooks.models import SearchItem

LANGUAGE_ID = "github-issues"


class CellKind(IntEnum):
    MARKDOWN = 1
    CODE = 2


class CellState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class NotebookState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"


class CellOutput(BaseModel):
    items: list[SearchItem] = Field(description="The ordered, deduplicated search results.")
    truncated: bool = Field(description="Whether there were more results than could be fetched.")


class CellError(BaseModel):
    name: str = Field(description="The kind of error.")
    message: str = Field(description="What went wrong.")


class Cell(BaseModel):
    id: str = Field(description="The identity of the cell within its notebook.")
    kind: CellKind = Field(default=CellKind.CODE)
    language: str = Field(default=LANGUAGE_ID)
    text: str = Field(default="", description="The statements of the cell, one per line.")
    editable: bool = Field(default=True)

    state: CellState = Field(default=CellState.IDLE)
    output: CellOutput | None = Field(default=None)
    error: CellError | None = Field(default=None)
    status_message: str | None = Field(default=None)
    last_run_duration: float | None = Field(default=None, description="Seconds the last successful run took.")

    @property
    def is_code(self) -> bool:
        return self.kind is CellKind.CODE and self.language == LANGUAGE_ID


class RawNotebookCell(BaseModel):
    """A cell as stored in a `.github-issues` file."""

    kind: CellKind
    language: str
    value: str
    editable: bool | None = None


_raw_cells_adapter = TypeAdapter(list[RawNotebookCell])


class Notebook(BaseModel):
    uri: str = Field(description="Where the notebook was loaded from.")
    cells: list[Cell] = Field(default_factory=list)
    state: NotebookState = Field(default=NotebookState.IDLE)

    def document_id(self, cell: Cell) -> str:
        return f"{self.uri}#{cell.id}"

    def code_cells(self) -> list[Cell]:
        return [cell for cell in self.cells if cell.is_code]

    def get_cell(self, cell_id: str) -> Cell | None:
        return next((cell for cell in self.cells if cell.id == cell_id), None)

    @classmethod
    def from_text(cls, text: str, uri: str = "untitled") -> Self:
        """A notebook with a single code cell."""

        return cls(uri=uri, cells=[Cell(id="cell-0", text=text)])

    @classmethod
    def from_json(cls, contents: str, uri: str = "untitled") -> Self:
        """Decode the contents of a `.github-issues` file. Contents that are not JSON at all yield an empty notebook."""

        try:
            payload = json.loads(contents)
        except json.JSONDecodeError:
            return cls(uri=uri)

        if not isinstance(payload, list):
            raise NotebookFormatError(source=uri, reason="expected a list of cells")

        try:
            raw_cells = _raw_cells_adapter.validate_python(payload)
        except ValidationError as e:
            raise NotebookFormatError(source=uri, reason=str(e)) from e

        cells = [
            Cell(
                id=f"cell-{index}",
                kind=raw_cell.kind,
                language=raw_cell.language,
                text=raw_cell.value,
                editable=raw_cell.editable if raw_cell.editable is not None else True,
            )
            for index, raw_cell in enumerate(raw_cells)
        ]

        return cls(uri=uri, cells=cells)

    @classmethod
    def from_file(cls, path: Path) -> Self:
        with Path.open(path, encoding="utf-8") as f:
            contents = f.read()

        return cls.from_json(contents, uri=path.as_uri() if path.is_absolute() else str(path))
