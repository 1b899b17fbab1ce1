import json
from pathlib import Path

import pytest
from inline_snapshot import snapshot

from github_issue_notebooks.errors import NotebookFormatError
from github_issue_notebooks.notebook import Cell, CellKind, CellState, Notebook, NotebookState

NOTEBOOK_CONTENTS = json.dumps(
    [
        {"kind": 1, "language": "markdown", "value": "# Bugs", "editable": True},
        {"kind": 2, "language": "github-issues", "value": "repo:octo/hello is:open label:bug"},
        {"kind": 2, "language": "github-issues", "value": "$mine=assignee:octocat", "editable": False},
    ]
)


def test_from_json():
    notebook = Notebook.from_json(NOTEBOOK_CONTENTS, uri="bugs.github-issues")

    assert notebook.state == NotebookState.IDLE
    assert [(cell.id, cell.kind, cell.editable) for cell in notebook.cells] == snapshot(
        [("cell-0", CellKind.MARKDOWN, True), ("cell-1", CellKind.CODE, True), ("cell-2", CellKind.CODE, False)]
    )
    assert [cell.id for cell in notebook.code_cells()] == ["cell-1", "cell-2"]
    assert all(cell.state == CellState.IDLE for cell in notebook.cells)


def test_document_id():
    notebook = Notebook.from_json(NOTEBOOK_CONTENTS, uri="bugs.github-issues")

    cell = notebook.get_cell("cell-1")

    assert cell is not None
    assert notebook.document_id(cell) == "bugs.github-issues#cell-1"
    assert notebook.get_cell("cell-9") is None


def test_invalid_json_is_an_empty_notebook():
    notebook = Notebook.from_json("{not json", uri="broken.github-issues")

    assert notebook.cells == []


def test_non_list_payload():
    with pytest.raises(NotebookFormatError, match="expected a list of cells"):
        Notebook.from_json('{"kind": 2}', uri="object.github-issues")


def test_invalid_cell():
    with pytest.raises(NotebookFormatError, match="missing.github-issues"):
        Notebook.from_json('[{"kind": 2, "language": "github-issues"}]', uri="missing.github-issues")


def test_from_file(tmp_path: Path):
    path = tmp_path / "bugs.github-issues"
    path.write_text(NOTEBOOK_CONTENTS, encoding="utf-8")

    notebook = Notebook.from_file(path)

    assert notebook.uri == path.as_uri()
    assert len(notebook.cells) == 3


def test_from_text():
    notebook = Notebook.from_text("is:open")

    assert notebook.cells == [Cell(id="cell-0", text="is:open")]


def test_other_languages_are_not_code():
    assert not Cell(id="a", kind=CellKind.CODE, language="python").is_code
    assert not Cell(id="a", kind=CellKind.MARKDOWN, language="github-issues").is_code
    assert Cell(id="a").is_code
