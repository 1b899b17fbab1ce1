from fastmcp.utilities.logging import get_logger

from github_issue_notebooks.language.compiler import CompiledQuery, compile_diagnostics, compile_document
from github_issue_notebooks.language.diagnostics import Diagnostic
from github_issue_notebooks.language.nodes import QueryDocumentNode
from github_issue_notebooks.language.parser import parse
from github_issue_notebooks.language.service import LanguageService
from github_issue_notebooks.language.symbols import SymbolTable
from github_issue_notebooks.language.validation import validate
from github_issue_notebooks.notebook import Cell, Notebook

logger = get_logger(__name__)


class Workspace:
    """The language state of one notebook: every code cell is a document sharing one symbol table.

    Trees are never cached; every call re-parses the cell's current text.
    """

    notebook: Notebook
    symbols: SymbolTable

    def __init__(self, notebook: Notebook, symbols: SymbolTable | None = None):
        self.notebook = notebook
        self.symbols = symbols or SymbolTable()

        for cell in self.notebook.code_cells():
            self.update(cell)

    def parse(self, cell: Cell) -> QueryDocumentNode:
        return parse(cell.text, document_id=self.notebook.document_id(cell))

    def documents(self) -> list[tuple[Cell, QueryDocumentNode]]:
        return [(cell, self.parse(cell)) for cell in self.notebook.code_cells()]

    def update(self, cell: Cell) -> QueryDocumentNode:
        """Re-parse `cell` and replace the variables it contributes to the symbol table."""

        document = self.parse(cell)
        self.symbols.update(document)

        return document

    def remove(self, cell: Cell) -> None:
        self.symbols.remove(self.notebook.document_id(cell))

    def diagnostics(self, cell: Cell) -> list[Diagnostic]:
        """Update `cell` and return its syntax, semantic and variable expansion problems in source order."""

        document = self.update(cell)

        diagnostics = [*validate(document, self.symbols), *compile_diagnostics(document, self.symbols)]

        return sorted(diagnostics, key=lambda diagnostic: (diagnostic.range.start, diagnostic.range.end))

    def compile(self, cell: Cell) -> list[CompiledQuery]:
        """Update `cell` so its own definitions are the most recent ones, then compile its queries."""

        document = self.update(cell)
        compiled = compile_document(document, self.symbols)

        logger.debug(f"Compiled {len(compiled)} queries for {document.id}")

        return compiled

    def language_service(self) -> LanguageService:
        """Editor features over the current text of every code cell."""

        return LanguageService(symbols=self.symbols, documents=[self.update(cell) for cell in self.notebook.code_cells()])
