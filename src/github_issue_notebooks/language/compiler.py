from typing import ClassVar, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field

from github_issue_notebooks.language.diagnostics import Diagnostic, DiagnosticCode
from github_issue_notebooks.language.nodes import (
    LiteralNode,
    MissingNode,
    QualifiedValueNode,
    QueryDocumentNode,
    QueryNode,
    VariableDefinitionNode,
    VariableNameNode,
)
from github_issue_notebooks.language.scanner import quote
from github_issue_notebooks.language.symbols import SymbolTable

GITHUB_ISSUES_URL = "https://github.com/issues"

Order = Literal["asc", "desc"]


class CompiledQuery(BaseModel):
    """A query string for the search API plus the sort and order to request."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    q: str = Field(description="The search query string.")
    sort: str | None = Field(default=None, description="The field to sort by, i.e. 'created'.")
    order: Order | None = Field(default=None, description="The sort order, only set when `sort` is set.")

    def browser_url(self) -> str:
        """The github.com search page showing the same results."""

        query = f"{self.q} sort:{self.sort}-{self.order}" if self.sort else self.q

        return str(httpx.URL(GITHUB_ISSUES_URL, params={"q": query}))


def split_sort(value: str) -> tuple[str, Order]:
    """Split a sort directive value like `created-asc` into its field and order, defaulting to `desc`."""

    field, _, order = value.rpartition("-")

    if field and order == "asc":
        return field, "asc"

    if field and order == "desc":
        return field, "desc"

    return value, "desc"


def _render_literal(literal: LiteralNode) -> str:
    """Bare literals are emitted as written, quoted ones are quoted again whenever their value needs it."""

    if not literal.quoted:
        return literal.value

    prefix = "-" if literal.negated else ""

    return f"{prefix}{quote(literal.value)}"


class QueryCompiler:
    """Compiles query nodes into search API query strings, expanding variable references.

    Variable references resolve through the symbol table to the most recent definition. A reference
    that leads back to a variable already being expanded is reported as a circular reference and
    expands to nothing. Problems are collected in `diagnostics`, located at the reference written in
    the document being compiled.
    """

    symbols: SymbolTable
    diagnostics: list[Diagnostic]

    def __init__(self, symbols: SymbolTable):
        self.symbols = symbols
        self.diagnostics = []

    def compile(self, query: QueryNode) -> CompiledQuery:
        parts, sort = self._compile_query(query=query, path=(), origin=None)

        if sort is None:
            return CompiledQuery(q=" ".join(parts))

        field, order = split_sort(sort)

        return CompiledQuery(q=" ".join(parts), sort=field, order=order)

    def compile_definition(self, definition: VariableDefinitionNode) -> str:
        if isinstance(definition.value, MissingNode):
            return ""

        parts, _ = self._compile_query(query=definition.value, path=(definition.name.value,), origin=None)

        return " ".join(parts)

    def _compile_query(
        self, query: QueryNode, path: tuple[str, ...], origin: VariableNameNode | None
    ) -> tuple[list[str], str | None]:
        parts: list[str] = []
        sort: str | None = None

        if query.sort and isinstance(query.sort.values[0], LiteralNode):
            sort = query.sort.values[0].value

        for term in query.terms:
            match term:
                case LiteralNode():
                    parts.append(_render_literal(term))
                case VariableNameNode():
                    expanded, expanded_sort = self._expand(variable=term, path=path, origin=origin or term)
                    parts.extend(expanded)
                    sort = sort or expanded_sort
                case QualifiedValueNode():
                    if compiled := self._compile_qualified(qualified=term, path=path, origin=origin):
                        parts.append(compiled)
                case MissingNode():
                    pass

        return parts, sort

    def _compile_qualified(self, qualified: QualifiedValueNode, path: tuple[str, ...], origin: VariableNameNode | None) -> str | None:
        values: list[str] = []

        for value in qualified.values:
            match value:
                case LiteralNode():
                    values.append(_render_literal(value))
                case VariableNameNode():
                    expanded, _ = self._expand(variable=value, path=path, origin=origin or value)
                    if expanded:
                        values.append(" ".join(expanded))
                case MissingNode():
                    pass

        if not values:
            return None

        prefix = "-" if qualified.negated else ""

        return f"{prefix}{qualified.name}:{','.join(values)}"

    def _expand(self, variable: VariableNameNode, path: tuple[str, ...], origin: VariableNameNode) -> tuple[list[str], str | None]:
        name = variable.value

        if name in path:
            cycle = " -> ".join([*path[path.index(name) :], name])
            self.diagnostics.append(
                Diagnostic.error(
                    start=origin.start,
                    end=origin.end,
                    message=f"Circular reference: {cycle}",
                    code=DiagnosticCode.CIRCULAR_REFERENCE,
                )
            )
            return [], None

        symbol = self.symbols.get(name)

        # unknown variables are reported by the validator
        if symbol is None or symbol.definition is None or isinstance(symbol.definition.value, MissingNode):
            return [], None

        return self._compile_query(query=symbol.definition.value, path=(*path, name), origin=origin)


def compile_query(query: QueryNode, symbols: SymbolTable) -> CompiledQuery:
    return QueryCompiler(symbols=symbols).compile(query)


def compile_document(document: QueryDocumentNode, symbols: SymbolTable) -> list[CompiledQuery]:
    """Compile every query statement of `document` that produces a non-empty query string."""

    compiler = QueryCompiler(symbols=symbols)
    compiled = [compiler.compile(query) for query in document.queries()]

    return [compiled_query for compiled_query in compiled if compiled_query.q]


def compile_diagnostics(document: QueryDocumentNode, symbols: SymbolTable) -> list[Diagnostic]:
    """Compile every statement of `document`, returning the problems found while expanding variables."""

    compiler = QueryCompiler(symbols=symbols)

    for statement in document.nodes:
        if isinstance(statement, VariableDefinitionNode):
            compiler.compile_definition(statement)
        else:
            compiler.compile(statement)

    return compiler.diagnostics
