import re
from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel, Field

from github_issue_notebooks.language.compiler import QueryCompiler
from github_issue_notebooks.language.diagnostics import SourceRange
from github_issue_notebooks.language.nodes import (
    LiteralNode,
    NodeParents,
    QualifiedValueNode,
    QueryDocumentNode,
    VariableDefinitionNode,
    VariableNameNode,
    find_node_at,
    walk,
)
from github_issue_notebooks.language.parser import SORT_QUALIFIER
from github_issue_notebooks.language.symbols import REQUIRES_PR_TYPE, SORT_FIELDS, Enumeration, SymbolTable, describe

VARIABLE_NAME_PATTERN = re.compile(r"\$[A-Za-z_][A-Za-z0-9_]*")

_QUALIFIER_PREFIX = re.compile(r"^-?(?P<name>[^\s:]+):(?:[^\s,]*,)*(?P<value>[^\s,]*)$")


class Location(BaseModel):
    document_id: str = Field(description="The document the range belongs to.")
    range: SourceRange


class TextEdit(BaseModel):
    document_id: str = Field(description="The document to edit.")
    range: SourceRange = Field(description="The range of text to replace.")
    new_text: str = Field(description="The replacement text.")


class Hover(BaseModel):
    range: SourceRange
    contents: str = Field(description="Markdown describing the symbol under the cursor.")


class CompletionItem(BaseModel):
    label: str
    kind: Literal["qualifier", "value", "sort", "variable"]
    detail: str | None = None


class LanguageService:
    """Editor features over the documents of a workspace and their shared symbol table."""

    symbols: SymbolTable
    documents: dict[str, QueryDocumentNode]

    def __init__(self, symbols: SymbolTable, documents: Sequence[QueryDocumentNode]):
        self.symbols = symbols
        self.documents = {document.id: document for document in documents}

    def _variable_at(self, document_id: str, offset: int) -> VariableNameNode | None:
        document = self.documents.get(document_id)

        if document is None:
            return None

        node = find_node_at(document, offset)

        return node if isinstance(node, VariableNameNode) else None

    def definition(self, document_id: str, offset: int) -> Location | None:
        """Where the variable under the cursor is defined, following shadowing rules."""

        variable = self._variable_at(document_id, offset)

        if variable is None:
            return None

        symbol = self.symbols.get(variable.value)

        if symbol is None or symbol.definition is None or symbol.document_id is None:
            return None

        return Location(document_id=symbol.document_id, range=symbol.definition.name.range)

    def references(self, name: str) -> list[Location]:
        """Every definition (shadowed ones included) and every use of the variable `name`."""

        locations: list[Location] = [
            Location(document_id=symbol.document_id, range=symbol.definition.name.range)
            for symbol in self.symbols.get_all(name)
            if symbol.definition is not None and symbol.document_id is not None
        ]

        for document in self.documents.values():
            defined_names = {id(definition.name) for definition in document.definitions()}

            locations.extend(
                Location(document_id=document.id, range=node.range)
                for node in walk(document)
                if isinstance(node, VariableNameNode) and node.value == name and id(node) not in defined_names
            )

        return locations

    def rename(self, document_id: str, offset: int, new_name: str) -> list[TextEdit]:
        variable = self._variable_at(document_id, offset)

        if variable is None:
            msg = "There is no variable at the given offset"
            raise ValueError(msg)

        if not new_name.startswith("$"):
            new_name = f"${new_name}"

        if not VARIABLE_NAME_PATTERN.fullmatch(new_name):
            msg = f"{new_name} is not a valid variable name"
            raise ValueError(msg)

        return [
            TextEdit(document_id=location.document_id, range=location.range, new_text=new_name)
            for location in self.references(variable.value)
        ]

    def hover(self, document_id: str, offset: int) -> Hover | None:
        document = self.documents.get(document_id)

        if document is None:
            return None

        node = find_node_at(document, offset)
        parent = NodeParents(document).parent_of(node) if node is not None else None

        match node:
            case VariableNameNode():
                return self._hover_variable(node)
            case LiteralNode() if isinstance(parent, QualifiedValueNode) and parent.qualifier is node:
                return self._hover_qualifier(node)
            case _:
                return None

    def _hover_variable(self, node: VariableNameNode) -> Hover | None:
        symbol = self.symbols.get(node.value)

        if symbol is None or symbol.definition is None:
            return None

        defining_document = self.documents.get(symbol.document_id or "")

        if defining_document is not None:
            body = defining_document.text_of(symbol.definition.value)
        else:
            body = QueryCompiler(symbols=self.symbols).compile_definition(symbol.definition)

        return Hover(range=node.range, contents=f"`{node.value} = {body}`")

    def _hover_qualifier(self, node: LiteralNode) -> Hover | None:
        if node.value == SORT_QUALIFIER:
            return Hover(range=node.range, contents=f"**sort**: {', '.join(SORT_FIELDS)}, optionally suffixed with `-asc` or `-desc`")

        domain = self.symbols.qualifier(node.value)

        if domain is None:
            return None

        contents = f"**{node.value}**: {describe(domain)}"

        if node.value in REQUIRES_PR_TYPE:
            contents += "\n\nOnly applies to pull requests."

        return Hover(range=node.range, contents=contents)

    def complete(self, document_id: str, offset: int) -> list[CompletionItem]:
        document = self.documents.get(document_id)

        if document is None:
            return []

        line_start = document.text.rfind("\n", 0, offset) + 1
        word = re.split(r"\s", document.text[line_start:offset])[-1]

        if word.startswith("$"):
            return [
                CompletionItem(label=name, kind="variable")
                for name in self.symbols.variables()
                if name.startswith(word) and not self._is_defining(document, line_start, name)
            ]

        if match := _QUALIFIER_PREFIX.match(word):
            return self._complete_value(match.group("name"), match.group("value"))

        prefix = word.removeprefix("-")
        items = [
            CompletionItem(label=f"{symbol.name}:", kind="qualifier", detail=describe(symbol.value))
            for symbol in self.symbols.all()
            if symbol.value is not None and symbol.name.startswith(prefix)
        ]

        if f"{SORT_QUALIFIER}:".startswith(prefix) and not word.startswith("-"):
            items.append(CompletionItem(label=f"{SORT_QUALIFIER}:", kind="sort"))

        return sorted(items, key=lambda item: item.label)

    def _complete_value(self, name: str, prefix: str) -> list[CompletionItem]:
        if name == SORT_QUALIFIER:
            labels = [f"{field}-{order}" for field in SORT_FIELDS for order in ("asc", "desc")]
            return [CompletionItem(label=label, kind="sort") for label in labels if label.startswith(prefix)]

        domain = self.symbols.qualifier(name)

        if not isinstance(domain, Enumeration):
            return []

        return [CompletionItem(label=value, kind="value", detail=name) for value in domain.values() if value.startswith(prefix)]

    def _is_defining(self, document: QueryDocumentNode, line_start: int, name: str) -> bool:
        """Whether the line starting at `line_start` is the definition of `name`, which cannot reference itself."""

        return any(
            isinstance(statement, VariableDefinitionNode) and statement.start == line_start and statement.name.value == name
            for statement in document.nodes
        )
