from collections.abc import Iterator
from enum import StrEnum
from typing import ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field

from github_issue_notebooks.language.diagnostics import SourceRange


class NodeType(StrEnum):
    MISSING = "missing"
    LITERAL = "literal"
    VARIABLE_NAME = "variable-name"
    VARIABLE_DEFINITION = "variable-definition"
    QUALIFIED_VALUE = "qualified-value"
    QUERY = "query"
    QUERY_DOCUMENT = "query-document"


class BaseNode(BaseModel):
    """The `BaseNode` is the base class for all syntax tree nodes.

    Every node covers the half-open `[start, end)` range of the source text it was parsed from,
    including any quotes, sigils or negation prefix.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    start: int = Field(description="The offset of the first character of the node.")
    end: int = Field(description="The offset just past the last character of the node.")

    @property
    def range(self) -> SourceRange:
        return SourceRange(start=self.start, end=self.end)


class MissingNode(BaseNode):
    """Stands in for something the parser expected but did not find."""

    type: Literal[NodeType.MISSING] = NodeType.MISSING
    message: str = Field(description="Why the parser gave up at this location.")


class LiteralNode(BaseNode):
    type: Literal[NodeType.LITERAL] = NodeType.LITERAL
    value: str = Field(description="The literal value with surrounding quotes and escapes removed.")
    quoted: bool = Field(default=False, description="Whether the literal was written in double quotes.")
    terminated: bool = Field(default=True, description="False when a quoted literal runs to the end of the line.")
    negated: bool = Field(default=False, description="Whether a quoted phrase was prefixed with `-`, i.e. `-\"foo bar\"`.")


class VariableNameNode(BaseNode):
    type: Literal[NodeType.VARIABLE_NAME] = NodeType.VARIABLE_NAME
    value: str = Field(description="The variable name, including the leading `$`.")


ValueNode = LiteralNode | VariableNameNode | MissingNode


class QualifiedValueNode(BaseNode):
    type: Literal[NodeType.QUALIFIED_VALUE] = NodeType.QUALIFIED_VALUE
    negated: bool = Field(default=False, description="Whether the qualifier was prefixed with `-`.")
    qualifier: LiteralNode = Field(description="The qualifier name, i.e. `label`.")
    values: tuple[ValueNode, ...] = Field(description="The comma separated values, any of which may match.")

    @property
    def name(self) -> str:
        return self.qualifier.value


TermNode = LiteralNode | VariableNameNode | QualifiedValueNode | MissingNode


class QueryNode(BaseNode):
    type: Literal[NodeType.QUERY] = NodeType.QUERY
    terms: tuple[TermNode, ...] = Field(description="The filter terms, in source order.")
    sorts: tuple[QualifiedValueNode, ...] = Field(default=(), description="Every `sort:` directive, the last one wins.")

    @property
    def sort(self) -> QualifiedValueNode | None:
        return self.sorts[-1] if self.sorts else None


class VariableDefinitionNode(BaseNode):
    type: Literal[NodeType.VARIABLE_DEFINITION] = NodeType.VARIABLE_DEFINITION
    name: VariableNameNode = Field(description="The variable being defined.")
    value: QueryNode | MissingNode = Field(description="The query fragment the variable expands to.")


StatementNode = QueryNode | VariableDefinitionNode


class QueryDocumentNode(BaseNode):
    type: Literal[NodeType.QUERY_DOCUMENT] = NodeType.QUERY_DOCUMENT
    id: str = Field(default="", description="The identity of the document the tree was parsed from.")
    text: str = Field(description="The source text of the document.")
    nodes: tuple[StatementNode, ...] = Field(description="The statements of the document, one per line.")

    def queries(self) -> list[QueryNode]:
        return [node for node in self.nodes if isinstance(node, QueryNode)]

    def definitions(self) -> list[VariableDefinitionNode]:
        return [node for node in self.nodes if isinstance(node, VariableDefinitionNode)]

    def text_of(self, node: BaseNode) -> str:
        return self.text[node.start : node.end]


Node = (
    MissingNode | LiteralNode | VariableNameNode | QualifiedValueNode | QueryNode | VariableDefinitionNode | QueryDocumentNode
)


def children(node: Node) -> tuple[Node, ...]:
    match node:
        case QueryDocumentNode(nodes=nodes):
            return nodes
        case VariableDefinitionNode(name=name, value=value):
            return (name, value)
        case QueryNode():
            # sort directives sit wherever they were written, so keep children in source order
            return tuple(sorted([*node.terms, *node.sorts], key=lambda child: child.start))
        case QualifiedValueNode(qualifier=qualifier, values=values):
            return (qualifier, *values)
        case _:
            return ()


def walk(node: Node) -> Iterator[Node]:
    """Yield `node` and all of its descendants in pre-order."""

    yield node

    for child in children(node):
        yield from walk(child)


def find_node_at(root: Node, offset: int) -> Node | None:
    """Find the innermost node whose range contains `offset` (an offset at a node's end counts as inside)."""

    if not root.start <= offset <= root.end:
        return None

    for child in children(root):
        if found := find_node_at(child, offset):
            return found

    return root


class NodeParents:
    """A non-owning `child -> parent` lookup, computed once for a finished tree.

    Nodes are keyed by identity because structurally equal nodes may appear at different places.
    """

    _parents: dict[int, Node]

    def __init__(self, root: Node):
        self._parents = {}

        for node in walk(root):
            for child in children(node):
                self._parents[id(child)] = node

    def parent_of(self, node: Node) -> Node | None:
        return self._parents.get(id(node))

    def ancestors(self, node: Node) -> Iterator[Node]:
        parent = self.parent_of(node)

        while parent is not None:
            yield parent
            parent = self.parent_of(parent)

    def enclosing_query(self, node: Node) -> QueryNode | None:
        for ancestor in self.ancestors(node):
            if isinstance(ancestor, QueryNode):
                return ancestor

        return None
