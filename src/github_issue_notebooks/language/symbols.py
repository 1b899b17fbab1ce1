import threading
from collections import defaultdict
from collections.abc import Iterator
from enum import StrEnum
from typing import ClassVar, Literal

from fastmcp.utilities.logging import get_logger
from pydantic import BaseModel, ConfigDict, Field

from github_issue_notebooks.language.nodes import QueryDocumentNode, VariableDefinitionNode

logger = get_logger(__name__)


class ValueType(StrEnum):
    """Value domains without a closed set of literals, each checked structurally."""

    NUMBER = "number"
    DATE = "date"
    BASE_BRANCH = "base-branch"
    HEAD_BRANCH = "head-branch"
    LABEL = "label"
    LANGUAGE = "language"
    MILESTONE = "milestone"
    ORGNAME = "orgname"
    PROJECT_BOARD = "project-board"
    REPOSITORY = "repository"
    TEAMNAME = "teamname"
    USERNAME = "username"


class Enumeration(BaseModel):
    """A qualifier that accepts literals from one of several overloads, i.e. `is:open` or `is:locked`."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    kind: Literal["enumeration"] = "enumeration"
    value_sets: tuple[frozenset[str], ...] = Field(description="The permitted literals, one set per overload.")

    def matching_sets(self, value: str) -> list[frozenset[str]]:
        return [value_set for value_set in self.value_sets if value in value_set]

    def values(self) -> list[str]:
        return sorted({value for value_set in self.value_sets for value in value_set})


class Semantic(BaseModel):
    """A qualifier whose value belongs to a `ValueType`, i.e. `comments:>5`."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    kind: Literal["semantic"] = "semantic"
    value_type: ValueType = Field(description="The domain values of the qualifier must belong to.")


QualifierValue = Enumeration | Semantic


def enumeration(*value_sets: set[str]) -> Enumeration:
    return Enumeration(value_sets=tuple(frozenset(value_set) for value_set in value_sets))


def semantic(value_type: ValueType) -> Semantic:
    return Semantic(value_type=value_type)


QUALIFIERS: dict[str, QualifierValue] = {
    "type": enumeration({"pr", "issue"}),
    "updated": semantic(ValueType.DATE),
    "in": enumeration({"title", "body", "comments"}),
    "org": semantic(ValueType.ORGNAME),
    "repo": semantic(ValueType.REPOSITORY),
    "user": semantic(ValueType.USERNAME),
    "state": enumeration({"open", "closed"}),
    "assignee": semantic(ValueType.USERNAME),
    "author": semantic(ValueType.USERNAME),
    "mentions": semantic(ValueType.USERNAME),
    "team": semantic(ValueType.TEAMNAME),
    "commenter": semantic(ValueType.USERNAME),
    "involves": semantic(ValueType.USERNAME),
    "label": semantic(ValueType.LABEL),
    "linked": enumeration({"pr", "issue"}),
    "milestone": semantic(ValueType.MILESTONE),
    "project": semantic(ValueType.PROJECT_BOARD),
    "language": semantic(ValueType.LANGUAGE),
    "comments": semantic(ValueType.NUMBER),
    "interactions": semantic(ValueType.NUMBER),
    "reactions": semantic(ValueType.NUMBER),
    "created": semantic(ValueType.DATE),
    "closed": semantic(ValueType.DATE),
    "archived": enumeration({"true", "false"}),
    "is": enumeration(
        {"locked", "unlocked"},
        {"merged", "unmerged"},
        {"public", "private"},
        {"open", "closed"},
        {"pr", "issue"},
    ),
    "no": enumeration({"label", "milestone", "assignee", "project"}),
    "status": enumeration({"pending", "success", "failure"}),
    "base": semantic(ValueType.BASE_BRANCH),
    "head": semantic(ValueType.HEAD_BRANCH),
    "draft": enumeration({"true", "false"}),
    "review-requested": semantic(ValueType.USERNAME),
    "review": enumeration({"none", "required", "approved"}),
    "reviewed-by": semantic(ValueType.USERNAME),
    "team-review-requested": semantic(ValueType.TEAMNAME),
    "merged": semantic(ValueType.DATE),
}

# Qualifiers that only make sense when the query is restricted to pull requests.
REQUIRES_PR_TYPE: frozenset[str] = frozenset(
    {
        "status",
        "base",
        "head",
        "draft",
        "review-requested",
        "review",
        "reviewed-by",
        "team-review-requested",
        "merged",
    }
)

SORT_FIELDS: tuple[str, ...] = (
    "comments",
    "reactions",
    "reactions-+1",
    "reactions--1",
    "reactions-smile",
    "reactions-thinking_face",
    "reactions-heart",
    "reactions-tada",
    "interactions",
    "created",
    "updated",
)


def describe(value: QualifierValue) -> str:
    match value:
        case Enumeration():
            return " | ".join(", ".join(sorted(value_set)) for value_set in value.value_sets)
        case Semantic(value_type=value_type):
            return value_type.value


class SymbolInfo(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    name: str = Field(description="The qualifier name, or the variable name including its `$`.")
    document_id: str | None = Field(default=None, description="The document that defines the symbol, None for built-ins.")
    definition: VariableDefinitionNode | None = Field(default=None, description="The defining node, None for built-ins.")
    value: QualifierValue | None = Field(default=None, description="The accepted values, only set for built-in qualifiers.")

    @property
    def is_builtin(self) -> bool:
        return self.document_id is None


class SymbolTable:
    """The built-in qualifiers plus the variables defined across every document of a workspace.

    Each document owns the entries it contributed. `update` replaces a document's entries in one
    step, so readers see either the old or the new definitions of a document, never a mix.
    Updates for the same document are serialized; different documents may update concurrently.
    """

    _builtins: dict[str, SymbolInfo]
    _contributions: dict[str, list[SymbolInfo]]
    _lock: threading.Lock
    _document_locks: defaultdict[str, threading.Lock]

    def __init__(self):
        self._builtins = {name: SymbolInfo(name=name, value=value) for name, value in QUALIFIERS.items()}
        self._contributions = {}
        self._lock = threading.Lock()
        self._document_locks = defaultdict(threading.Lock)

    def _document_lock(self, document_id: str) -> threading.Lock:
        with self._lock:
            return self._document_locks[document_id]

    def update(self, document: QueryDocumentNode) -> list[SymbolInfo]:
        """Replace the variables contributed by `document` with the ones its tree defines now."""

        with self._document_lock(document.id):
            symbols = [
                SymbolInfo(name=definition.name.value, document_id=document.id, definition=definition)
                for definition in document.definitions()
            ]

            with self._lock:
                # re-inserting moves the document to the end, making its definitions the most recent
                self._contributions.pop(document.id, None)
                self._contributions[document.id] = symbols

        logger.debug(f"Registered {len(symbols)} variable definitions for {document.id or '<anonymous>'}")

        return symbols

    def remove(self, document_id: str) -> None:
        with self._lock:
            self._contributions.pop(document_id, None)
            self._document_locks.pop(document_id, None)

    def _snapshot(self) -> list[SymbolInfo]:
        with self._lock:
            return [symbol for symbols in self._contributions.values() for symbol in symbols]

    def get(self, name: str) -> SymbolInfo | None:
        """Return the most recently added symbol called `name`."""

        for symbol in reversed(self._snapshot()):
            if symbol.name == name:
                return symbol

        return self._builtins.get(name)

    def get_all(self, name: str) -> Iterator[SymbolInfo]:
        """Yield every symbol called `name`, oldest first, including shadowed definitions."""

        if builtin := self._builtins.get(name):
            yield builtin

        for symbol in self._snapshot():
            if symbol.name == name:
                yield symbol

    def all(self) -> list[SymbolInfo]:
        return [*self._builtins.values(), *self._snapshot()]

    def qualifier(self, name: str) -> QualifierValue | None:
        builtin = self._builtins.get(name)

        return builtin.value if builtin else None

    def variables(self) -> list[str]:
        return sorted({symbol.name for symbol in self._snapshot()})
