import re
from datetime import date

from github_issue_notebooks.language.compiler import split_sort
from github_issue_notebooks.language.diagnostics import Diagnostic, DiagnosticCode
from github_issue_notebooks.language.nodes import (
    LiteralNode,
    MissingNode,
    NodeParents,
    QualifiedValueNode,
    QueryDocumentNode,
    QueryNode,
    VariableDefinitionNode,
    VariableNameNode,
    walk,
)
from github_issue_notebooks.language.symbols import (
    REQUIRES_PR_TYPE,
    SORT_FIELDS,
    Enumeration,
    QualifierValue,
    Semantic,
    SymbolTable,
    ValueType,
)

_NUMBER = r"\d+"
_DATE = r"\d{4}-\d{2}-\d{2}(?:T\d{2}:\d{2}(?::\d{2})?(?:Z|[+-]\d{2}:\d{2})?)?"


def _structural_pattern(atom: str) -> re.Pattern[str]:
    """Match `atom`, a comparison like `>=atom`, or a range like `atom..atom` with `*` for an open end."""

    bound = rf"(?:{atom}|\*)"

    return re.compile(rf"(?:{bound}|[<>]=?{atom}|{bound}\.\.{bound})")


NUMBER_PATTERN = _structural_pattern(_NUMBER)
DATE_PATTERN = _structural_pattern(_DATE)


def _valid_dates(value: str) -> bool:
    """Check that every date in `value` exists in the calendar, i.e. reject `2023-02-30`."""

    for match in re.finditer(r"(\d{4})-(\d{2})-(\d{2})", value):
        try:
            date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            return False

    return True


def is_valid_value(domain: QualifierValue, value: str) -> bool:
    match domain:
        case Enumeration():
            return len(domain.matching_sets(value)) == 1
        case Semantic(value_type=ValueType.NUMBER):
            return NUMBER_PATTERN.fullmatch(value) is not None
        case Semantic(value_type=ValueType.DATE):
            return DATE_PATTERN.fullmatch(value) is not None and _valid_dates(value)
        case Semantic():
            return value.strip() != ""


class Validator:
    """Checks a parsed document against the qualifier schema and the variables in the symbol table."""

    symbols: SymbolTable
    document: QueryDocumentNode
    diagnostics: list[Diagnostic]

    _parents: NodeParents

    def __init__(self, symbols: SymbolTable, document: QueryDocumentNode):
        self.symbols = symbols
        self.document = document
        self.diagnostics = []
        self._parents = NodeParents(document)

    def validate(self) -> list[Diagnostic]:
        for node in walk(self.document):
            match node:
                case MissingNode():
                    self._error(node.start, node.end, node.message, DiagnosticCode.SYNTAX)
                case LiteralNode(terminated=False):
                    self._error(node.start, node.end, "Unterminated string, missing closing '\"'", DiagnosticCode.SYNTAX)
                case VariableNameNode():
                    self._check_variable(node)
                case QualifiedValueNode() if self._is_sort(node):
                    self._check_sort(node)
                case QualifiedValueNode():
                    self._check_qualified(node)
                case QueryNode() if len(node.sorts) > 1:
                    for duplicate in node.sorts[:-1]:
                        self._warning(
                            duplicate.start,
                            duplicate.end,
                            "Only the last sort directive of a query is used",
                            DiagnosticCode.DUPLICATE_SORT,
                        )
                case _:
                    pass

        return self.diagnostics

    def _error(self, start: int, end: int, message: str, code: DiagnosticCode) -> None:
        self.diagnostics.append(Diagnostic.error(start=start, end=end, message=message, code=code))

    def _warning(self, start: int, end: int, message: str, code: DiagnosticCode) -> None:
        self.diagnostics.append(Diagnostic.warning(start=start, end=end, message=message, code=code))

    def _is_sort(self, node: QualifiedValueNode) -> bool:
        query = self._parents.parent_of(node)

        return isinstance(query, QueryNode) and any(sort is node for sort in query.sorts)

    def _check_variable(self, node: VariableNameNode) -> None:
        parent = self._parents.parent_of(node)

        # the name being defined is not a reference
        if isinstance(parent, VariableDefinitionNode) and parent.name is node:
            return

        if self.symbols.get(node.value) is None:
            self._error(node.start, node.end, f"Unknown variable '{node.value}'", DiagnosticCode.UNKNOWN_VARIABLE)

    def _check_sort(self, node: QualifiedValueNode) -> None:
        for value in node.values:
            if not isinstance(value, LiteralNode):
                continue

            field, _ = split_sort(value.value)

            if field not in SORT_FIELDS:
                self._error(
                    value.start,
                    value.end,
                    f"Unknown sort field '{field}', expected one of: {', '.join(SORT_FIELDS)}",
                    DiagnosticCode.INVALID_SORT,
                )

    def _check_qualified(self, node: QualifiedValueNode) -> None:
        domain = self.symbols.qualifier(node.name)

        if domain is None:
            self._error(node.qualifier.start, node.qualifier.end, f"Unknown qualifier '{node.name}'", DiagnosticCode.UNKNOWN_QUALIFIER)
            return

        for value in node.values:
            if isinstance(value, LiteralNode) and not is_valid_value(domain, value.value):
                self._error(value.start, value.end, self._invalid_value_message(node.name, domain, value.value), DiagnosticCode.INVALID_VALUE)

        if node.name in REQUIRES_PR_TYPE:
            query = self._parents.enclosing_query(node)

            if query is not None and not self._restricts_to_pull_requests(query, path=()):
                self._warning(
                    node.qualifier.start,
                    node.qualifier.end,
                    f"'{node.name}' only applies to pull requests, add 'type:pr' or 'is:pr'",
                    DiagnosticCode.PR_ONLY,
                )

    def _invalid_value_message(self, name: str, domain: QualifierValue, value: str) -> str:
        match domain:
            case Enumeration():
                return f"'{value}' is not a valid value for '{name}', expected one of: {', '.join(domain.values())}"
            case Semantic(value_type=value_type):
                return f"'{value}' is not a valid {value_type.value} for '{name}'"

    def _restricts_to_pull_requests(self, query: QueryNode, path: tuple[str, ...]) -> bool:
        for term in query.terms:
            match term:
                case QualifiedValueNode(negated=False) if term.name in ("type", "is"):
                    if any(isinstance(value, LiteralNode) and value.value == "pr" for value in term.values):
                        return True
                case VariableNameNode(value=name) if name not in path:
                    symbol = self.symbols.get(name)
                    if (
                        symbol is not None
                        and symbol.definition is not None
                        and isinstance(symbol.definition.value, QueryNode)
                        and self._restricts_to_pull_requests(symbol.definition.value, path=(*path, name))
                    ):
                        return True
                case _:
                    pass

        return False


def validate(document: QueryDocumentNode, symbols: SymbolTable) -> list[Diagnostic]:
    return Validator(symbols=symbols, document=document).validate()
