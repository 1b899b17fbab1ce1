import pytest
from inline_snapshot import snapshot

from github_issue_notebooks.language.compiler import compile_diagnostics
from github_issue_notebooks.language.diagnostics import Diagnostic, DiagnosticCode, Severity
from github_issue_notebooks.language.parser import parse
from github_issue_notebooks.language.symbols import QUALIFIERS, SymbolTable
from github_issue_notebooks.language.validation import is_valid_value, validate


def check(text: str, symbols: SymbolTable) -> list[Diagnostic]:
    document = parse(text, document_id="doc")
    symbols.update(document)

    return [*validate(document, symbols), *compile_diagnostics(document, symbols)]


def codes(text: str, symbols: SymbolTable) -> list[DiagnosticCode]:
    return [diagnostic.code for diagnostic in check(text, symbols)]


def test_valid_query(symbols: SymbolTable):
    assert check("repo:octo/hello is:open label:bug,feature -label:wontfix comments:>5 sort:created-asc", symbols) == []


def test_invalid_number(symbols: SymbolTable):
    assert check("comments:abc", symbols) == [
        Diagnostic.error(start=9, end=12, message="'abc' is not a valid number for 'comments'", code=DiagnosticCode.INVALID_VALUE)
    ]


def test_invalid_enumeration_value(symbols: SymbolTable):
    assert check("state:weird", symbols) == [
        Diagnostic.error(
            start=6,
            end=11,
            message="'weird' is not a valid value for 'state', expected one of: closed, open",
            code=DiagnosticCode.INVALID_VALUE,
        )
    ]


def test_unknown_qualifier(symbols: SymbolTable):
    assert check("foo:bar", symbols) == [
        Diagnostic.error(start=0, end=3, message="Unknown qualifier 'foo'", code=DiagnosticCode.UNKNOWN_QUALIFIER)
    ]


def test_unknown_variable(symbols: SymbolTable):
    assert check("$nope is:open", symbols) == [
        Diagnostic.error(start=0, end=5, message="Unknown variable '$nope'", code=DiagnosticCode.UNKNOWN_VARIABLE)
    ]


def test_defined_variable(symbols: SymbolTable):
    assert check("$mine=assignee:octocat\n$mine is:open", symbols) == []


def test_self_reference(symbols: SymbolTable):
    assert check("$a=$a", symbols) == [
        Diagnostic.error(start=3, end=5, message="Circular reference: $a -> $a", code=DiagnosticCode.CIRCULAR_REFERENCE)
    ]


def test_mutual_reference(symbols: SymbolTable):
    assert check("$a=$b\n$b=$a", symbols) == snapshot(
        [
            Diagnostic.error(start=3, end=5, message="Circular reference: $a -> $b -> $a", code=DiagnosticCode.CIRCULAR_REFERENCE),
            Diagnostic.error(start=9, end=11, message="Circular reference: $b -> $a -> $b", code=DiagnosticCode.CIRCULAR_REFERENCE),
        ]
    )


def test_syntax_errors(symbols: SymbolTable):
    diagnostics = check('label:bug = is:open\nlabel:\n"open', symbols)

    assert [(diagnostic.code, diagnostic.message) for diagnostic in diagnostics] == snapshot(
        [
            (DiagnosticCode.SYNTAX, 'Unexpected "="'),
            (DiagnosticCode.SYNTAX, "Expected a value for 'label'"),
            (DiagnosticCode.SYNTAX, "Unterminated string, missing closing '\"'"),
        ]
    )


def test_invalid_sort(symbols: SymbolTable):
    assert codes("is:open sort:bogus", symbols) == [DiagnosticCode.INVALID_SORT]
    assert codes("is:open sort:reactions-+1-asc", symbols) == []


def test_duplicate_sort(symbols: SymbolTable):
    diagnostics = check("sort:created is:open sort:updated", symbols)

    assert diagnostics == [
        Diagnostic.warning(start=0, end=12, message="Only the last sort directive of a query is used", code=DiagnosticCode.DUPLICATE_SORT)
    ]


def test_pull_request_only_qualifier(symbols: SymbolTable):
    diagnostics = check("review:approved", symbols)

    assert len(diagnostics) == 1
    assert diagnostics[0].code == DiagnosticCode.PR_ONLY
    assert diagnostics[0].severity == Severity.WARNING
    assert (diagnostics[0].range.start, diagnostics[0].range.end) == (0, 6)


@pytest.mark.parametrize(
    "text",
    [
        "type:pr review:approved",
        "is:pr draft:true",
        "$prs=is:pr\n$prs review:approved",
    ],
)
def test_pull_request_only_qualifier_with_pr_type(text: str, symbols: SymbolTable):
    assert codes(text, symbols) == []


def test_pull_request_only_qualifier_negated_type(symbols: SymbolTable):
    assert codes("-type:pr review:approved", symbols) == [DiagnosticCode.PR_ONLY]


@pytest.mark.parametrize(
    ("qualifier", "value", "valid"),
    [
        ("comments", "5", True),
        ("comments", ">5", True),
        ("comments", "<=10", True),
        ("comments", "10..20", True),
        ("comments", "10..*", True),
        ("comments", "abc", False),
        ("comments", ">", False),
        ("created", "2023-01-01", True),
        ("created", ">=2023-01-01", True),
        ("created", "2023-01-01..2023-02-01", True),
        ("created", "*..2023-02-01", True),
        ("created", "2023-01-01T10:00:00Z", True),
        ("created", "2023-02-30", False),
        ("created", "yesterday", False),
        ("is", "merged", True),
        ("is", "pr", True),
        ("is", "weird", False),
        ("label", "bug", True),
    ],
)
def test_is_valid_value(qualifier: str, value: str, valid: bool):
    assert is_valid_value(QUALIFIERS[qualifier], value) is valid
