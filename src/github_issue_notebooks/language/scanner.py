import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum


class TokenType(StrEnum):
    WORD = "word"
    QUOTED = "quoted"
    UNTERMINATED_QUOTED = "unterminated-quoted"
    VARIABLE = "variable"
    COLON = "colon"
    COMMA = "comma"
    EQUALS = "equals"
    DASH = "dash"
    COMPARE = "compare"
    RANGE = "range"
    WHITESPACE = "whitespace"
    NEWLINE = "newline"
    UNKNOWN = "unknown"
    EOF = "eof"


@dataclass(frozen=True, slots=True)
class Token:
    type: TokenType
    text: str
    start: int
    end: int

    @property
    def is_trivia(self) -> bool:
        return self.type is TokenType.WHITESPACE


# Order matters: the first alternative that matches at a position wins.
_PATTERNS: list[tuple[str, str]] = [
    ("NEWLINE", r"\r\n|\r|\n"),
    ("WHITESPACE", r"[ \t\f\v]+"),
    ("QUOTED", r'"(?:\\[^\r\n]|[^"\\\r\n])*"'),
    ("UNTERMINATED_QUOTED", r'"(?:\\[^\r\n]|[^"\\\r\n])*\\?'),
    ("VARIABLE", r"\$[A-Za-z_][A-Za-z0-9_]*"),
    ("DATETIME", r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2})?(?:Z|[+-]\d{2}:\d{2})?"),
    ("RANGE", r"\.\."),
    ("COMPARE", r"[<>]=?"),
    ("COLON", r":"),
    ("COMMA", r","),
    ("EQUALS", r"="),
    ("DASH", r"-"),
    ("WORD", r'(?:[^\s:,="<>$.\-]|\.(?!\.))(?:[^\s:,="<>.]|\.(?!\.))*'),
    ("UNKNOWN", r"."),
]

_MASTER_PATTERN = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _PATTERNS))

_GROUP_TO_TYPE: dict[str, TokenType] = {
    "DATETIME": TokenType.WORD,
    **{name: TokenType[name] for name, _ in _PATTERNS if name != "DATETIME"},
}


def tokenize(text: str) -> Iterator[Token]:
    """Split `text` into tokens, ending with a single zero-width `EOF` token.

    Whitespace and newlines are emitted as tokens so that the concatenated token texts always
    reconstruct `text`. Calling `tokenize` again restarts the scan from the beginning.
    """

    position = 0
    length = len(text)

    while position < length:
        match = _MASTER_PATTERN.match(text, position)

        # the UNKNOWN alternative matches any single character
        if match is None or match.lastgroup is None:
            msg = f"Unable to scan text at offset {position}"
            raise ValueError(msg)

        yield Token(type=_GROUP_TO_TYPE[match.lastgroup], text=match.group(), start=position, end=match.end())

        position = match.end()

    yield Token(type=TokenType.EOF, text="", start=length, end=length)


def unquote(text: str, terminated: bool = True) -> str:
    """Strip the surrounding quotes from a quoted token and resolve its escapes."""

    if text.startswith('"'):
        text = text[1:-1] if terminated else text[1:]

    return re.sub(r"\\(.)", r"\1", text)


def quote(value: str) -> str:
    """Quote `value` for the search API when it would not read back as a single bare value.

    That is when it is empty or contains whitespace, a comma, a colon or a double quote.
    """

    if value and not re.search(r'[\s,:"]', value):
        return value

    escaped = value.replace("\\", "\\\\").replace('"', '\\"')

    return f'"{escaped}"'
