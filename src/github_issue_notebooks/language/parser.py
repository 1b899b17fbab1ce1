from github_issue_notebooks.language.nodes import (
    LiteralNode,
    MissingNode,
    QualifiedValueNode,
    QueryDocumentNode,
    QueryNode,
    StatementNode,
    TermNode,
    ValueNode,
    VariableDefinitionNode,
    VariableNameNode,
)
from github_issue_notebooks.language.scanner import Token, TokenType, tokenize, unquote

SORT_QUALIFIER = "sort"

_END_OF_STATEMENT = frozenset({TokenType.NEWLINE, TokenType.EOF})
_SEPARATORS = frozenset({TokenType.WHITESPACE, TokenType.NEWLINE, TokenType.EOF})
_ATOMS = frozenset({TokenType.WORD, TokenType.QUOTED, TokenType.UNTERMINATED_QUOTED})


class Parser:
    """A recursive descent parser for query documents.

    Grammar, one statement per line:

        statement  := definition | query
        definition := VARIABLE "=" query
        query      := term (WHITESPACE term)*
        term       := VARIABLE | ["-"] atom | ["-"] WORD ":" value ("," value)*
        value      := VARIABLE | [COMPARE] atom | atom ".." [atom]

    The parser looks at most one token ahead and never backtracks. When it meets a token it cannot
    use it records a `MissingNode` spanning that token and skips to the end of the line, so a broken
    statement never affects its siblings.
    """

    text: str
    document_id: str

    _tokens: list[Token]
    _position: int
    _recovering: bool

    def __init__(self, text: str, document_id: str = ""):
        self.text = text
        self.document_id = document_id
        self._tokens = list(tokenize(text))
        self._position = 0
        self._recovering = False

    def parse(self) -> QueryDocumentNode:
        statements: list[StatementNode] = []

        while True:
            self._skip(TokenType.WHITESPACE, TokenType.NEWLINE)

            if self._peek().type is TokenType.EOF:
                break

            statements.append(self._parse_statement())

        return QueryDocumentNode(id=self.document_id, text=self.text, start=0, end=len(self.text), nodes=tuple(statements))

    # -- token helpers

    def _peek(self) -> Token:
        return self._tokens[self._position]

    def _next(self) -> Token:
        token = self._tokens[self._position]

        if token.type is not TokenType.EOF:
            self._position += 1

        return token

    def _skip(self, *token_types: TokenType) -> None:
        while self._peek().type in token_types:
            self._next()

    def _unexpected(self, token: Token | None = None) -> MissingNode:
        """Record the current (or an already consumed) token as unexpected and resynchronize at the next newline."""

        if token is None:
            token = self._next()

        self._recovering = True

        while self._peek().type not in _END_OF_STATEMENT:
            self._next()

        return MissingNode(start=token.start, end=token.end, message=f'Unexpected "{token.text}"')

    # -- statements

    def _parse_statement(self) -> StatementNode:
        start = self._peek().start

        if self._peek().type is not TokenType.VARIABLE:
            return self._parse_query(start=start)

        token = self._next()
        name = VariableNameNode(start=token.start, end=token.end, value=token.text)

        self._skip(TokenType.WHITESPACE)

        if self._peek().type is not TokenType.EQUALS:
            if self._peek().type in _END_OF_STATEMENT:
                return QueryNode(start=start, end=name.end, terms=(name,))
            return self._parse_query(start=start, terms=[name])

        equals = self._next()
        self._skip(TokenType.WHITESPACE)

        value: QueryNode | MissingNode
        if self._peek().type in _END_OF_STATEMENT:
            value = MissingNode(start=equals.end, end=equals.end, message="Expected a query after '='")
        else:
            value = self._parse_query(start=self._peek().start)

        return VariableDefinitionNode(start=start, end=max(value.end, equals.end), name=name, value=value)

    def _parse_query(self, start: int, terms: list[TermNode] | None = None) -> QueryNode:
        terms = list(terms or [])
        sorts: list[QualifiedValueNode] = []
        end = terms[-1].end if terms else start

        self._recovering = False

        while True:
            self._skip(TokenType.WHITESPACE)

            if self._peek().type in _END_OF_STATEMENT:
                break

            term = self._parse_term()

            if isinstance(term, QualifiedValueNode) and term.name == SORT_QUALIFIER:
                sorts.append(term)
            else:
                terms.append(term)

            end = term.end

            if not self._recovering and self._peek().type not in _SEPARATORS:
                missing = self._unexpected()
                terms.append(missing)
                end = missing.end

            if self._recovering:
                break

        return QueryNode(start=start, end=end, terms=tuple(terms), sorts=tuple(sorts))

    # -- terms

    def _parse_term(self) -> TermNode:
        token = self._peek()

        match token.type:
            case TokenType.VARIABLE:
                self._next()
                return VariableNameNode(start=token.start, end=token.end, value=token.text)
            case TokenType.DASH:
                return self._parse_negated()
            case TokenType.WORD:
                self._next()
                if self._peek().type is TokenType.COLON:
                    return self._parse_qualified(start=token.start, negated=False, name=token)
                return LiteralNode(start=token.start, end=token.end, value=token.text)
            case TokenType.QUOTED | TokenType.UNTERMINATED_QUOTED:
                return self._literal([self._next()])
            case _:
                return self._unexpected()

    def _parse_negated(self) -> TermNode:
        dash = self._next()

        if self._peek().type in (TokenType.QUOTED, TokenType.UNTERMINATED_QUOTED):
            phrase = self._next()
            terminated = phrase.type is TokenType.QUOTED
            value = unquote(phrase.text, terminated=terminated)
            return LiteralNode(start=dash.start, end=phrase.end, value=value, quoted=True, terminated=terminated, negated=True)

        if self._peek().type is not TokenType.WORD:
            return self._unexpected(dash)

        word = self._next()

        if self._peek().type is TokenType.COLON:
            return self._parse_qualified(start=dash.start, negated=True, name=word)

        return LiteralNode(start=dash.start, end=word.end, value=dash.text + word.text)

    def _parse_qualified(self, start: int, negated: bool, name: Token) -> QualifiedValueNode:
        qualifier = LiteralNode(start=name.start, end=name.end, value=name.text)
        separator = self._next()
        values: list[ValueNode] = []

        while True:
            value = self._parse_value()

            if value is None:
                value = MissingNode(start=separator.end, end=separator.end, message=f"Expected a value for '{qualifier.value}'")

            values.append(value)

            if self._recovering or self._peek().type is not TokenType.COMMA:
                break

            separator = self._next()

        return QualifiedValueNode(start=start, end=values[-1].end, negated=negated, qualifier=qualifier, values=tuple(values))

    def _parse_value(self) -> ValueNode | None:
        token = self._peek()

        if token.type in _SEPARATORS:
            return None

        if token.type is TokenType.VARIABLE:
            self._next()
            return VariableNameNode(start=token.start, end=token.end, value=token.text)

        if token.type is TokenType.COMPARE:
            operator = self._next()
            if self._peek().type not in _ATOMS:
                return self._unexpected()
            return self._literal([operator, self._next()])

        if token.type not in _ATOMS:
            return self._unexpected()

        parts = [self._next()]

        if self._peek().type is TokenType.RANGE:
            parts.append(self._next())
            if self._peek().type in _ATOMS:
                parts.append(self._next())

        return self._literal(parts)

    def _literal(self, parts: list[Token]) -> LiteralNode:
        terminated = all(part.type is not TokenType.UNTERMINATED_QUOTED for part in parts)

        if len(parts) == 1 and parts[0].type is not TokenType.WORD:
            value = unquote(parts[0].text, terminated=terminated)
            return LiteralNode(start=parts[0].start, end=parts[0].end, value=value, quoted=True, terminated=terminated)

        value = "".join(part.text for part in parts)

        return LiteralNode(start=parts[0].start, end=parts[-1].end, value=value, terminated=terminated)


def parse(text: str, document_id: str = "") -> QueryDocumentNode:
    """Parse `text` into a fresh syntax tree."""

    return Parser(text=text, document_id=document_id).parse()
