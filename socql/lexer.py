"""
SOCQL tokenizer.

Implements a single left-to-right scan with one character of lookahead.
The scan never aborts: malformed input produces INVALID tokens and
LexerError entries alongside a best-effort token stream.
"""

from typing import Dict, List, Optional, Tuple

from .models import LexerError, LexResult, Token, TokenType


KEYWORDS: Dict[str, TokenType] = {
    'SELECT': TokenType.SELECT,
    'WHERE': TokenType.WHERE,
    'AS': TokenType.AS,
    'AND': TokenType.AND,
    'OR': TokenType.OR,
    'NOT': TokenType.NOT,
    'IN': TokenType.IN,
    'NULL': TokenType.NULL,
    'TRUE': TokenType.TRUE,
    'FALSE': TokenType.FALSE,
    'ASC': TokenType.ASC,
    'DESC': TokenType.DESC,
    'BY': TokenType.BY,
    'DISTINCT': TokenType.DISTINCT,
    'LAST': TokenType.LAST,
    'DEDUP': TokenType.DEDUP,
    'EVAL': TokenType.EVAL,
    'AGG': TokenType.AGG,
    'ORDER': TokenType.ORDER,
    'REGEX': TokenType.REGEX,
    'COUNT': TokenType.COUNT,
    'DAYS': TokenType.DAYS,
    'HOURS': TokenType.HOURS,
    'MINUTES': TokenType.MINUTES,
    'SECONDS': TokenType.SECONDS,
}

# Longest lexeme first so that '!=' wins over '=' and '>=' over '>'
OPERATOR_TOKENS: List[Tuple[str, TokenType]] = [
    ('!=', TokenType.NOT_EQUALS),
    ('!~', TokenType.NOT_CONTAINS),
    ('>=', TokenType.GREATER_EQ),
    ('<=', TokenType.LESS_EQ),
    ('=', TokenType.EQUALS),
    ('~', TokenType.CONTAINS),
    ('>', TokenType.GREATER),
    ('<', TokenType.LESS),
    ('|', TokenType.PIPE),
    ('(', TokenType.LPAREN),
    (')', TokenType.RPAREN),
    (',', TokenType.COMMA),
    ('*', TokenType.STAR),
]

QUOTES = ('"', "'")


def _is_identifier_start(char: str) -> bool:
    return char == '_' or ('a' <= char <= 'z') or ('A' <= char <= 'Z')


def _is_identifier_part(char: str) -> bool:
    return _is_identifier_start(char) or ('0' <= char <= '9')


def _is_digit(char: str) -> bool:
    return '0' <= char <= '9'


class Lexer:
    """Tokenizes SOCQL query strings.

    Each instance owns its scan state; use one instance per input.
    """

    def __init__(self, query: str):
        """Initialize lexer with a query string."""
        self.query = query
        self.position = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Token] = []
        self.errors: List[LexerError] = []

    def tokenize(self) -> LexResult:
        """Scan the whole input and return tokens plus lexer errors."""
        self.position = 0
        self.line = 1
        self.column = 1
        self.tokens = []
        self.errors = []

        while self.position < len(self.query):
            token = self._next_token()
            if token is not None:
                self.tokens.append(token)

        self.tokens.append(
            Token(TokenType.EOF, '', self.position, self.position, self.line, self.column)
        )
        return LexResult(tokens=self.tokens, errors=self.errors)

    def _peek(self, offset: int = 0) -> str:
        pos = self.position + offset
        if pos < len(self.query):
            return self.query[pos]
        return ''

    def _advance(self) -> None:
        if self.query[self.position] == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.position += 1

    def _make_token(self, token_type: TokenType, value: str, start: int, line: int, column: int) -> Token:
        return Token(
            type=token_type,
            value=value,
            start=start,
            end=self.position,
            line=line,
            column=column,
            raw=self.query[start:self.position],
        )

    def _next_token(self) -> Optional[Token]:
        """Read one token, or skip one whitespace/comment run and return None."""
        start = self.position
        line = self.line
        column = self.column
        char = self._peek()

        if char.isspace():
            while self.position < len(self.query) and self._peek().isspace():
                self._advance()
            return None

        if char == '/' and self._peek(1) == '/':
            while self.position < len(self.query) and self._peek() != '\n':
                self._advance()
            return None

        if char in QUOTES:
            return self._read_string(start, line, column, char)

        if _is_digit(char):
            return self._read_number(start, line, column)

        if _is_identifier_start(char):
            return self._read_identifier(start, line, column)

        for lexeme, token_type in OPERATOR_TOKENS:
            if lexeme[0] != char:
                continue
            if len(lexeme) == 2 and self._peek(1) != lexeme[1]:
                continue
            for _ in lexeme:
                self._advance()
            return self._make_token(token_type, lexeme, start, line, column)

        self._advance()
        self.errors.append(
            LexerError(
                message=f"Unexpected character: '{char}'",
                line=line,
                column=column,
                start=start,
                end=self.position,
            )
        )
        return self._make_token(TokenType.INVALID, char, start, line, column)

    def _read_string(self, start: int, line: int, column: int, quote: str) -> Token:
        """Read a quoted literal; the token value excludes the quotes."""
        self._advance()
        content_start = self.position

        while self.position < len(self.query):
            char = self._peek()
            if char == '\n':
                break
            if char == quote:
                value = self.query[content_start:self.position]
                self._advance()
                return self._make_token(TokenType.STRING, value, start, line, column)
            if char == '\\':
                if self._peek(1) in ('', '\n'):
                    self._advance()
                    break
                self._advance()
            self._advance()

        self.errors.append(
            LexerError(
                message=f"Unterminated string starting at line {line}, column {column}",
                line=line,
                column=column,
                start=start,
                end=self.position,
            )
        )
        return self._make_token(
            TokenType.STRING, self.query[content_start:self.position], start, line, column
        )

    def _read_number(self, start: int, line: int, column: int) -> Token:
        while _is_digit(self._peek()):
            self._advance()
        if self._peek() == '.' and _is_digit(self._peek(1)):
            self._advance()
            while _is_digit(self._peek()):
                self._advance()
        return self._make_token(
            TokenType.NUMBER, self.query[start:self.position], start, line, column
        )

    def _read_identifier(self, start: int, line: int, column: int) -> Token:
        while _is_identifier_part(self._peek()):
            self._advance()

        # powershell* style prefix patterns
        if self._peek() == '*':
            self._advance()
            return self._make_token(
                TokenType.WILDCARD, self.query[start:self.position], start, line, column
            )

        value = self.query[start:self.position]
        token_type = KEYWORDS.get(value.upper(), TokenType.IDENTIFIER)
        return self._make_token(token_type, value, start, line, column)


def tokenize(query: str) -> LexResult:
    """Tokenize a SOCQL query string.

    Args:
        query: The raw query text

    Returns:
        LexResult with the token list (ending in EOF) and lexer errors
    """
    return Lexer(query).tokenize()
