"""
Data models for the SOCQL language services.

Defines the token taxonomy produced by the lexer, lexer and validation
diagnostics, and the cursor context consumed by completion helpers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TokenType(str, Enum):
    """Closed set of token types emitted by the lexer."""

    # Keywords
    SELECT = 'SELECT'
    WHERE = 'WHERE'
    AS = 'AS'
    AND = 'AND'
    OR = 'OR'
    NOT = 'NOT'
    IN = 'IN'
    NULL = 'NULL'
    TRUE = 'TRUE'
    FALSE = 'FALSE'
    ASC = 'ASC'
    DESC = 'DESC'
    BY = 'BY'
    DISTINCT = 'DISTINCT'

    # Pipe commands
    PIPE = 'PIPE'
    LAST = 'LAST'
    DEDUP = 'DEDUP'
    EVAL = 'EVAL'
    AGG = 'AGG'
    ORDER = 'ORDER'
    REGEX = 'REGEX'
    COUNT = 'COUNT'

    # Time units
    DAYS = 'DAYS'
    HOURS = 'HOURS'
    MINUTES = 'MINUTES'
    SECONDS = 'SECONDS'

    # Literals
    IDENTIFIER = 'IDENTIFIER'
    STRING = 'STRING'
    NUMBER = 'NUMBER'
    WILDCARD = 'WILDCARD'

    # Operators
    EQUALS = 'EQUALS'
    NOT_EQUALS = 'NOT_EQUALS'
    CONTAINS = 'CONTAINS'
    NOT_CONTAINS = 'NOT_CONTAINS'
    GREATER = 'GREATER'
    GREATER_EQ = 'GREATER_EQ'
    LESS = 'LESS'
    LESS_EQ = 'LESS_EQ'

    # Delimiters
    LPAREN = 'LPAREN'
    RPAREN = 'RPAREN'
    COMMA = 'COMMA'
    STAR = 'STAR'

    EOF = 'EOF'
    INVALID = 'INVALID'


PIPE_COMMAND_TYPES = frozenset({
    TokenType.LAST,
    TokenType.DEDUP,
    TokenType.EVAL,
    TokenType.AGG,
    TokenType.ORDER,
    TokenType.REGEX,
})

TIME_UNIT_TYPES = frozenset({
    TokenType.DAYS,
    TokenType.HOURS,
    TokenType.MINUTES,
    TokenType.SECONDS,
})

COMPARISON_TYPES = frozenset({
    TokenType.EQUALS,
    TokenType.NOT_EQUALS,
    TokenType.CONTAINS,
    TokenType.NOT_CONTAINS,
    TokenType.GREATER,
    TokenType.GREATER_EQ,
    TokenType.LESS,
    TokenType.LESS_EQ,
})


@dataclass
class Token:
    """Represents a lexical token.

    Attributes:
        type: The token type
        value: The lexeme; string literals carry their body without quotes
        start: Offset of the first source character (0-based)
        end: Offset one past the last source character
        line: Line of the first character (1-based)
        column: Column of the first character (1-based)
        raw: The exact source slice the token covers
    """
    type: TokenType
    value: str
    start: int
    end: int
    line: int
    column: int
    raw: str = ''

    @property
    def width(self) -> int:
        """Number of source characters covered by the token."""
        return self.end - self.start

    def to_dict(self) -> Dict[str, Any]:
        """Convert token to its wire shape."""
        return {
            'type': self.type.value,
            'value': self.value,
            'start': self.start,
            'end': self.end,
            'line': self.line,
            'column': self.column,
        }


@dataclass
class LexerError:
    """A non-fatal lexical problem found while tokenizing."""
    message: str
    line: int
    column: int
    start: int
    end: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'line': self.line,
            'column': self.column,
            'start': self.start,
            'end': self.end,
        }


@dataclass
class LexResult:
    """Output of a tokenize call.

    Attributes:
        tokens: Tokens in source order, always terminated by one EOF token
        errors: Lexical errors, in the order they were found
    """
    tokens: List[Token]
    errors: List[LexerError] = field(default_factory=list)


class Severity(str, Enum):
    """Diagnostic severity levels."""
    ERROR = 'error'
    WARNING = 'warning'
    INFO = 'info'
    HINT = 'hint'


@dataclass
class ValidationError:
    """A positioned diagnostic produced by the validator.

    Attributes:
        message: Human readable description
        severity: One of error, warning, info, hint
        start_line: Line of the first character (1-based)
        start_column: Column of the first character (1-based)
        end_line: Line of the end position
        end_column: Column one past the last character
        code: Stable identifier of the rule that fired
    """
    message: str
    severity: Severity
    start_line: int
    start_column: int
    end_line: int
    end_column: int
    code: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert diagnostic to its camelCase wire shape."""
        return {
            'message': self.message,
            'severity': self.severity.value,
            'startLine': self.start_line,
            'startColumn': self.start_column,
            'endLine': self.end_line,
            'endColumn': self.end_column,
            'code': self.code,
        }


@dataclass
class ValidationResult:
    """Result of validating a query.

    Attributes:
        is_valid: True when no error-severity diagnostic was produced
        errors: All diagnostics in check order
    """
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)

    def by_code(self, code: str) -> List[ValidationError]:
        """Return diagnostics carrying the given code."""
        return [error for error in self.errors if error.code == code]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isValid': self.is_valid,
            'errors': [error.to_dict() for error in self.errors],
        }


class Clause(str, Enum):
    """Syntactic region the cursor sits in."""
    SELECT = 'SELECT'
    FROM = 'FROM'
    JOIN = 'JOIN'
    WHERE = 'WHERE'
    GROUP = 'GROUP'
    HAVING = 'HAVING'
    ORDER = 'ORDER'
    PIPE = 'PIPE'
    NONE = 'NONE'


class ExpectedType(str, Enum):
    """Category of token expected at the cursor."""
    FIELD = 'FIELD'
    OPERATOR = 'OPERATOR'
    VALUE = 'VALUE'
    KEYWORD = 'KEYWORD'
    FUNCTION = 'FUNCTION'
    PIPE_COMMAND = 'PIPE_COMMAND'
    LOGICAL_OPERATOR = 'LOGICAL_OPERATOR'
    TIME_UNIT = 'TIME_UNIT'
    ANY = 'ANY'


@dataclass
class CursorContext:
    """What the editor expects at a cursor position.

    Attributes:
        word_at_cursor: Identifier characters immediately before the cursor
        text_before_cursor: Query text preceding the cursor
        current_clause: Clause containing the cursor
        expected_type: Category of token expected next
        is_after_pipe: Cursor follows a pipe with no command yet
        is_after_operator: Cursor follows a comparison or membership operator
        previous_token: Last complete token before the word being typed
        parent_field: Field whose operator or value is being entered
    """
    word_at_cursor: str
    text_before_cursor: str
    current_clause: Clause
    expected_type: ExpectedType
    is_after_pipe: bool
    is_after_operator: bool
    previous_token: str
    parent_field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'wordAtCursor': self.word_at_cursor,
            'textBeforeCursor': self.text_before_cursor,
            'currentClause': self.current_clause.value,
            'expectedType': self.expected_type.value,
            'parentField': self.parent_field,
            'isAfterPipe': self.is_after_pipe,
            'isAfterOperator': self.is_after_operator,
            'previousToken': self.previous_token,
        }


@dataclass
class CompletionItem:
    """A single completion suggestion."""
    label: str
    kind: str
    detail: str
    insert_text: str
    sort_text: str
    documentation: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'kind': self.kind,
            'detail': self.detail,
            'insertText': self.insert_text,
            'sortText': self.sort_text,
            'documentation': self.documentation,
        }


@dataclass
class ParameterInformation:
    """One parameter of a signature.

    Attributes:
        label: Parameter text such as ``pattern: string``
        start: Offset of the label within the signature label
        end: Offset one past the label within the signature label
        documentation: Parameter description
    """
    label: str
    start: int
    end: int
    documentation: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'range': [self.start, self.end],
            'documentation': self.documentation,
        }


@dataclass
class SignatureHelp:
    """Signature of the call enclosing the cursor."""
    function: str
    label: str
    documentation: str
    parameters: List[ParameterInformation]
    active_parameter: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'function': self.function,
            'label': self.label,
            'documentation': self.documentation,
            'parameters': [p.to_dict() for p in self.parameters],
            'activeParameter': self.active_parameter,
        }


@dataclass
class HoverInfo:
    """Hover description for the word under the cursor.

    ``start`` and ``end`` are character offsets of the described text.
    """
    kind: str
    contents: List[str]
    start: int
    end: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'contents': list(self.contents),
            'start': self.start,
            'end': self.end,
        }
