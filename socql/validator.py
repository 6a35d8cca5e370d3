"""
SOCQL query validator.

Runs the lexer and implicit-AND normalizer, then a fixed battery of
independent structural and semantic checks. Each check returns its own
diagnostics; the validator concatenates them in a stable order so the
same query always yields the same list.
"""

from typing import Callable, Iterator, List, Optional, Set, Tuple

from .lexer import tokenize
from .models import (
    LexerError,
    PIPE_COMMAND_TYPES,
    Severity,
    TIME_UNIT_TYPES,
    Token,
    TokenType,
    ValidationError,
    ValidationResult,
)
from .normalizer import insert_implicit_and
from .schema import SchemaRegistry, SchemaSnapshot, get_default_registry


MAX_REGEX_LENGTH = 200

AGGREGATION_FUNCTIONS = frozenset({
    'count', 'min', 'max', 'sum', 'avg', 'stddev', 'variance',
    'first', 'last', 'values', 'unique_values', 'distinct_values',
})

VALID_WILDCARD_OPERATORS = frozenset({
    TokenType.EQUALS,
    TokenType.NOT_EQUALS,
    TokenType.CONTAINS,
    TokenType.NOT_CONTAINS,
})

INVALID_WILDCARD_OPERATORS = frozenset({
    TokenType.GREATER,
    TokenType.GREATER_EQ,
    TokenType.LESS,
    TokenType.LESS_EQ,
})

QUERY_START_TYPES = frozenset({
    TokenType.SELECT,
    TokenType.PIPE,
    TokenType.IDENTIFIER,
})

SELECT_END_TYPES = frozenset({TokenType.WHERE, TokenType.PIPE})


Check = Callable[[List[Token], SchemaSnapshot], List[ValidationError]]


def _diagnostic(token: Token, message: str, severity: Severity, code: str) -> ValidationError:
    """Build a single-line diagnostic spanning the whole token."""
    return ValidationError(
        message=message,
        severity=severity,
        start_line=token.line,
        start_column=token.column,
        end_line=token.line,
        end_column=token.column + max(token.width, 1),
        code=code,
    )


def _is_synthetic(token: Token) -> bool:
    """True for the zero-width AND tokens added by the normalizer."""
    return token.type == TokenType.AND and token.start == token.end


def _next_index(tokens: List[Token], index: int) -> int:
    """Index of the first real token after index."""
    j = index + 1
    while j < len(tokens) and _is_synthetic(tokens[j]):
        j += 1
    return j


def _previous_index(tokens: List[Token], index: int) -> int:
    """Index of the last real token before index, or -1."""
    j = index - 1
    while j >= 0 and _is_synthetic(tokens[j]):
        j -= 1
    return j


def _is_call_head(tokens: List[Token], index: int) -> bool:
    j = _next_index(tokens, index)
    return j < len(tokens) and tokens[j].type == TokenType.LPAREN


def _is_alias(tokens: List[Token], index: int) -> bool:
    return index > 0 and tokens[index - 1].type == TokenType.AS


def convert_lexer_errors(lexer_errors: List[LexerError]) -> List[ValidationError]:
    """Map lexer errors to error-severity diagnostics."""
    return [
        ValidationError(
            message=err.message,
            severity=Severity.ERROR,
            start_line=err.line,
            start_column=err.column,
            end_line=err.line,
            end_column=err.column + (err.end - err.start),
            code='LEXER_ERROR',
        )
        for err in lexer_errors
    ]


def check_parentheses(tokens: List[Token], schema: SchemaSnapshot) -> List[ValidationError]:
    """Report stray closing and unclosed opening parentheses."""
    errors: List[ValidationError] = []
    stack: List[Token] = []

    for token in tokens:
        if token.type == TokenType.LPAREN:
            stack.append(token)
        elif token.type == TokenType.RPAREN:
            if stack:
                stack.pop()
            else:
                errors.append(
                    _diagnostic(token, 'Unexpected closing parenthesis', Severity.ERROR, 'UNMATCHED_PAREN')
                )

    for open_paren in stack:
        errors.append(_diagnostic(open_paren, 'Unclosed parenthesis', Severity.ERROR, 'UNCLOSED_PAREN'))

    return errors


def check_query_structure(tokens: List[Token], schema: SchemaSnapshot) -> List[ValidationError]:
    """Warn when a query does not start with SELECT, a pipe or a field."""
    if not tokens or tokens[0].type == TokenType.EOF:
        return []

    first = tokens[0]
    if first.type in QUERY_START_TYPES:
        return []
    return [
        _diagnostic(first, 'Query should start with SELECT or a field name', Severity.WARNING, 'INVALID_START')
    ]


def _is_pipe_command(token: Token, schema: SchemaSnapshot) -> bool:
    if token.type in PIPE_COMMAND_TYPES or token.type == TokenType.WHERE:
        return True
    return token.type == TokenType.IDENTIFIER and schema.is_pipe_command(token.value)


def check_pipe_commands(tokens: List[Token], schema: SchemaSnapshot) -> List[ValidationError]:
    """Check the shape of pipe commands and their required arguments."""
    errors: List[ValidationError] = []

    for i, token in enumerate(tokens):
        following = tokens[i + 1] if i + 1 < len(tokens) else None

        if token.type == TokenType.PIPE:
            if following is None or following.type == TokenType.EOF:
                errors.append(
                    _diagnostic(token, 'Expected pipe command after |', Severity.ERROR, 'MISSING_PIPE_COMMAND')
                )
            elif not _is_pipe_command(following, schema):
                errors.append(
                    _diagnostic(
                        following,
                        f"Invalid pipe command: '{following.value}'",
                        Severity.ERROR,
                        'INVALID_PIPE_COMMAND',
                    )
                )

        elif token.type == TokenType.LAST:
            # last(<field>) is the aggregate function, not the pipe command
            if following is not None and following.type == TokenType.LPAREN:
                continue
            unit = tokens[i + 2] if i + 2 < len(tokens) else None
            if following is None or following.type != TokenType.NUMBER:
                errors.append(
                    _diagnostic(token, 'Expected number after LAST', Severity.ERROR, 'LAST_MISSING_NUMBER')
                )
            elif unit is None or unit.type not in TIME_UNIT_TYPES:
                errors.append(
                    ValidationError(
                        message='Expected time unit (days, hours, minutes, seconds) after number',
                        severity=Severity.ERROR,
                        start_line=following.line,
                        start_column=following.column + following.width,
                        end_line=following.line,
                        end_column=following.column + following.width + 1,
                        code='LAST_MISSING_UNIT',
                    )
                )

        elif token.type == TokenType.ORDER:
            if following is None or following.type != TokenType.BY:
                errors.append(
                    _diagnostic(token, "Expected 'by' after 'order'", Severity.ERROR, 'ORDER_MISSING_BY')
                )

    return errors


def check_fields(tokens: List[Token], schema: SchemaSnapshot) -> List[ValidationError]:
    """Flag identifiers unknown to the field and function registries."""
    errors: List[ValidationError] = []

    for i, token in enumerate(tokens):
        if token.type != TokenType.IDENTIFIER or _is_alias(tokens, i):
            continue

        if _is_call_head(tokens, i):
            if not schema.is_valid_function(token.value):
                errors.append(
                    _diagnostic(
                        token, f"Unknown function: '{token.value}'", Severity.WARNING, 'UNKNOWN_FUNCTION'
                    )
                )
            continue

        if (
            schema.is_valid_field(token.value)
            or schema.is_reserved_keyword(token.value)
            or schema.is_valid_table(token.value)
        ):
            continue

        errors.append(
            _diagnostic(
                token,
                f"Error in 'search' command: The field '{token.value}' is not supported "
                f"in the current search context.",
                Severity.INFO,
                'UNKNOWN_FIELD',
            )
        )

    return errors


def _select_fields(
    tokens: List[Token],
    schema: SchemaSnapshot,
    include_nested: bool,
) -> Iterator[Tuple[int, Token, List[str]]]:
    """Yield (select_index, token, enclosing_calls) for field references in SELECT spans.

    ``select_index`` is the position of the owning SELECT token. Aliases,
    call heads and reserved words are skipped. ``enclosing_calls`` lists the
    lower-cased names of the calls the identifier is an argument of.
    """
    select_index: Optional[int] = None
    calls: List[Optional[str]] = []

    for i, token in enumerate(tokens):
        if token.type == TokenType.SELECT:
            select_index = i
            calls = []
            continue
        if select_index is None:
            continue
        if token.type in SELECT_END_TYPES:
            select_index = None
            continue

        if token.type == TokenType.LPAREN:
            h = _previous_index(tokens, i)
            head = tokens[h] if h >= 0 else None
            if head is not None and head.type != TokenType.COMMA and head.value.isidentifier():
                calls.append(head.value.lower())
            else:
                calls.append(None)
            continue
        if token.type == TokenType.RPAREN:
            if calls:
                calls.pop()
            continue

        if token.type != TokenType.IDENTIFIER:
            continue
        if _is_alias(tokens, i) or _is_call_head(tokens, i):
            continue
        if schema.is_reserved_keyword(token.value) or schema.is_valid_table(token.value):
            continue
        if calls and not include_nested:
            continue

        yield select_index, token, [name for name in calls if name is not None]


def check_duplicate_select_fields(tokens: List[Token], schema: SchemaSnapshot) -> List[ValidationError]:
    """Warn about fields listed more than once in the same SELECT."""
    errors: List[ValidationError] = []
    seen: Set[Tuple[int, str]] = set()

    for select_index, token, _ in _select_fields(tokens, schema, include_nested=False):
        key = (select_index, token.value.lower())
        if key in seen:
            errors.append(
                _diagnostic(
                    token,
                    f"Duplicate field '{token.value}' will be removed",
                    Severity.WARNING,
                    'DUPLICATE_FIELD',
                )
            )
        else:
            seen.add(key)

    return errors


def _agg_by_fields(tokens: List[Token]) -> Optional[Set[str]]:
    """Return grouping fields of the first AGG command, or None if it has no BY."""
    for i, token in enumerate(tokens):
        if token.type != TokenType.AGG:
            continue
        for j in range(i + 1, len(tokens)):
            if tokens[j].type in (TokenType.PIPE, TokenType.EOF):
                return None
            if tokens[j].type == TokenType.BY:
                fields: Set[str] = set()
                for k in range(j + 1, len(tokens)):
                    if tokens[k].type in (TokenType.PIPE, TokenType.EOF):
                        break
                    if tokens[k].type == TokenType.IDENTIFIER and not _is_call_head(tokens, k):
                        fields.add(tokens[k].value.lower())
                return fields
        return None
    return None


def check_agg_by_columns(tokens: List[Token], schema: SchemaSnapshot) -> List[ValidationError]:
    """With ``| agg ... by``, SELECT fields must be grouped or aggregated."""
    group_fields = _agg_by_fields(tokens)
    if group_fields is None:
        return []

    errors: List[ValidationError] = []
    for _, token, calls in _select_fields(tokens, schema, include_nested=True):
        if any(name in AGGREGATION_FUNCTIONS for name in calls):
            continue
        if token.value.lower() in group_fields:
            continue
        errors.append(
            _diagnostic(
                token,
                f"Error syntax: column '{token.value}' must appear in the agg by clause "
                f"or be used in an aggregate function",
                Severity.ERROR,
                'AGG_BY_COLUMN_ERROR',
            )
        )
    return errors


def check_function_without_command(tokens: List[Token], schema: SchemaSnapshot) -> List[ValidationError]:
    """Reject queries that begin with a bare function call."""
    if len(tokens) < 2:
        return []

    first = tokens[0]
    j = _next_index(tokens, 0)
    if j >= len(tokens):
        return []
    second = tokens[j]
    if second.type != TokenType.LPAREN or not first.value.isidentifier():
        return []
    if not schema.is_valid_function(first.value):
        return []

    return [
        _diagnostic(
            first,
            f"Unable to parse the search: Encountered the '{first.value}' function. "
            f"Expected command at the beginning of the search string.",
            Severity.ERROR,
            'FUNCTION_WITHOUT_COMMAND',
        )
    ]


def check_regex_pattern_length(tokens: List[Token], schema: SchemaSnapshot) -> List[ValidationError]:
    """Limit the pattern argument of regex_match to MAX_REGEX_LENGTH characters."""
    errors: List[ValidationError] = []

    for i, token in enumerate(tokens):
        if token.type != TokenType.IDENTIFIER or token.value.lower() != 'regex_match':
            continue
        if not _is_call_head(tokens, i):
            continue

        depth = 1
        argument = 0
        for candidate in tokens[_next_index(tokens, i) + 1:]:
            if depth == 0:
                break
            if candidate.type == TokenType.LPAREN:
                depth += 1
            elif candidate.type == TokenType.RPAREN:
                depth -= 1
            elif candidate.type == TokenType.COMMA and depth == 1:
                argument += 1
            elif candidate.type == TokenType.STRING and argument == 1 and depth == 1:
                if len(candidate.value) > MAX_REGEX_LENGTH:
                    errors.append(
                        _diagnostic(
                            candidate,
                            f"Regex pattern exceeds maximum length of {MAX_REGEX_LENGTH} characters "
                            f"(current: {len(candidate.value)})",
                            Severity.ERROR,
                            'REGEX_PATTERN_TOO_LONG',
                        )
                    )
                break

    return errors


def _is_wildcard_operand(token: Token) -> bool:
    if token.type == TokenType.WILDCARD:
        return True
    return token.type == TokenType.STRING and (token.value.startswith('*') or token.value.endswith('*'))


def check_wildcard_operators(tokens: List[Token], schema: SchemaSnapshot) -> List[ValidationError]:
    """Wildcard operands only combine with =, !=, ~ and !~."""
    errors: List[ValidationError] = []

    for i, token in enumerate(tokens):
        if not _is_wildcard_operand(token):
            continue

        # Walk back over field names to the operator
        j = i - 1
        while j >= 0 and tokens[j].type == TokenType.IDENTIFIER:
            j -= 1
        if j < 0:
            continue

        operator = tokens[j]
        if operator.type in INVALID_WILDCARD_OPERATORS:
            errors.append(
                _diagnostic(
                    token,
                    f"Wildcard patterns only support =, !=, ~, !~ operators. "
                    f"Found '{operator.value}' operator.",
                    Severity.ERROR,
                    'INVALID_WILDCARD_OPERATOR',
                )
            )

    return errors


CHECKS: List[Check] = [
    check_parentheses,
    check_query_structure,
    check_pipe_commands,
    check_fields,
    check_duplicate_select_fields,
    check_agg_by_columns,
    check_function_without_command,
    check_regex_pattern_length,
    check_wildcard_operators,
]


def validate_query(query: str, registry: Optional[SchemaRegistry] = None) -> ValidationResult:
    """Validate a SOCQL query.

    Args:
        query: The query text
        registry: Schema to validate against; the bundled default when omitted

    Returns:
        ValidationResult; ``is_valid`` is False when any error-severity
        diagnostic was produced
    """
    schema = (registry or get_default_registry()).snapshot()
    lexed = tokenize(query)
    tokens = insert_implicit_and(lexed.tokens)

    errors = convert_lexer_errors(lexed.errors)
    for check in CHECKS:
        errors.extend(check(tokens, schema))

    is_valid = not any(error.severity == Severity.ERROR for error in errors)
    return ValidationResult(is_valid=is_valid, errors=errors)
