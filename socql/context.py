"""
Cursor context analysis for editor assistance.

Works on the text before the cursor only. String literals and comments
are blanked out before clause and keyword detection so that words inside
them never change the detected clause. Operator, value and parent-field
rules see comments blanked and string bodies blanked between their quotes.
"""

import re
from typing import List, Optional, Set, Tuple

from .lexer import KEYWORDS, tokenize
from .models import Clause, CursorContext, ExpectedType, Token, TokenType
from .schema import SchemaRegistry, SchemaSnapshot, get_default_registry


CLAUSE_PATTERN = re.compile(r'\b(SELECT|FROM|JOIN|WHERE|GROUP|HAVING|ORDER)\b', re.IGNORECASE)

OPERATOR_END_PATTERN = re.compile(r'(?:[=~<>]|!=|!~)\s*$')
IN_LIST_PATTERN = re.compile(r'\bIN\s*\((?:[^()]*,)?\s*$', re.IGNORECASE)

FIELD_BOUNDARY_PATTERN = re.compile(
    r'(?:\b(?:SELECT|FROM|JOIN|ON|HAVING)|\bGROUP\s+BY|\bORDER\s+BY)$', re.IGNORECASE
)
BARE_GROUP_ORDER_PATTERN = re.compile(r'\b(?:GROUP|ORDER)$', re.IGNORECASE)
LAST_JOIN_PATTERN = re.compile(r'\bJOIN\b(?!.*\bJOIN\b)', re.IGNORECASE | re.DOTALL)
ON_PATTERN = re.compile(r'\bON\b', re.IGNORECASE)

TIME_UNIT_PATTERN = re.compile(r'\|\s*last\s+\d+\s*$', re.IGNORECASE)
COMPLETE_CONDITION_PATTERN = re.compile(
    r'''[a-zA-Z_]\w*\s*(?:=|!=|~|!~|>=?|<=?)\s*(?:"[^"]*"|'[^']*'|\w+)\s*$'''
)
PARENT_FIELD_PATTERN = re.compile(
    r'([A-Za-z_]\w*)\s*(?:!=|!~|>=|<=|=|~|>|<|\bIN\b\s*\(?)\s*$', re.IGNORECASE
)
IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_]\w*$')
WORD_PATTERN = re.compile(r'\w*$')

FIELD_FOLLOWERS = frozenset({'WHERE', 'AND', 'OR', 'NOT', 'BY'})

WORD_TYPES = frozenset(KEYWORDS.values()) | {TokenType.IDENTIFIER}

CLAUSES = {clause.value: clause for clause in Clause}


def _mask_literals(
    prefix: str,
    tokens: List[Token],
    unterminated: Set[int],
    strings: str = 'blank',
) -> str:
    """Blank comments and string literals, keeping offsets and newlines.

    ``strings`` selects what happens to string literals: ``'blank'`` blanks
    them entirely, ``'quotes'`` blanks only their bodies and ``'keep'``
    leaves them as written.
    """
    chars = list(prefix)
    covered = 0

    def blank(start: int, end: int) -> None:
        for i in range(start, end):
            if not chars[i].isspace():
                chars[i] = ' '

    for token in tokens:
        # Anything between tokens that is not whitespace is a comment
        blank(covered, token.start)
        if token.type == TokenType.STRING:
            if strings == 'blank':
                blank(token.start, token.end)
            elif strings == 'quotes':
                closed = token.start not in unterminated and token.width >= 2
                blank(token.start + 1, token.end - 1 if closed else token.end)
        covered = max(covered, token.end)
    blank(covered, len(chars))

    return ''.join(chars)


def _resolve_clause(masked: str) -> Clause:
    keyword_offset = -1
    clause = Clause.NONE
    for match in CLAUSE_PATTERN.finditer(masked):
        if match.start() >= keyword_offset:
            keyword_offset = match.start()
            clause = CLAUSES[match.group(1).upper()]

    pipe_offset = masked.rfind('|')
    if pipe_offset > keyword_offset:
        return Clause.PIPE
    return clause


def _open_string(tokens: List[Token], unterminated: Set[int], offset: int) -> Optional[Token]:
    """Return the unterminated string literal the cursor sits in, if any."""
    for token in reversed(tokens):
        if token.type == TokenType.EOF:
            continue
        if token.type == TokenType.STRING and token.end == offset and token.start in unterminated:
            return token
        return None
    return None


def _split_typed_word(tokens: List[Token], offset: int) -> Tuple[List[Token], str]:
    """Separate the word touching the cursor from the complete tokens before it."""
    complete = [t for t in tokens if t.type != TokenType.EOF]
    if complete and complete[-1].type in WORD_TYPES and complete[-1].end == offset:
        return complete[:-1], complete[-1].raw
    return complete, ''


def _is_reserved(word: str, schema: SchemaSnapshot) -> bool:
    return word.upper() in KEYWORDS or schema.is_reserved_keyword(word)


def _is_after_pipe(masked: str) -> bool:
    pipe_offset = masked.rfind('|')
    if pipe_offset < 0:
        return False
    return re.fullmatch(r'\s*\w*', masked[pipe_offset + 1:]) is not None


def _parent_field(head: str, previous: Optional[Token], schema: SchemaSnapshot) -> Optional[str]:
    match = PARENT_FIELD_PATTERN.search(head)
    if match and not _is_reserved(match.group(1), schema):
        return match.group(1)
    if (
        previous is not None
        and previous.type == TokenType.IDENTIFIER
        and not head[previous.end:].strip()
        and not _is_reserved(previous.value, schema)
    ):
        return previous.value
    return None


def _expected_type(
    head: str,
    masked_head: str,
    clause: Clause,
    after_pipe: bool,
    after_operator: bool,
    in_string: bool,
    previous: str,
    prefix: str,
    schema: SchemaSnapshot,
) -> ExpectedType:
    if after_pipe:
        return ExpectedType.PIPE_COMMAND
    if after_operator or in_string:
        return ExpectedType.VALUE

    trimmed = masked_head.rstrip()
    if FIELD_BOUNDARY_PATTERN.search(trimmed):
        return ExpectedType.FIELD
    if clause == Clause.SELECT and trimmed.endswith(','):
        return ExpectedType.FIELD

    if BARE_GROUP_ORDER_PATTERN.search(trimmed):
        return ExpectedType.KEYWORD
    if clause == Clause.JOIN:
        join = LAST_JOIN_PATTERN.search(masked_head)
        if join and not ON_PATTERN.search(masked_head, join.end()):
            return ExpectedType.KEYWORD

    if previous.upper() in FIELD_FOLLOWERS:
        return ExpectedType.FIELD
    if clause == Clause.WHERE and IDENTIFIER_PATTERN.match(previous) and not _is_reserved(previous, schema):
        return ExpectedType.OPERATOR
    if previous.upper() == 'LAST' or TIME_UNIT_PATTERN.search(head):
        return ExpectedType.TIME_UNIT
    if COMPLETE_CONDITION_PATTERN.search(head):
        return ExpectedType.LOGICAL_OPERATOR

    if not prefix.strip():
        return ExpectedType.KEYWORD
    return ExpectedType.ANY


def analyze_context(
    full_text: str,
    cursor_offset: int,
    registry: Optional[SchemaRegistry] = None,
) -> CursorContext:
    """Work out what kind of token belongs at the cursor.

    Only ``full_text[:cursor_offset]`` is inspected; the offset is clamped
    to the text bounds. Never raises on malformed input.

    Args:
        full_text: The whole editor buffer
        cursor_offset: Zero-based character offset of the cursor
        registry: Schema consulted for pipe commands and reserved words

    Returns:
        CursorContext describing the clause and the expected token category
    """
    schema = (registry or get_default_registry()).snapshot()
    offset = max(0, min(cursor_offset, len(full_text)))
    prefix = full_text[:offset]

    lexed = tokenize(prefix)
    unterminated = {error.start for error in lexed.errors}
    masked = _mask_literals(prefix, lexed.tokens, unterminated)
    quoted = _mask_literals(prefix, lexed.tokens, unterminated, strings='quotes')
    commentless = _mask_literals(prefix, lexed.tokens, unterminated, strings='keep')

    open_string = _open_string(lexed.tokens, unterminated, offset)
    if open_string is not None:
        complete = [t for t in lexed.tokens if t.end <= open_string.start and t.type != TokenType.EOF]
        head_end = open_string.start
    else:
        complete, typed = _split_typed_word(lexed.tokens, offset)
        head_end = len(prefix) - len(typed)
    masked_head = masked[:head_end]
    # Comments and string bodies blanked, quotes kept for the value rules
    head = quoted[:head_end]

    previous = complete[-1] if complete else None
    previous_text = previous.raw if previous is not None else ''

    clause = _resolve_clause(masked)
    after_pipe = open_string is None and _is_after_pipe(masked)
    after_operator = bool(OPERATOR_END_PATTERN.search(head) or IN_LIST_PATTERN.search(head))

    expected = _expected_type(
        head=head,
        masked_head=masked_head,
        clause=clause,
        after_pipe=after_pipe,
        after_operator=after_operator,
        in_string=open_string is not None,
        previous=previous_text,
        prefix=masked,
        schema=schema,
    )

    return CursorContext(
        word_at_cursor=WORD_PATTERN.search(commentless).group(0),
        text_before_cursor=prefix,
        current_clause=clause,
        expected_type=expected,
        is_after_pipe=after_pipe,
        is_after_operator=after_operator,
        previous_token=previous_text,
        parent_field=_parent_field(head, previous, schema),
    )
