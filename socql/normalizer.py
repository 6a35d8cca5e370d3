"""
Implicit conjunction handling.

Queries such as ``user = "bob" status = "active"`` juxtapose conditions
without a logical operator. The normalizer inserts zero-width AND tokens
between such conditions so later checks can treat them uniformly.
"""

from typing import List

from .models import Token, TokenType


EXPRESSION_END_TYPES = frozenset({
    TokenType.STRING,
    TokenType.NUMBER,
    TokenType.IDENTIFIER,
    TokenType.RPAREN,
    TokenType.NULL,
    TokenType.TRUE,
    TokenType.FALSE,
    TokenType.WILDCARD,
})

EXPRESSION_START_TYPES = frozenset({
    TokenType.IDENTIFIER,
    TokenType.LPAREN,
})

LOGICAL_TYPES = frozenset({
    TokenType.AND,
    TokenType.OR,
    TokenType.NOT,
})

CONTEXT_KEYWORD_TYPES = frozenset({
    TokenType.SELECT,
    TokenType.WHERE,
    TokenType.PIPE,
    TokenType.LAST,
    TokenType.DEDUP,
    TokenType.EVAL,
    TokenType.AGG,
    TokenType.ORDER,
    TokenType.BY,
    TokenType.AS,
    TokenType.ASC,
    TokenType.DESC,
    TokenType.IN,
    TokenType.COMMA,
})

# Identifier spellings that must never be preceded by a synthetic AND
RESERVED_FOLLOWERS = frozenset({'AND', 'OR', 'NOT', 'IN', 'AS', 'BY', 'ASC', 'DESC'})


def _needs_conjunction(current: Token, following: Token) -> bool:
    if current.type not in EXPRESSION_END_TYPES:
        return False
    if following.type not in EXPRESSION_START_TYPES:
        return False
    if following.type in LOGICAL_TYPES or following.type in CONTEXT_KEYWORD_TYPES:
        return False
    if following.type == TokenType.IDENTIFIER and following.value.upper() in RESERVED_FOLLOWERS:
        return False
    return True


def _synthetic_and(after: Token) -> Token:
    return Token(
        type=TokenType.AND,
        value='AND',
        start=after.end,
        end=after.end,
        line=after.line,
        column=after.column + after.width,
        raw='',
    )


def insert_implicit_and(tokens: List[Token]) -> List[Token]:
    """Insert synthetic AND tokens between juxtaposed conditions.

    Synthetic tokens are zero width and sit at the end of the preceding
    token. They are typed AND, which is neither an expression end nor an
    expression start, so running this function twice is a no-op.

    Args:
        tokens: Lexer output, usually ending with EOF

    Returns:
        A new token list; the input list is left untouched
    """
    result: List[Token] = []

    for i, current in enumerate(tokens):
        result.append(current)
        if current.type == TokenType.EOF or i + 1 >= len(tokens):
            continue
        if _needs_conjunction(current, tokens[i + 1]):
            result.append(_synthetic_and(current))

    return result
