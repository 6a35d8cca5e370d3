"""
SOC Query Language Package.

Lexer, implicit-AND normalizer, cursor context analyzer and validator for
SOCQL, plus the schema registry and editor helpers built on them.
"""

from .completion import complete, signature_help
from .context import analyze_context
from .hover import describe
from .lexer import Lexer, tokenize
from .models import (
    Clause,
    CompletionItem,
    CursorContext,
    ExpectedType,
    HoverInfo,
    LexerError,
    LexResult,
    Severity,
    SignatureHelp,
    Token,
    TokenType,
    ValidationError,
    ValidationResult,
)
from .normalizer import insert_implicit_and
from .schema import (
    SchemaError,
    SchemaRegistry,
    get_default_registry,
    load_default_registry,
    load_schema_file,
)
from .validator import validate_query

__all__ = [
    'Clause',
    'CompletionItem',
    'CursorContext',
    'ExpectedType',
    'HoverInfo',
    'LexResult',
    'Lexer',
    'LexerError',
    'SchemaError',
    'SchemaRegistry',
    'Severity',
    'SignatureHelp',
    'Token',
    'TokenType',
    'ValidationError',
    'ValidationResult',
    'analyze_context',
    'complete',
    'describe',
    'get_default_registry',
    'insert_implicit_and',
    'load_default_registry',
    'load_schema_file',
    'signature_help',
    'tokenize',
    'validate_query',
]
