"""
Completion and signature help built on the cursor context.
"""

import re
from typing import Dict, List, Optional, Tuple

from .context import analyze_context
from .lexer import KEYWORDS, tokenize
from .models import (
    Clause,
    CompletionItem,
    CursorContext,
    ExpectedType,
    ParameterInformation,
    SignatureHelp,
    TokenType,
)
from .schema import (
    FieldDefinition,
    FunctionDefinition,
    SchemaRegistry,
    TIME_UNITS,
    get_default_registry,
)


FIELD_CONTEXT_KEYWORDS = ('FROM', 'WHERE', 'AS', 'BY', 'ASC', 'DESC')

LOGICAL_KEYWORDS = ('AND', 'OR', 'NOT')

CLAUSE_KEYWORDS: Dict[Clause, Tuple[str, ...]] = {
    Clause.SELECT: ('FROM', 'WHERE'),
    Clause.FROM: ('WHERE', 'JOIN'),
    Clause.JOIN: ('ON',),
    Clause.GROUP: ('HAVING', 'ORDER'),
    Clause.HAVING: ('ORDER',),
    Clause.ORDER: ('LIMIT', 'OFFSET'),
    Clause.WHERE: LOGICAL_KEYWORDS,
}

PIPE_COMMAND_SNIPPETS: Dict[str, str] = {
    'last': 'last ${1:7} ${2|days,hours,minutes,seconds|}',
    'dedup': 'dedup ${1:field}',
    'eval': 'eval ${1:new_field} = ${2:expression}',
    'agg': 'agg ${1|by,count by|} ${2:field}',
    'order': 'order by ${1:field} ${2|desc,asc|}',
    'where': 'where ${1:condition}',
    'regex': 'regex ${1:new_field} = ${2:field} ${3:1} "${4:pattern}"',
}

WORD_TOKEN_TYPES = frozenset(KEYWORDS.values()) | {TokenType.IDENTIFIER}


def _sort_text(group: int, index: int) -> str:
    return f"{group}{index:03d}"


def _field_items(fields: List[FieldDefinition]) -> List[CompletionItem]:
    return [
        CompletionItem(
            label=f.name,
            kind='field',
            detail=f"{f.type} - {f.category}",
            insert_text=f.name + ' ',
            sort_text=_sort_text(0, index),
            documentation=(
                f"**{f.display_name}**\n\n{f.description}\n\nType: `{f.type}`\n\n"
                f"Allowed operators: {', '.join(f.allowed_operators)}"
            ),
        )
        for index, f in enumerate(fields)
    ]


def function_snippet(func: FunctionDefinition) -> str:
    """Build a snippet with one tab stop per parameter."""
    if not func.parameters:
        return f"{func.name}() "

    params = []
    for index, param in enumerate(func.parameters, start=1):
        if param.type == 'string':
            params.append(f'"${{{index}:{param.name}}}"')
        else:
            params.append(f"${{{index}:{param.name}}}")
    return f"{func.name}({', '.join(params)}) "


def _function_items(functions: List[FunctionDefinition]) -> List[CompletionItem]:
    items = []
    for index, func in enumerate(functions):
        examples = '\n'.join(f"- `{e}`" for e in func.examples)
        items.append(
            CompletionItem(
                label=func.name,
                kind='function',
                detail=func.category,
                insert_text=function_snippet(func),
                sort_text=_sort_text(1, index),
                documentation=(
                    f"**{func.display_name}**\n\n{func.description}\n\n"
                    f"Syntax: `{func.syntax}`\n\nExamples:\n{examples}"
                ),
            )
        )
    return items


def _operator_items(registry: SchemaRegistry, parent_field: Optional[str]) -> List[CompletionItem]:
    operators = registry.operators()
    field_def = registry.get_field(parent_field) if parent_field else None
    if field_def is not None:
        operators = [op for op in operators if field_def.type in op.applicable_types]

    return [
        CompletionItem(
            label=op.symbol,
            kind='operator',
            detail=op.display_name,
            insert_text='IN($1)' if op.symbol == 'IN' else f"{op.symbol} ",
            sort_text=_sort_text(2, index),
            documentation=(
                f"**{op.display_name}**\n\n{op.description}\n\n"
                f"Syntax: `{op.syntax}`\n\nExample: `{op.example}`"
            ),
        )
        for index, op in enumerate(operators)
    ]


def _pipe_command_items(registry: SchemaRegistry) -> List[CompletionItem]:
    items = []
    for index, cmd in enumerate(registry.pipe_commands()):
        examples = '\n'.join(f"- `{e}`" for e in cmd.examples)
        items.append(
            CompletionItem(
                label=cmd.name,
                kind='keyword',
                detail=cmd.display_name,
                insert_text=PIPE_COMMAND_SNIPPETS.get(cmd.name.lower(), cmd.name),
                sort_text=_sort_text(0, index),
                documentation=(
                    f"**{cmd.display_name}**\n\n{cmd.description}\n\n"
                    f"Syntax: `{cmd.syntax}`\n\nExamples:\n{examples}"
                ),
            )
        )
    return items


def _keyword_items(registry: SchemaRegistry, words: Optional[Tuple[str, ...]] = None) -> List[CompletionItem]:
    keywords = registry.keywords()
    if words is not None:
        keywords = [k for k in keywords if k.word.upper() in words]
    return [
        CompletionItem(
            label=k.word,
            kind='keyword',
            detail=k.category,
            insert_text=k.word + ' ',
            sort_text=_sort_text(3, index),
            documentation=k.description,
        )
        for index, k in enumerate(keywords)
    ]


def _logical_items(registry: SchemaRegistry) -> List[CompletionItem]:
    logical = [k for k in registry.keywords('operator') if k.word.upper() in LOGICAL_KEYWORDS]
    items = [
        CompletionItem(
            label=k.word,
            kind='keyword',
            detail='Logical operator',
            insert_text=k.word + ' ',
            sort_text=_sort_text(0, index),
            documentation=k.description,
        )
        for index, k in enumerate(logical)
    ]
    items.append(
        CompletionItem(
            label='|',
            kind='operator',
            detail='Pipe operator',
            insert_text='| ',
            sort_text='00',
            documentation='Start a pipe command',
        )
    )
    return items


def _time_unit_items() -> List[CompletionItem]:
    return [
        CompletionItem(
            label=unit,
            kind='unit',
            detail='Time unit',
            insert_text=unit,
            sort_text=_sort_text(0, index),
            documentation='Time unit for relative time filter',
        )
        for index, unit in enumerate(TIME_UNITS)
    ]


def _table_items(registry: SchemaRegistry) -> List[CompletionItem]:
    return [
        CompletionItem(
            label=t.name,
            kind='table',
            detail=t.display_name,
            insert_text=t.name + ' ',
            sort_text=_sort_text(0, index),
            documentation=t.description,
        )
        for index, t in enumerate(registry.tables())
    ]


def _value_items(registry: SchemaRegistry, ctx: CursorContext) -> List[CompletionItem]:
    field_def = registry.get_field(ctx.parent_field) if ctx.parent_field else None
    if field_def is None:
        return []

    # Examples are written as literals; inside an open literal the quote is already typed
    in_literal = re.search(r'["\']\w*$', ctx.text_before_cursor) is not None

    return [
        CompletionItem(
            label=example,
            kind='value',
            detail=f"{field_def.name} example",
            insert_text=example.strip('"\'') if in_literal else example,
            sort_text=_sort_text(0, index),
        )
        for index, example in enumerate(field_def.examples)
    ]


def _items_for_context(ctx: CursorContext, registry: SchemaRegistry) -> List[CompletionItem]:
    expected = ctx.expected_type

    if expected == ExpectedType.FIELD:
        items = (
            _field_items(registry.fields())
            + _function_items(registry.functions())
            + _keyword_items(registry, FIELD_CONTEXT_KEYWORDS)
        )
        if ctx.current_clause in (Clause.FROM, Clause.JOIN):
            items = _table_items(registry) + items
        return items
    if expected == ExpectedType.OPERATOR:
        return _operator_items(registry, ctx.parent_field)
    if expected == ExpectedType.PIPE_COMMAND:
        return _pipe_command_items(registry)
    if expected == ExpectedType.LOGICAL_OPERATOR:
        return _logical_items(registry)
    if expected == ExpectedType.TIME_UNIT:
        return _time_unit_items()
    if expected == ExpectedType.KEYWORD:
        return _keyword_items(registry)
    if expected == ExpectedType.FUNCTION:
        return _function_items(registry.functions())
    if expected == ExpectedType.VALUE:
        return _value_items(registry, ctx)
    return (
        _keyword_items(registry)
        + _field_items(registry.fields())
        + _function_items(registry.functions())
    )


def _relevant_keywords(ctx: CursorContext, registry: SchemaRegistry) -> List[CompletionItem]:
    """Keywords matching the typed word or the current clause."""
    word = ctx.word_at_cursor.lower()
    clause_words = CLAUSE_KEYWORDS.get(ctx.current_clause, ())

    matching = []
    contextual = []
    for item in _keyword_items(registry):
        if word and item.label.lower().startswith(word):
            matching.append(item)
        elif item.label.upper() in clause_words:
            contextual.append(item)
        elif ctx.expected_type in (ExpectedType.ANY, ExpectedType.KEYWORD):
            contextual.append(item)
    return matching + contextual


def _matches(item: CompletionItem, word: str) -> bool:
    return word in item.label.lower()


def complete(text: str, offset: int, registry: Optional[SchemaRegistry] = None) -> List[CompletionItem]:
    """Suggest completions for the cursor position.

    Args:
        text: The whole editor buffer
        offset: Zero-based cursor offset
        registry: Schema to draw suggestions from; the bundled default when omitted

    Returns:
        Completion items, most relevant first, filtered by the word being typed
    """
    registry = registry or get_default_registry()
    ctx = analyze_context(text, offset, registry)
    items = _items_for_context(ctx, registry)

    # Value and time-unit positions take no keywords
    if ctx.expected_type not in (ExpectedType.VALUE, ExpectedType.TIME_UNIT, ExpectedType.PIPE_COMMAND):
        labels = {item.label for item in items}
        keywords = [k for k in _relevant_keywords(ctx, registry) if k.label not in labels]
        items = keywords + items

    word = ctx.word_at_cursor.lower()
    if word:
        items = [item for item in items if _matches(item, word)]
        items.sort(key=lambda item: not item.label.lower().startswith(word))
    return items


def _enclosing_call(text: str, offset: int) -> Optional[Tuple[str, int]]:
    """Find the innermost unclosed call before offset and its argument index."""
    offset = max(0, min(offset, len(text)))
    tokens = [t for t in tokenize(text[:offset]).tokens if t.type != TokenType.EOF]

    depth = 0
    commas = 0
    for i in range(len(tokens) - 1, -1, -1):
        token = tokens[i]
        if token.type == TokenType.RPAREN:
            depth += 1
        elif token.type == TokenType.LPAREN:
            if depth == 0:
                if i > 0 and tokens[i - 1].type in WORD_TOKEN_TYPES:
                    return tokens[i - 1].value, commas
                return None
            depth -= 1
        elif token.type == TokenType.COMMA and depth == 0:
            commas += 1
    return None


def signature_help(text: str, offset: int, registry: Optional[SchemaRegistry] = None) -> Optional[SignatureHelp]:
    """Describe the function call enclosing the cursor.

    Returns:
        SignatureHelp with the active parameter clamped to the parameter
        list, or None when the cursor is not inside a known function call
    """
    call = _enclosing_call(text, offset)
    if call is None:
        return None

    name, argument = call
    func = (registry or get_default_registry()).get_function(name)
    if func is None:
        return None

    labels = [f"{p.name}{'' if p.required else '?'}: {p.type}" for p in func.parameters]

    parameters = []
    position = len(func.name) + 1
    for param, label in zip(func.parameters, labels):
        parameters.append(
            ParameterInformation(
                label=label,
                start=position,
                end=position + len(label),
                documentation=param.description,
            )
        )
        position += len(label) + 2

    return SignatureHelp(
        function=func.name,
        label=f"{func.name}({', '.join(labels)})",
        documentation=f"**{func.display_name}**\n\n{func.description}\n\nReturns: `{func.return_type}`",
        parameters=parameters,
        active_parameter=max(0, min(argument, len(func.parameters) - 1)),
    )
