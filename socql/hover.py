"""
Hover descriptions for fields, functions, pipe commands, keywords and operators.
"""

import re
from typing import Optional, Tuple

from .models import HoverInfo
from .schema import SchemaRegistry, get_default_registry


CALL_FOLLOWS_PATTERN = re.compile(r'\s*\(')
OPERATOR_BEFORE_PATTERN = re.compile(r'([=!~><]+)\s*$')
OPERATOR_CHARS = '=!~><'


def _is_word_char(char: str) -> bool:
    return char.isalnum() or char == '_'


def _word_at(text: str, offset: int) -> Tuple[int, int]:
    """Return the [start, end) span of the word containing or touching offset."""
    start = offset
    while start > 0 and _is_word_char(text[start - 1]):
        start -= 1
    end = offset
    while end < len(text) and _is_word_char(text[end]):
        end += 1
    return start, end


def _operator_at(text: str, offset: int) -> Tuple[int, int]:
    start = offset
    while start > 0 and text[start - 1] in OPERATOR_CHARS:
        start -= 1
    end = offset
    while end < len(text) and text[end] in OPERATOR_CHARS:
        end += 1
    return start, end


def _describe_operator(registry: SchemaRegistry, symbol: str, start: int, end: int) -> Optional[HoverInfo]:
    operator = registry.get_operator(symbol)
    if operator is None:
        return None
    return HoverInfo(
        kind='operator',
        contents=[
            f"**{operator.display_name}** `{operator.symbol}`",
            operator.description,
            f"**Syntax:** `{operator.syntax}`\n\n**Example:** `{operator.example}`",
        ],
        start=start,
        end=end,
    )


def describe(text: str, offset: int, registry: Optional[SchemaRegistry] = None) -> Optional[HoverInfo]:
    """Describe the schema entry under the cursor.

    Fields win over functions, which only match when followed by ``(``.
    Pipe commands and keywords follow. An operator is described when the
    cursor sits on it or on the word right after it.

    Args:
        text: The whole editor buffer
        offset: Zero-based cursor offset
        registry: Schema to describe from; the bundled default when omitted

    Returns:
        HoverInfo, or None when nothing known is under the cursor
    """
    registry = registry or get_default_registry()
    offset = max(0, min(offset, len(text)))
    start, end = _word_at(text, offset)

    if start == end:
        op_start, op_end = _operator_at(text, offset)
        if op_start == op_end:
            return None
        return _describe_operator(registry, text[op_start:op_end], op_start, op_end)

    word = text[start:end]

    field_def = registry.get_field(word)
    if field_def is not None:
        contents = [
            f"**{field_def.display_name}** `{field_def.type}`",
            field_def.description,
            f"**Category:** {field_def.category}\n\n"
            f"**Allowed operators:** {', '.join(field_def.allowed_operators)}",
        ]
        if field_def.examples:
            contents.append(f"**Examples:** {', '.join(field_def.examples)}")
        return HoverInfo(kind='field', contents=contents, start=start, end=end)

    if CALL_FOLLOWS_PATTERN.match(text, end):
        func = registry.get_function(word)
        if func is not None:
            examples = '\n'.join(f"- `{e}`" for e in func.examples)
            return HoverInfo(
                kind='function',
                contents=[
                    f"**{func.display_name}**",
                    func.description,
                    f"**Syntax:** `{func.syntax}`",
                    f"**Returns:** `{func.return_type}`",
                    f"**Examples:**\n{examples}",
                ],
                start=start,
                end=end,
            )

    command = registry.get_pipe_command(word)
    if command is not None:
        examples = '\n'.join(f"- `{e}`" for e in command.examples)
        return HoverInfo(
            kind='pipe_command',
            contents=[
                f"**{command.display_name}**",
                command.description,
                f"**Syntax:** `{command.syntax}`",
                f"**Examples:**\n{examples}",
            ],
            start=start,
            end=end,
        )

    keyword = registry.get_keyword(word)
    if keyword is not None:
        return HoverInfo(
            kind='keyword',
            contents=[f"**{keyword.word}** `keyword`", keyword.description],
            start=start,
            end=end,
        )

    match = OPERATOR_BEFORE_PATTERN.search(text, 0, start)
    if match:
        return _describe_operator(registry, match.group(1), match.start(1), match.end(1))
    return None
