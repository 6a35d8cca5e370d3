"""
Schema registry for SOCQL.

Holds the field, function, operator, pipe-command, keyword and table
definitions the validator and editor helpers consult. Keys are
case-insensitive. Mutation is serialized with a re-entrant lock and
readers take an immutable snapshot per call.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

import yaml


logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_PATH = Path(__file__).with_name('default_schema.yaml')

FIELD_TYPES = ('string', 'number', 'timestamp', 'boolean', 'hash', 'ip', 'array')

DEFAULT_OPERATORS_BY_TYPE: Dict[str, List[str]] = {
    'string': ['=', '!=', '~', '!~', '= NULL', '!= NULL'],
    'number': ['=', '!=', '>', '>=', '<', '<=', 'IN'],
    'timestamp': ['=', '!=', '>', '>=', '<', '<='],
    'boolean': ['=', '!='],
    'hash': ['=', '!=', 'IN'],
    'ip': ['=', '!=', 'IN'],
    'array': ['= NULL', '!= NULL'],
}

TIME_UNITS = ('days', 'hours', 'minutes', 'seconds')


class SchemaError(ValueError):
    """Raised when a schema document is malformed."""


def _require(data: Any, key: str, kind: str) -> Any:
    if not isinstance(data, dict):
        raise SchemaError(f"{kind} definition must be a mapping, got {type(data).__name__}")
    if key not in data or not isinstance(data[key], str) or not data[key]:
        raise SchemaError(f"{kind} definition is missing '{key}'")
    return data[key]


@dataclass
class FieldDefinition:
    """A searchable event field.

    Attributes:
        name: Field name as written in queries
        type: One of string, number, timestamp, boolean, hash, ip, array
        category: Grouping such as process, file, network
        allowed_operators: Operator symbols valid for this field
    """
    name: str
    type: str
    category: str = 'system'
    allowed_operators: List[str] = field(default_factory=list)
    display_name: str = ''
    description: str = ''
    examples: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FieldDefinition':
        name = _require(data, 'name', 'Field')
        field_type = data.get('type', 'string')
        if field_type not in FIELD_TYPES:
            raise SchemaError(f"Field '{name}': unknown type '{field_type}'")
        return cls(
            name=name,
            type=field_type,
            category=data.get('category', 'system'),
            allowed_operators=list(data.get('allowedOperators') or DEFAULT_OPERATORS_BY_TYPE[field_type]),
            display_name=data.get('displayName', ''),
            description=data.get('description', ''),
            examples=list(data.get('examples') or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'displayName': self.display_name,
            'type': self.type,
            'description': self.description,
            'allowedOperators': list(self.allowed_operators),
            'category': self.category,
            'examples': list(self.examples),
        }


@dataclass
class FunctionParameter:
    """A single positional function parameter."""
    name: str
    type: str
    description: str = ''
    required: bool = True
    default_value: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FunctionParameter':
        return cls(
            name=_require(data, 'name', 'Parameter'),
            type=data.get('type', 'field'),
            description=data.get('description', ''),
            required=bool(data.get('required', True)),
            default_value=data.get('defaultValue'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'name': self.name,
            'type': self.type,
            'description': self.description,
            'required': self.required,
        }
        if self.default_value is not None:
            result['defaultValue'] = self.default_value
        return result


@dataclass
class FunctionDefinition:
    """A callable function such as ``lower`` or ``count``."""
    name: str
    parameters: List[FunctionParameter] = field(default_factory=list)
    return_type: str = 'string'
    category: str = 'string'
    display_name: str = ''
    description: str = ''
    syntax: str = ''
    examples: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FunctionDefinition':
        name = _require(data, 'name', 'Function')
        return cls(
            name=name,
            parameters=[FunctionParameter.from_dict(p) for p in data.get('parameters') or []],
            return_type=data.get('returnType', 'string'),
            category=data.get('category', 'string'),
            display_name=data.get('displayName') or f"{name}()",
            description=data.get('description', ''),
            syntax=data.get('syntax', ''),
            examples=list(data.get('examples') or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'displayName': self.display_name,
            'description': self.description,
            'syntax': self.syntax,
            'parameters': [p.to_dict() for p in self.parameters],
            'returnType': self.return_type,
            'category': self.category,
            'examples': list(self.examples),
        }


@dataclass
class OperatorDefinition:
    """A comparison, pattern, null or set operator."""
    symbol: str
    applicable_types: List[str] = field(default_factory=list)
    category: str = 'comparison'
    display_name: str = ''
    description: str = ''
    syntax: str = ''
    example: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OperatorDefinition':
        return cls(
            symbol=_require(data, 'symbol', 'Operator'),
            applicable_types=list(data.get('applicableTypes') or []),
            category=data.get('category', 'comparison'),
            display_name=data.get('displayName', ''),
            description=data.get('description', ''),
            syntax=data.get('syntax', ''),
            example=data.get('example', ''),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'displayName': self.display_name,
            'description': self.description,
            'category': self.category,
            'applicableTypes': list(self.applicable_types),
            'syntax': self.syntax,
            'example': self.example,
        }


@dataclass
class PipeCommandDefinition:
    """A post-pipe command such as ``last`` or ``agg``."""
    name: str
    display_name: str = ''
    description: str = ''
    syntax: str = ''
    examples: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PipeCommandDefinition':
        name = _require(data, 'name', 'Pipe command')
        return cls(
            name=name,
            display_name=data.get('displayName') or f"| {name}",
            description=data.get('description', ''),
            syntax=data.get('syntax', ''),
            examples=list(data.get('examples') or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'displayName': self.display_name,
            'description': self.description,
            'syntax': self.syntax,
            'examples': list(self.examples),
        }


@dataclass
class KeywordDefinition:
    """A reserved word; category is clause, operator, modifier or value."""
    word: str
    category: str = 'clause'
    description: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KeywordDefinition':
        return cls(
            word=_require(data, 'word', 'Keyword'),
            category=data.get('category', 'clause'),
            description=data.get('description', ''),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'word': self.word,
            'description': self.description,
            'category': self.category,
        }


@dataclass
class TableDefinition:
    """A data source that can follow FROM or JOIN."""
    name: str
    display_name: str = ''
    description: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TableDefinition':
        name = _require(data, 'name', 'Table')
        return cls(
            name=name,
            display_name=data.get('displayName') or name.upper(),
            description=data.get('description', ''),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'displayName': self.display_name,
            'description': self.description,
        }


@dataclass(frozen=True)
class SchemaSnapshot:
    """Immutable, lower-cased name sets taken from a registry at one instant."""
    fields: FrozenSet[str]
    functions: FrozenSet[str]
    keywords: FrozenSet[str]
    pipe_commands: FrozenSet[str]
    tables: FrozenSet[str]

    def is_valid_field(self, name: str) -> bool:
        return name.lower() in self.fields

    def is_valid_function(self, name: str) -> bool:
        return name.lower() in self.functions

    def is_reserved_keyword(self, word: str) -> bool:
        return word.lower() in self.keywords

    def is_pipe_command(self, name: str) -> bool:
        return name.lower() in self.pipe_commands

    def is_valid_table(self, name: str) -> bool:
        return name.lower() in self.tables


# Import order matters for the counts returned by import_schema
SECTIONS = (
    ('fields', FieldDefinition),
    ('functions', FunctionDefinition),
    ('operators', OperatorDefinition),
    ('pipeCommands', PipeCommandDefinition),
    ('keywords', KeywordDefinition),
    ('tables', TableDefinition),
)


class SchemaRegistry:
    """Case-insensitive registry of SOCQL schema definitions."""

    def __init__(self):
        """Initialize an empty registry."""
        self._lock = threading.RLock()
        self._fields: Dict[str, FieldDefinition] = {}
        self._functions: Dict[str, FunctionDefinition] = {}
        self._operators: Dict[str, OperatorDefinition] = {}
        self._pipe_commands: Dict[str, PipeCommandDefinition] = {}
        self._keywords: Dict[str, KeywordDefinition] = {}
        self._tables: Dict[str, TableDefinition] = {}

    def _register(self, table: Dict[str, Any], key: str, definition: Any, kind: str) -> bool:
        with self._lock:
            if key.lower() in table:
                logger.warning(f"{kind} '{key}' already exists")
                return False
            table[key.lower()] = definition
            return True

    def _unregister(self, table: Dict[str, Any], key: str) -> bool:
        with self._lock:
            if key.lower() not in table:
                return False
            del table[key.lower()]
            return True

    # Fields

    def register_field(self, definition: FieldDefinition) -> bool:
        """Register a field.

        Args:
            definition: Field definition to add

        Returns:
            True if registered, False if the name already exists
        """
        return self._register(self._fields, definition.name, definition, 'Field')

    def register_fields(self, definitions: List[FieldDefinition]) -> int:
        """Register several fields and return how many were added."""
        return sum(1 for definition in definitions if self.register_field(definition))

    def update_field(self, name: str, /, **updates: Any) -> bool:
        """Update attributes of an existing field.

        Args:
            name: Field name (case-insensitive)
            **updates: Attribute values to replace, e.g. ``type='number'``

        Returns:
            True if updated, False if the field does not exist or a rename
            would collide with another registered field

        Raises:
            SchemaError: If an update names an unknown attribute
        """
        with self._lock:
            existing = self._fields.get(name.lower())
            if existing is None:
                logger.warning(f"Field '{name}' not found, register it first")
                return False
            for attr in updates:
                if not hasattr(existing, attr):
                    raise SchemaError(f"Field has no attribute '{attr}'")
            new_name = updates.get('name')
            if (
                isinstance(new_name, str)
                and new_name.lower() != name.lower()
                and new_name.lower() in self._fields
            ):
                logger.warning(f"Field '{new_name}' already exists")
                return False
            for attr, value in updates.items():
                setattr(existing, attr, value)
            if existing.name.lower() != name.lower():
                del self._fields[name.lower()]
                self._fields[existing.name.lower()] = existing
            return True

    def unregister_field(self, name: str) -> bool:
        """Remove a field; False if it was not registered."""
        return self._unregister(self._fields, name)

    def get_field(self, name: str) -> Optional[FieldDefinition]:
        with self._lock:
            return self._fields.get(name.lower())

    def is_valid_field(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._fields

    def fields(self, category: Optional[str] = None) -> List[FieldDefinition]:
        """List fields in registration order, optionally filtered by category."""
        with self._lock:
            return [f for f in self._fields.values() if category is None or f.category == category]

    # Functions

    def register_function(self, definition: FunctionDefinition) -> bool:
        return self._register(self._functions, definition.name, definition, 'Function')

    def unregister_function(self, name: str) -> bool:
        return self._unregister(self._functions, name)

    def get_function(self, name: str) -> Optional[FunctionDefinition]:
        with self._lock:
            return self._functions.get(name.lower())

    def is_valid_function(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._functions

    def functions(self, category: Optional[str] = None) -> List[FunctionDefinition]:
        with self._lock:
            return [f for f in self._functions.values() if category is None or f.category == category]

    # Operators, pipe commands, keywords, tables

    def register_operator(self, definition: OperatorDefinition) -> bool:
        return self._register(self._operators, definition.symbol, definition, 'Operator')

    def get_operator(self, symbol: str) -> Optional[OperatorDefinition]:
        with self._lock:
            return self._operators.get(symbol.lower())

    def operators(self) -> List[OperatorDefinition]:
        with self._lock:
            return list(self._operators.values())

    def register_pipe_command(self, definition: PipeCommandDefinition) -> bool:
        return self._register(self._pipe_commands, definition.name, definition, 'Pipe command')

    def get_pipe_command(self, name: str) -> Optional[PipeCommandDefinition]:
        with self._lock:
            return self._pipe_commands.get(name.lower())

    def is_pipe_command(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._pipe_commands

    def pipe_commands(self) -> List[PipeCommandDefinition]:
        with self._lock:
            return list(self._pipe_commands.values())

    def register_keyword(self, definition: KeywordDefinition) -> bool:
        return self._register(self._keywords, definition.word, definition, 'Keyword')

    def get_keyword(self, word: str) -> Optional[KeywordDefinition]:
        with self._lock:
            return self._keywords.get(word.lower())

    def is_reserved_keyword(self, word: str) -> bool:
        with self._lock:
            return word.lower() in self._keywords

    def keywords(self, category: Optional[str] = None) -> List[KeywordDefinition]:
        with self._lock:
            return [k for k in self._keywords.values() if category is None or k.category == category]

    def register_table(self, definition: TableDefinition) -> bool:
        return self._register(self._tables, definition.name, definition, 'Table')

    def get_table(self, name: str) -> Optional[TableDefinition]:
        with self._lock:
            return self._tables.get(name.lower())

    def is_valid_table(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._tables

    def tables(self) -> List[TableDefinition]:
        with self._lock:
            return list(self._tables.values())

    # Bulk operations

    def snapshot(self) -> SchemaSnapshot:
        """Take a consistent view of all registered names."""
        with self._lock:
            return SchemaSnapshot(
                fields=frozenset(self._fields),
                functions=frozenset(self._functions),
                keywords=frozenset(self._keywords),
                pipe_commands=frozenset(self._pipe_commands),
                tables=frozenset(self._tables),
            )

    def import_schema(self, config: Dict[str, Any]) -> Dict[str, int]:
        """Merge a schema document into the registry.

        Existing names are kept; duplicates are skipped and not counted.

        Args:
            config: Mapping with optional fields, functions, operators,
                pipeCommands, keywords and tables lists

        Returns:
            Number of definitions added per section

        Raises:
            SchemaError: If the document or one of its entries is malformed
        """
        if not isinstance(config, dict):
            raise SchemaError("Schema document must be a mapping")

        # Parse everything before touching the registry so a bad entry
        # leaves it unchanged.
        parsed: Dict[str, List[Any]] = {}
        for section, definition_cls in SECTIONS:
            entries = config.get(section) or []
            if not isinstance(entries, list):
                raise SchemaError(f"Schema section '{section}' must be a list")
            parsed[section] = [definition_cls.from_dict(entry) for entry in entries]

        registrars = {
            'fields': self.register_field,
            'functions': self.register_function,
            'operators': self.register_operator,
            'pipeCommands': self.register_pipe_command,
            'keywords': self.register_keyword,
            'tables': self.register_table,
        }
        counts: Dict[str, int] = {}
        with self._lock:
            for section, _ in SECTIONS:
                counts[section] = sum(1 for d in parsed[section] if registrars[section](d))

        logger.debug(f"Imported schema: {counts}")
        return counts

    def export_schema(self) -> Dict[str, List[Dict[str, Any]]]:
        """Export all definitions in the import_schema document format."""
        with self._lock:
            return {
                'fields': [d.to_dict() for d in self._fields.values()],
                'functions': [d.to_dict() for d in self._functions.values()],
                'operators': [d.to_dict() for d in self._operators.values()],
                'pipeCommands': [d.to_dict() for d in self._pipe_commands.values()],
                'keywords': [d.to_dict() for d in self._keywords.values()],
                'tables': [d.to_dict() for d in self._tables.values()],
            }

    def stats(self) -> Dict[str, Any]:
        """Count definitions, with per-category breakdowns for fields and functions."""
        with self._lock:
            fields_by_category: Dict[str, int] = {}
            for f in self._fields.values():
                fields_by_category[f.category] = fields_by_category.get(f.category, 0) + 1
            functions_by_category: Dict[str, int] = {}
            for f in self._functions.values():
                functions_by_category[f.category] = functions_by_category.get(f.category, 0) + 1
            return {
                'fieldCount': len(self._fields),
                'functionCount': len(self._functions),
                'operatorCount': len(self._operators),
                'pipeCommandCount': len(self._pipe_commands),
                'keywordCount': len(self._keywords),
                'tableCount': len(self._tables),
                'fieldsByCategory': fields_by_category,
                'functionsByCategory': functions_by_category,
            }


def create_field_definition(
    name: str,
    field_type: str,
    category: str = 'system',
    allowed_operators: Optional[List[str]] = None,
    display_name: Optional[str] = None,
    description: Optional[str] = None,
    examples: Optional[List[str]] = None,
) -> FieldDefinition:
    """Build a field definition, filling operators from the field type.

    Raises:
        SchemaError: If the field type is unknown
    """
    if field_type not in FIELD_TYPES:
        raise SchemaError(f"Field '{name}': unknown type '{field_type}'")
    return FieldDefinition(
        name=name,
        type=field_type,
        category=category,
        allowed_operators=list(allowed_operators or DEFAULT_OPERATORS_BY_TYPE[field_type]),
        display_name=display_name or name.replace('_', ' ').title(),
        description=description or f"Field: {name}",
        examples=list(examples or []),
    )


def create_simple_function(name: str, description: str, category: str = 'string') -> FunctionDefinition:
    """Build a one-argument function definition returning a string."""
    return FunctionDefinition(
        name=name,
        parameters=[FunctionParameter(name='field', type='field', description='Input field')],
        return_type='string',
        category=category,
        display_name=f"{name}()",
        description=description,
        syntax=f"{name}(<field>)",
        examples=[f"{name}(user)"],
    )


def load_schema_file(path: str | Path) -> Dict[str, Any]:
    """Read a schema document from a YAML or JSON file.

    Raises:
        SchemaError: If the file is missing or cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        raise SchemaError(f"Schema file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        content = f.read()

    try:
        if path.suffix.lower() == '.json':
            document = json.loads(content)
        else:
            document = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SchemaError(f"Invalid schema file {path}: {e}")

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise SchemaError(f"Schema file {path} must contain a mapping")
    return document


def load_default_registry() -> SchemaRegistry:
    """Create a fresh registry populated with the bundled SOC schema."""
    registry = SchemaRegistry()
    registry.import_schema(load_schema_file(DEFAULT_SCHEMA_PATH))
    logger.debug(f"Loaded default schema from {DEFAULT_SCHEMA_PATH}")
    return registry


_default_registry: Optional[SchemaRegistry] = None
_default_lock = threading.Lock()


def get_default_registry() -> SchemaRegistry:
    """Return the process-wide registry used when callers pass none."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = load_default_registry()
        return _default_registry
