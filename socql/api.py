"""
FastAPI application for the SOCQL language services.

Provides endpoints for:
- Validating, tokenizing and analyzing queries
- Completion, signature help and hover for editors
- Inspecting and extending the schema registry
- CRUD operations for saved queries
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .completion import complete, signature_help
from .context import analyze_context
from .hover import describe
from .lexer import tokenize
from .normalizer import insert_implicit_and
from .schema import (
    SchemaError,
    SchemaRegistry,
    create_field_definition,
    get_default_registry,
)
from .storage import DEFAULT_QUERIES_PATH, QueryStorage
from .validator import validate_query


logger = logging.getLogger(__name__)


# Pydantic models for API requests/responses


class Diagnostic(BaseModel):
    """A positioned validation diagnostic."""
    message: str
    severity: str
    startLine: int
    startColumn: int
    endLine: int
    endColumn: int
    code: str


class ValidationResponse(BaseModel):
    """Result of validating a query."""
    isValid: bool
    errors: List[Diagnostic] = Field(default_factory=list)


class QueryRequest(BaseModel):
    """Request carrying a query string."""
    query: str = Field(..., description="SOCQL query string")


class TokenizeRequest(BaseModel):
    """Request to tokenize a query."""
    query: str = Field(..., description="SOCQL query string")
    normalize: bool = Field(False, description="Insert implicit AND tokens")


class TokenModel(BaseModel):
    """A lexical token."""
    type: str
    value: str
    start: int
    end: int
    line: int
    column: int


class LexerErrorModel(BaseModel):
    """A lexical error."""
    message: str
    line: int
    column: int
    start: int
    end: int


class TokenizeResponse(BaseModel):
    """Tokens and lexer errors for a query."""
    tokens: List[TokenModel]
    errors: List[LexerErrorModel] = Field(default_factory=list)


class CursorRequest(BaseModel):
    """Request about a cursor position within a query."""
    query: str = Field(..., description="SOCQL query string")
    offset: int = Field(..., ge=0, description="Zero-based cursor offset")


class ContextResponse(BaseModel):
    """What the editor expects at the cursor."""
    wordAtCursor: str
    textBeforeCursor: str
    currentClause: str
    expectedType: str
    parentField: Optional[str] = None
    isAfterPipe: bool
    isAfterOperator: bool
    previousToken: str


class CompletionItemModel(BaseModel):
    """A completion suggestion."""
    label: str
    kind: str
    detail: str
    insertText: str
    sortText: str
    documentation: str = ''


class CompletionResponse(BaseModel):
    """Cursor context and the suggestions derived from it."""
    context: ContextResponse
    items: List[CompletionItemModel]


class FieldCreate(BaseModel):
    """Request to register a new field."""
    name: str = Field(..., min_length=1, description="Field name")
    type: str = Field(..., description="Field type (string, number, timestamp, boolean, hash, ip, array)")
    category: str = 'system'
    allowedOperators: Optional[List[str]] = None
    displayName: Optional[str] = None
    description: Optional[str] = None
    examples: List[str] = Field(default_factory=list)


class SavedQueryCreate(BaseModel):
    """Request to save a query."""
    name: str = Field(..., description="Query name")
    description: str = Field('', description="Query description")
    query: str = Field(..., description="SOCQL query string")
    tags: List[str] = Field(default_factory=list)


class SavedQueryUpdate(BaseModel):
    """Request to update a saved query."""
    name: Optional[str] = None
    description: Optional[str] = None
    query: Optional[str] = None
    tags: Optional[List[str]] = None


class SavedQuery(BaseModel):
    """A saved SOCQL query."""
    id: str
    name: str
    description: str = ''
    query: str
    tags: List[str] = Field(default_factory=list)
    created_at: str
    updated_at: str


class SavedQueriesExport(BaseModel):
    """Export of all saved queries."""
    queries: List[SavedQuery]
    export_timestamp: str
    total_count: int


def _reject_invalid_query(registry: SchemaRegistry, query: str) -> None:
    """Raise 400 with the diagnostics when a query has errors."""
    result = validate_query(query, registry)
    if not result.is_valid:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Invalid SOCQL query",
                "errors": [error.to_dict() for error in result.errors],
            }
        )


def create_app(
    registry: Optional[SchemaRegistry] = None,
    query_storage: Optional[QueryStorage] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        registry: Optional SchemaRegistry (defaults to the shared default schema)
        query_storage: Optional QueryStorage instance (for testing)

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="SOCQL API",
        description="Validation, editor assistance and saved queries for the SOC Query Language",
        version="1.0.0"
    )

    schema = registry or get_default_registry()
    storage = query_storage or QueryStorage(os.environ.get("SOCQL_QUERIES_PATH", DEFAULT_QUERIES_PATH))

    # Language services

    @app.post("/api/validate", response_model=ValidationResponse)
    async def validate(request: QueryRequest) -> Dict[str, Any]:
        """Validate a query and return its diagnostics."""
        return validate_query(request.query, schema).to_dict()

    @app.post("/api/tokenize", response_model=TokenizeResponse)
    async def tokenize_query(request: TokenizeRequest) -> Dict[str, Any]:
        """Tokenize a query, optionally inserting implicit AND tokens."""
        result = tokenize(request.query)
        tokens = insert_implicit_and(result.tokens) if request.normalize else result.tokens
        return {
            "tokens": [token.to_dict() for token in tokens],
            "errors": [error.to_dict() for error in result.errors],
        }

    @app.post("/api/context", response_model=ContextResponse)
    async def context(request: CursorRequest) -> Dict[str, Any]:
        """Analyze the cursor position."""
        return analyze_context(request.query, request.offset, schema).to_dict()

    @app.post("/api/completions", response_model=CompletionResponse)
    async def completions(request: CursorRequest) -> Dict[str, Any]:
        """Suggest completions for the cursor position."""
        ctx = analyze_context(request.query, request.offset, schema)
        items = complete(request.query, request.offset, schema)
        return {
            "context": ctx.to_dict(),
            "items": [item.to_dict() for item in items],
        }

    @app.post("/api/signature")
    async def signature(request: CursorRequest) -> Optional[Dict[str, Any]]:
        """Signature help for the call enclosing the cursor, or null."""
        result = signature_help(request.query, request.offset, schema)
        return result.to_dict() if result is not None else None

    @app.post("/api/hover")
    async def hover(request: CursorRequest) -> Optional[Dict[str, Any]]:
        """Hover description for the word under the cursor, or null."""
        result = describe(request.query, request.offset, schema)
        return result.to_dict() if result is not None else None

    # Schema

    @app.get("/api/schema")
    async def get_schema() -> Dict[str, Any]:
        """Export the full schema."""
        return schema.export_schema()

    @app.get("/api/schema/stats")
    async def get_schema_stats() -> Dict[str, Any]:
        """Definition counts per section and category."""
        return schema.stats()

    @app.post("/api/schema/import")
    async def import_schema(config: Dict[str, Any]) -> Dict[str, Any]:
        """Merge a schema document into the registry.

        Raises:
            HTTPException: If the document is malformed
        """
        try:
            counts = schema.import_schema(config)
        except SchemaError as e:
            raise HTTPException(status_code=400, detail=f"Invalid schema: {str(e)}")

        logger.info(f"Schema import added {counts}")
        return {"added": counts}

    @app.post("/api/schema/fields", status_code=201)
    async def register_field(request: FieldCreate) -> Dict[str, Any]:
        """Register a new field.

        Raises:
            HTTPException: 400 for an unknown type, 409 if the field exists
        """
        try:
            definition = create_field_definition(
                request.name,
                request.type,
                category=request.category,
                allowed_operators=request.allowedOperators,
                display_name=request.displayName,
                description=request.description,
                examples=request.examples,
            )
        except SchemaError as e:
            raise HTTPException(status_code=400, detail=str(e))

        if not schema.register_field(definition):
            raise HTTPException(
                status_code=409,
                detail=f"Field '{request.name}' already exists"
            )

        logger.info(f"Registered field '{request.name}'")
        return definition.to_dict()

    @app.delete("/api/schema/fields/{name}")
    async def unregister_field(name: str) -> Dict[str, str]:
        """Remove a field.

        Raises:
            HTTPException: If the field is not registered
        """
        if not schema.unregister_field(name):
            raise HTTPException(
                status_code=404,
                detail=f"Field '{name}' not found"
            )

        logger.info(f"Unregistered field '{name}'")
        return {"message": f"Field '{name}' removed successfully"}

    # Saved queries

    @app.get("/api/queries", response_model=List[SavedQuery])
    async def list_queries() -> List[SavedQuery]:
        """Get all saved queries."""
        return [SavedQuery(**record) for record in storage.get_all()]

    @app.post("/api/queries", response_model=SavedQuery)
    async def create_query(request: SavedQueryCreate) -> SavedQuery:
        """Save a new query.

        Raises:
            HTTPException: If the query has validation errors
        """
        _reject_invalid_query(schema, request.query)

        record = {
            "id": str(uuid.uuid4()),
            "name": request.name,
            "description": request.description,
            "query": request.query,
            "tags": request.tags,
        }
        return SavedQuery(**storage.create(record))

    @app.get("/api/queries/export/download", response_model=SavedQueriesExport)
    async def export_queries() -> SavedQueriesExport:
        """Export all saved queries."""
        queries = [SavedQuery(**record) for record in storage.get_all()]
        return SavedQueriesExport(
            queries=queries,
            export_timestamp=datetime.now(timezone.utc).isoformat(),
            total_count=len(queries)
        )

    @app.post("/api/queries/import")
    async def import_queries(records: List[Dict[str, Any]]) -> Dict[str, int]:
        """Merge exported queries; existing ids and malformed records are skipped."""
        return {"imported": storage.import_queries(records)}

    @app.get("/api/queries/{query_id}", response_model=SavedQuery)
    async def get_query(query_id: str) -> SavedQuery:
        """Get a saved query by ID.

        Raises:
            HTTPException: If the query is not found
        """
        record = storage.get_by_id(query_id)
        if record is None:
            raise HTTPException(
                status_code=404,
                detail=f"Query '{query_id}' not found"
            )
        return SavedQuery(**record)

    @app.put("/api/queries/{query_id}", response_model=SavedQuery)
    async def update_query(query_id: str, request: SavedQueryUpdate) -> SavedQuery:
        """Update a saved query.

        Raises:
            HTTPException: If the query is not found or the new text is invalid
        """
        if storage.get_by_id(query_id) is None:
            raise HTTPException(
                status_code=404,
                detail=f"Query '{query_id}' not found"
            )

        if request.query is not None:
            _reject_invalid_query(schema, request.query)

        updates = request.model_dump(exclude_none=True)
        record = storage.update(query_id, updates)
        if record is None:
            raise HTTPException(
                status_code=404,
                detail=f"Query '{query_id}' not found"
            )
        return SavedQuery(**record)

    @app.delete("/api/queries/{query_id}")
    async def delete_query(query_id: str) -> Dict[str, str]:
        """Delete a saved query.

        Raises:
            HTTPException: If the query is not found
        """
        if not storage.delete(query_id):
            raise HTTPException(
                status_code=404,
                detail=f"Query '{query_id}' not found"
            )

        return {"message": f"Query '{query_id}' deleted successfully"}

    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


# Create the app instance
app = create_app()
