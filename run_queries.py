#!/usr/bin/env python3
"""
CLI entry point for batch validation of SOCQL queries.

Validates a single query string or every query in a JSON file, and can
report the cursor context at an offset instead. Results are printed as
JSON; the exit status is 1 when any query has errors.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from socql import (
    SchemaError,
    SchemaRegistry,
    analyze_context,
    load_default_registry,
    load_schema_file,
    validate_query,
)


logger = logging.getLogger('run_queries')


def setup_logging(verbose: bool = False) -> None:
    """Send log records to stderr so stdout stays valid JSON."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )


def load_queries(queries_file: str) -> Dict[str, str]:
    """Load named queries from a JSON file.

    Expected format:
    {
        "process_hunt": "select user | where EventID = \"1\"",
        "failed_logons": "status = \"failed\" | last 24 hours",
        ...
    }

    Args:
        queries_file: Path to queries file

    Returns:
        Dictionary mapping query names to query strings

    Raises:
        ValueError: If file format is invalid
    """
    path = Path(queries_file)

    if not path.exists():
        raise ValueError(f"Queries file not found: {queries_file}")

    with open(path, 'r', encoding='utf-8') as f:
        try:
            content = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in queries file: {e}")

    if not isinstance(content, dict):
        raise ValueError("Queries file must contain a JSON object")

    queries = {}
    for name, query in content.items():
        if not isinstance(query, str):
            raise ValueError(f"Query '{name}': Query must be a string")
        queries[name] = query

    return queries


def build_registry(schema_files: Optional[List[str]] = None) -> SchemaRegistry:
    """Load the default schema and merge any extension files into it.

    Raises:
        SchemaError: If an extension file is missing or malformed
    """
    registry = load_default_registry()
    for schema_file in schema_files or []:
        counts = registry.import_schema(load_schema_file(schema_file))
        logger.info(f"Imported {schema_file}: {counts}")
    return registry


def validate_single_query(query: str, registry: SchemaRegistry) -> Dict[str, Any]:
    """Validate one query and return its wire-shaped result."""
    logger.debug(f"Validating query: {query}")
    return validate_query(query, registry).to_dict()


def validate_batch(queries: Dict[str, str], registry: SchemaRegistry) -> Dict[str, Dict[str, Any]]:
    """Validate every named query.

    Returns:
        Results keyed by query name
    """
    results = {}
    for name, query in queries.items():
        logger.debug(f"Validating query: {name}")
        results[name] = validate_query(query, registry).to_dict()
    return results


def context_at(query: str, offset: int, registry: SchemaRegistry) -> Dict[str, Any]:
    """Describe the cursor context at offset."""
    return analyze_context(query, offset, registry).to_dict()


def write_output(output: Any, output_file: Optional[str] = None) -> None:
    text = json.dumps(output, indent=2)
    if output_file:
        Path(output_file).write_text(text, encoding='utf-8')
        logger.info(f"Results saved to {output_file}")
    else:
        print(text)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Process exit status
    """
    parser = argparse.ArgumentParser(
        description="SOCQL - Validate SOC Query Language queries"
    )

    parser.add_argument(
        "-q", "--query",
        help="SOCQL query string to validate",
    )

    parser.add_argument(
        "-f", "--file",
        help="Path to queries file (JSON object of name to query) for batch validation",
    )

    parser.add_argument(
        "--offset",
        type=int,
        help="Print the cursor context at this offset of --query instead of validating",
    )

    parser.add_argument(
        "-s", "--schema",
        action="append",
        help="Schema extension file (YAML or JSON); may be repeated",
    )

    parser.add_argument(
        "-o", "--output",
        help="Output file path for results",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if not args.query and not args.file:
        parser.print_help()
        return 1

    try:
        registry = build_registry(args.schema)
    except SchemaError as e:
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        return 1

    if args.query is not None and args.offset is not None:
        write_output(context_at(args.query, args.offset, registry), args.output)
        return 0

    if args.query is not None:
        result = validate_single_query(args.query, registry)
        write_output(result, args.output)
        return 0 if result["isValid"] else 1

    try:
        queries = load_queries(args.file)
    except ValueError as e:
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        return 1

    if not queries:
        logger.warning("No queries found in queries file")

    results = validate_batch(queries, registry)
    write_output(results, args.output)
    return 0 if all(r["isValid"] for r in results.values()) else 1


if __name__ == "__main__":
    sys.exit(main())
