"""
Thread-safe storage for saved SOCQL queries.

Persists queries to a JSON file as a list of records:
{
    "id": string,
    "name": string,
    "description": string,
    "query": string,
    "tags": [string],
    "created_at": ISO8601 datetime,
    "updated_at": ISO8601 datetime
}
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)

DEFAULT_QUERIES_PATH = Path(__file__).with_name('saved_queries.json')


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class QueryStorage:
    """Thread-safe storage for saved queries."""

    def __init__(self, storage_path: str | Path = DEFAULT_QUERIES_PATH):
        """Initialize the query storage.

        Args:
            storage_path: Path to the queries JSON file
        """
        self.storage_path = Path(storage_path)
        self._lock = threading.RLock()
        self._ensure_file_exists()

    def _ensure_file_exists(self) -> None:
        with self._lock:
            if not self.storage_path.exists():
                self.storage_path.parent.mkdir(parents=True, exist_ok=True)
                self._write_file([])

    def _read_file(self) -> List[Dict[str, Any]]:
        try:
            with open(self.storage_path, 'r', encoding='utf-8') as f:
                content = f.read().strip()
                if not content:
                    return []
                records = json.loads(content)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt query storage {self.storage_path}: {e}")
            return []
        return records if isinstance(records, list) else []

    def _write_file(self, queries: List[Dict[str, Any]]) -> None:
        with open(self.storage_path, 'w', encoding='utf-8') as f:
            json.dump(queries, f, indent=2)

    def get_all(self) -> List[Dict[str, Any]]:
        """Get all saved queries, oldest first."""
        with self._lock:
            return self._read_file()

    def get_by_id(self, query_id: str) -> Optional[Dict[str, Any]]:
        """Get a saved query by ID.

        Args:
            query_id: The query ID

        Returns:
            The query record or None if not found
        """
        with self._lock:
            for record in self._read_file():
                if record.get('id') == query_id:
                    return record
            return None

    def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Save a new query.

        Args:
            record: Query record with id, name, description, query and tags

        Returns:
            The stored record with timestamps added
        """
        with self._lock:
            queries = self._read_file()

            now = _now()
            record['created_at'] = now
            record['updated_at'] = now

            queries.append(record)
            self._write_file(queries)
            logger.info(f"Saved query '{record.get('name')}' ({record.get('id')})")
            return record

    def update(self, query_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update an existing query.

        Args:
            query_id: The query ID
            updates: Fields to change; id and created_at are ignored

        Returns:
            The updated record or None if not found
        """
        with self._lock:
            queries = self._read_file()

            for record in queries:
                if record.get('id') != query_id:
                    continue
                for key, value in updates.items():
                    if key not in ('id', 'created_at'):
                        record[key] = value
                record['updated_at'] = _now()

                self._write_file(queries)
                logger.info(f"Updated query {query_id}")
                return record

            return None

    def delete(self, query_id: str) -> bool:
        """Delete a query by ID.

        Returns:
            True if the query was deleted, False if not found
        """
        with self._lock:
            queries = self._read_file()
            remaining = [q for q in queries if q.get('id') != query_id]

            if len(remaining) < len(queries):
                self._write_file(remaining)
                logger.info(f"Deleted query {query_id}")
                return True

            return False

    def clear(self) -> int:
        """Delete every saved query.

        Returns:
            Number of queries removed
        """
        with self._lock:
            count = len(self._read_file())
            self._write_file([])
            return count

    def export(self) -> str:
        """Export all saved queries as a JSON string."""
        with self._lock:
            return json.dumps(self._read_file(), indent=2)

    def import_queries(self, records: List[Dict[str, Any]]) -> int:
        """Merge previously exported queries.

        Records without a string id, name and query are skipped, as are
        records whose id is already stored.

        Returns:
            Number of queries added
        """
        with self._lock:
            queries = self._read_file()
            existing = {q.get('id') for q in queries}

            added = 0
            for record in records:
                if not isinstance(record, dict):
                    continue
                if not all(isinstance(record.get(key), str) for key in ('id', 'name', 'query')):
                    continue
                if record['id'] in existing:
                    continue
                now = _now()
                record.setdefault('description', '')
                record.setdefault('tags', [])
                record.setdefault('created_at', now)
                record.setdefault('updated_at', now)
                queries.append(record)
                existing.add(record['id'])
                added += 1

            if added:
                self._write_file(queries)
            logger.info(f"Imported {added} of {len(records)} queries")
            return added
