# querypilot/store.py
"""
Query history stores.

Both implementations expose the same surface:
- create(prompt, sql, project_id, dataset, ...) -> QueryRecord
- get(query_id) -> Optional[QueryRecord]
- list() -> List[QueryRecord]   (newest first)
- update(query_id, **fields) -> Optional[QueryRecord]   (None values leave fields untouched)
- close()

MemoryQueryStore is the default. SqlQueryStore (querypilot.db) is used when
DATABASE_URL is configured.
"""

import datetime
import threading
from typing import Any, Dict, List, Optional

from querypilot.schemas import QueryRecord
from querypilot.settings import Settings

UPDATABLE_FIELDS = ("sql", "processing_gb", "summary", "results")


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def newest_first(records: List[QueryRecord]) -> List[QueryRecord]:
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


def clean_updates(fields: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update fields: {sorted(unknown)}")
    return {k: v for k, v in fields.items() if v is not None}


class MemoryQueryStore:
    """Process-local map of id -> record. Ids start at 1 and only grow."""

    def __init__(self):
        self._records: Dict[int, QueryRecord] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def create(self, prompt: str, sql: str, project_id: str, dataset: str,
               processing_gb: Optional[str] = None, summary: Optional[str] = None,
               results: Optional[List[Dict[str, Any]]] = None) -> QueryRecord:
        with self._lock:
            record = QueryRecord(
                id=self._next_id,
                prompt=prompt,
                sql=sql,
                project_id=project_id,
                dataset=dataset,
                processing_gb=processing_gb,
                summary=summary,
                results=results,
                created_at=utcnow(),
            )
            self._records[record.id] = record
            self._next_id += 1
            return record

    def get(self, query_id: int) -> Optional[QueryRecord]:
        return self._records.get(query_id)

    def list(self) -> List[QueryRecord]:
        with self._lock:
            records = list(self._records.values())
        return newest_first(records)

    def update(self, query_id: int, **fields) -> Optional[QueryRecord]:
        updates = clean_updates(fields)
        with self._lock:
            existing = self._records.get(query_id)
            if existing is None:
                return None
            updated = existing.model_copy(update=updates)
            self._records[query_id] = updated
            return updated

    def close(self):
        with self._lock:
            self._records.clear()


def make_query_store(settings: Settings):
    if settings.database_url:
        from querypilot.db import SqlQueryStore
        return SqlQueryStore(settings.database_url)
    return MemoryQueryStore()
