"""
Document store adapters.

Repositories talk to a small table-oriented interface so persistence is
swappable:

- SupabaseDocumentStore: supabase-py query chains against hosted Postgres.
- InMemoryDocumentStore: thread-safe in-process tables, used in demo mode
  (no Supabase credentials) and in tests.

Rows are plain JSON-compatible dicts keyed by an "id" column. Filters are
equality filters. Conditional writes are expressed as `update_where` with the
guard columns included in the filters; the return value is the number of
rows actually updated, so a 0 means the guard did not match.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Protocol

import httpx
from postgrest.exceptions import APIError

from repositories.errors import ConcurrencyConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

# Postgres unique_violation.
_UNIQUE_VIOLATION = "23505"


class DocumentStore(Protocol):
    def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        ...

    def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        ...

    def upsert(self, table: str, row: Mapping[str, Any]) -> Row:
        ...

    def update_where(self, table: str, values: Mapping[str, Any], filters: Mapping[str, Any]) -> int:
        ...


class SupabaseDocumentStore:
    """
    DocumentStore backed by a supabase-py Client.

    Every call either returns data or raises: APIError and httpx transport
    failures become StoreUnavailableError, a unique violation on insert
    becomes ConcurrencyConflictError.
    """

    def __init__(self, client: Any):
        self._client = client

    def _execute(self, query: Any, *, table: str, action: str) -> List[Row]:
        try:
            response = query.execute()
        except APIError as e:
            if getattr(e, "code", None) == _UNIQUE_VIOLATION:
                raise ConcurrencyConflictError(f"Duplicate key on {table}: {e}") from e
            raise StoreUnavailableError(f"Failed to {action} {table}: {e}", table=table) from e
        except (httpx.TimeoutException, httpx.RequestError) as e:
            raise StoreUnavailableError(f"Failed to {action} {table}: {e}", table=table) from e

        error = getattr(response, "error", None)
        if error:
            raise StoreUnavailableError(f"Failed to {action} {table}: {error}", table=table)

        rows = getattr(response, "data", None) or []
        return [dict(row) for row in rows]

    def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        query = self._client.table(table).select("*")
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        return self._execute(query, table=table, action="query")

    def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        rows = self._execute(self._client.table(table).insert(dict(row)), table=table, action="insert into")
        return rows[0] if rows else dict(row)

    def upsert(self, table: str, row: Mapping[str, Any]) -> Row:
        rows = self._execute(self._client.table(table).upsert(dict(row)), table=table, action="upsert into")
        return rows[0] if rows else dict(row)

    def update_where(self, table: str, values: Mapping[str, Any], filters: Mapping[str, Any]) -> int:
        if not filters:
            raise ValueError("update_where requires at least one filter")
        query = self._client.table(table).update(dict(values))
        for column, value in filters.items():
            query = query.eq(column, value)
        updated_rows = self._execute(query, table=table, action="update")
        return len(updated_rows)


def _matches(row: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    return all(row.get(column) == value for column, value in (filters or {}).items())


class InMemoryDocumentStore:
    """
    Thread-safe in-process DocumentStore.

    Rows are deep-copied on the way in and out so callers never share state
    with the store, the same as a remote round trip.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Row]] = {}
        self._lock = threading.Lock()

    def _table(self, table: str) -> Dict[str, Row]:
        return self._tables.setdefault(table, {})

    def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        with self._lock:
            rows = [copy.deepcopy(row) for row in self._table(table).values() if _matches(row, filters)]
        if order_by:
            rows.sort(key=lambda row: (row.get(order_by) is None, row.get(order_by) or ""), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        row_id = str(row["id"])
        with self._lock:
            rows = self._table(table)
            if row_id in rows:
                raise ConcurrencyConflictError(f"Duplicate key on {table}: {row_id}", document_id=row_id)
            rows[row_id] = copy.deepcopy(dict(row))
            return copy.deepcopy(rows[row_id])

    def upsert(self, table: str, row: Mapping[str, Any]) -> Row:
        row_id = str(row["id"])
        with self._lock:
            self._table(table)[row_id] = copy.deepcopy(dict(row))
            return copy.deepcopy(self._table(table)[row_id])

    def update_where(self, table: str, values: Mapping[str, Any], filters: Mapping[str, Any]) -> int:
        if not filters:
            raise ValueError("update_where requires at least one filter")
        updated = 0
        with self._lock:
            for row in self._table(table).values():
                if _matches(row, filters):
                    row.update(copy.deepcopy(dict(values)))
                    updated += 1
        return updated

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))


def create_document_store(settings: Any = None) -> DocumentStore:
    """
    Pick the store for the configured environment.

    Supabase when credentials are configured, otherwise the in-memory store.
    """

    from config.settings import get_settings

    settings = settings or get_settings()
    if settings.uses_remote_store:
        from repositories.client import get_supabase_client

        return SupabaseDocumentStore(get_supabase_client(settings))

    logger.warning("SUPABASE_URL/SUPABASE_KEY not set; using in-memory document store (demo mode)")
    return InMemoryDocumentStore()


__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "Row",
    "SupabaseDocumentStore",
    "create_document_store",
]
