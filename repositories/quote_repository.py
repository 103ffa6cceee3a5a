"""
Quote repository (persistence).

This module provides *only* persistence operations for the Quote entity.
It does not enforce lifecycle rules; it stores whatever Quote it is given.

Row shape (table `quotes`):
    {id, status, created_at_utc, agent_name, version, payload}
where payload is the sanitized quote.

Cache policy:
- list_all() fetches remotely and merges into the in-process cache (remote
  wins). If the store is unavailable it returns the cache and sets
  `is_stale`.
- get_by_id() reads the cache first and falls back to one remote point read.
- save() is a compare-and-swap on `version`. The cache is only updated after
  the remote write succeeded.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from domain.quote import Quote
from domain.time import to_iso_utc
from repositories.document_store import DocumentStore
from repositories.errors import ConcurrencyConflictError, StoreUnavailableError
from repositories.quote_mapping import quote_from_payload
from repositories.serialization import hydrate_from_store, sanitize_for_store

logger = logging.getLogger(__name__)

# Supabase table name for quotes.
# Keep this aligned with your database schema.
_QUOTES_TABLE: str = "quotes"


def _quote_to_row(quote: Quote, version: int) -> Dict[str, Any]:
    """Convert a Quote into a store row carrying the given version."""

    payload = sanitize_for_store(quote)
    payload.pop("version", None)
    return {
        "id": quote.id,
        "status": quote.status.value,
        "created_at_utc": to_iso_utc(quote.created_at),
        "agent_name": quote.agent_name,
        "version": version,
        "payload": payload,
    }


def _row_to_quote(row: Mapping[str, Any]) -> Quote:
    """Convert a store row into a Quote."""

    row = hydrate_from_store(row)
    payload = dict(row["payload"])
    payload.setdefault("id", row["id"])
    payload.setdefault("status", row.get("status"))
    return quote_from_payload(payload, version=int(row.get("version") or 0))


class QuoteRepository:
    def __init__(self, store: DocumentStore, table: str = _QUOTES_TABLE):
        self._store = store
        self._table = table
        self._cache: Dict[str, Quote] = {}
        self._lock = threading.Lock()
        self.is_stale = False

    def _cache_put(self, quote: Quote) -> None:
        with self._lock:
            self._cache[quote.id] = quote

    def _sorted_cache(self) -> List[Quote]:
        with self._lock:
            quotes = list(self._cache.values())
        return sorted(quotes, key=lambda q: q.created_at, reverse=True)

    def list_all(self) -> List[Quote]:
        """
        All quotes, newest first.

        Falls back to the cached list when the store is unavailable; check
        `is_stale` afterwards to know which happened.
        """

        try:
            rows = self._store.select(self._table, order_by="created_at_utc", descending=True)
        except StoreUnavailableError as e:
            logger.warning(
                "Quote store unavailable; serving cached quotes",
                extra={"table": self._table, "error": str(e)},
            )
            self.is_stale = True
            return self._sorted_cache()

        fetched = [_row_to_quote(row) for row in rows]
        with self._lock:
            for quote in fetched:
                self._cache[quote.id] = quote
        self.is_stale = False
        return self._sorted_cache()

    def get_by_id(self, quote_id: str) -> Optional[Quote]:
        """
        Cached quote, or one remote point read on a miss.

        Returns:
            Quote, or None if absent at both layers

        Raises:
            StoreUnavailableError: on a cache miss with the store unavailable
        """

        with self._lock:
            cached = self._cache.get(quote_id)
        if cached is not None:
            return cached
        return self.get_fresh(quote_id)

    def get_fresh(self, quote_id: str) -> Optional[Quote]:
        """Read straight from the store, refreshing the cache."""

        rows = self._store.select(self._table, {"id": quote_id}, limit=1)
        if not rows:
            return None
        quote = _row_to_quote(rows[0])
        self._cache_put(quote)
        return quote

    def save(self, quote: Quote, expected_version: Optional[int]) -> Quote:
        """
        Persist a quote with optimistic concurrency.

        Args:
            quote: Quote to store
            expected_version: Version the caller read, or None to insert a new
                quote

        Returns:
            The stored Quote with its new version

        Raises:
            ConcurrencyConflictError: another writer changed the quote, or a
                new quote's id already exists
            StoreUnavailableError: the store could not be written
        """

        if expected_version is None:
            new_version = 1
            self._store.insert(self._table, _quote_to_row(quote, new_version))
        else:
            new_version = expected_version + 1
            row = _quote_to_row(quote, new_version)
            del row["id"]
            updated = self._store.update_where(
                self._table,
                row,
                {"id": quote.id, "version": expected_version},
            )
            if updated == 0:
                raise ConcurrencyConflictError(
                    f"Quote {quote.id} changed since version {expected_version}",
                    document_id=quote.id,
                )

        stored = replace(quote, version=new_version)
        self._cache_put(stored)
        logger.debug("Saved quote", extra={"quote_id": quote.id, "version": new_version})
        return stored

    def forget(self, quote_id: str) -> None:
        """Drop a cached quote so the next read goes to the store."""

        with self._lock:
            self._cache.pop(quote_id, None)


__all__ = ["QuoteRepository"]
