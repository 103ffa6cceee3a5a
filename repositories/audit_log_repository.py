"""
Audit log repository (persistence).

Append-only storage of AuditLogEntry records in their own table, queried by
quote id. Failures are raised, never masked: an unreadable log is reported
as StoreUnavailableError rather than as an empty history.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional
from uuid import uuid4

from domain.audit import AuditAction, AuditLogEntry
from domain.time import parse_utc_datetime, to_iso_utc, utc_now
from repositories.document_store import DocumentStore
from repositories.serialization import hydrate_from_store

logger = logging.getLogger(__name__)

_AUDIT_LOGS_TABLE: str = "audit_logs"


def _row_to_entry(row: Mapping[str, Any]) -> AuditLogEntry:
    row = hydrate_from_store(row)
    return AuditLogEntry(
        id=str(row["id"]),
        quote_id=str(row["quote_id"]),
        timestamp=parse_utc_datetime(row["timestamp"]),
        user=str(row.get("user") or ""),
        action=AuditAction(row["action"]),
        details=str(row.get("details") or ""),
    )


class AuditLogRepository:
    def __init__(self, store: DocumentStore, table: str = _AUDIT_LOGS_TABLE):
        self._store = store
        self._table = table

    def append(
        self,
        quote_id: str,
        action: AuditAction,
        details: str,
        user: str,
        at: Optional[datetime] = None,
    ) -> AuditLogEntry:
        """
        Write one audit entry.

        Raises:
            StoreUnavailableError: the entry was not written
        """

        entry = AuditLogEntry(
            id=str(uuid4()),
            quote_id=quote_id,
            timestamp=at or utc_now(),
            user=user,
            action=AuditAction(action),
            details=details,
        )
        self._store.insert(
            self._table,
            {
                "id": entry.id,
                "quote_id": entry.quote_id,
                "timestamp": to_iso_utc(entry.timestamp),
                "user": entry.user,
                "action": entry.action.value,
                "details": entry.details,
            },
        )
        logger.info(
            "Audit entry recorded",
            extra={"quote_id": quote_id, "action": entry.action.value, "actor": user},
        )
        return entry

    def read_for_quote(self, quote_id: str) -> List[AuditLogEntry]:
        """Entries for a quote, newest first. Raises StoreUnavailableError."""

        rows = self._store.select(self._table, {"quote_id": quote_id})
        entries = [_row_to_entry(row) for row in rows]
        # ISO strings from different writers may differ in precision; sort on parsed values.
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries


__all__ = ["AuditLogRepository"]
