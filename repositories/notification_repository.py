"""
Notification repository (persistence).

Flat in-app notification records, newest first.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from domain.notification import Notification, NotificationType
from domain.time import parse_utc_datetime
from repositories.document_store import DocumentStore
from repositories.serialization import hydrate_from_store, sanitize_for_store

_NOTIFICATIONS_TABLE: str = "notifications"


def _row_to_notification(row: Mapping[str, Any]) -> Notification:
    row = hydrate_from_store(row)
    return Notification(
        id=str(row["id"]),
        type=NotificationType(row["type"]),
        title=str(row.get("title") or ""),
        message=str(row.get("message") or ""),
        created_at=parse_utc_datetime(row["created_at"]),
        quote_id=row.get("quote_id"),
        recipient_id=row.get("recipient_id"),
        read=bool(row.get("read", False)),
    )


class NotificationRepository:
    def __init__(self, store: DocumentStore, table: str = _NOTIFICATIONS_TABLE):
        self._store = store
        self._table = table

    def insert(self, notification: Notification) -> Notification:
        self._store.insert(self._table, sanitize_for_store(notification))
        return notification

    def list_recent(self, limit: int = 20, recipient_id: Optional[str] = None) -> List[Notification]:
        filters = {"recipient_id": recipient_id} if recipient_id else None
        rows = self._store.select(self._table, filters, order_by="created_at", descending=True, limit=limit)
        return [_row_to_notification(row) for row in rows]

    def mark_read(self, notification_id: str) -> bool:
        return self._store.update_where(self._table, {"read": True}, {"id": notification_id}) > 0


__all__ = ["NotificationRepository"]
