"""
Renewal repository (persistence).

Stores RenewalPolicy records and the log of WhatsApp reminders sent for
them. All scanner state (reminders sent, pool hand-off) lives on the policy
record itself; there is no separate scheduler checkpoint.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from domain.quote import LeadDisposition
from domain.renewal import RenewalPolicy, RenewalStatus, ReminderRecord, ReminderType
from domain.time import parse_optional_utc, parse_utc_datetime, to_iso_utc
from repositories.document_store import DocumentStore
from repositories.quote_mapping import vehicle_from_payload
from repositories.serialization import hydrate_from_store, sanitize_for_store

_RENEWALS_TABLE: str = "renewal_policies"
_REMINDERS_TABLE: str = "whatsapp_reminders"


def _reminder_from_payload(data: Mapping[str, Any]) -> ReminderRecord:
    return ReminderRecord(
        id=str(data["id"]),
        policy_id=str(data["policy_id"]),
        type=ReminderType(data["type"]),
        sent_at=parse_utc_datetime(data["sent_at"]),
        phone_number=str(data["phone_number"]),
        status=str(data.get("status") or "SENT"),
        message_id=data.get("message_id"),
    )


def _row_to_policy(row: Mapping[str, Any]) -> RenewalPolicy:
    row = hydrate_from_store(row)
    data = row["payload"]
    disposition = data.get("renewal_disposition")
    return RenewalPolicy(
        id=str(row["id"]),
        quote_id=str(data["quote_id"]),
        policy_number=str(data["policy_number"]),
        customer_name=str(data["customer_name"]),
        customer_phone=str(data["customer_phone"]),
        customer_cpr=str(data.get("customer_cpr") or ""),
        vehicle=vehicle_from_payload(data["vehicle"]),
        provider=str(data.get("provider") or ""),
        plan_name=str(data.get("plan_name") or ""),
        premium=Decimal(str(data.get("premium") or "0")),
        expiry_date=parse_utc_datetime(data["expiry_date"]),
        issue_date=parse_utc_datetime(data["issue_date"]),
        status=RenewalStatus(data.get("status") or RenewalStatus.PENDING.value),
        customer_email=data.get("customer_email"),
        reminders_sent=tuple(_reminder_from_payload(r) for r in data.get("reminders_sent") or ()),
        assigned_to_pool=bool(data.get("assigned_to_pool", False)),
        assigned_to_pool_at=parse_optional_utc(data.get("assigned_to_pool_at")),
        pool_quote_id=data.get("pool_quote_id"),
        renewal_disposition=LeadDisposition(disposition) if disposition else None,
        last_contact_date=parse_optional_utc(data.get("last_contact_date")),
    )


def _policy_to_row(policy: RenewalPolicy) -> Dict[str, Any]:
    return {
        "id": policy.id,
        "status": policy.status.value,
        "expiry_date_utc": to_iso_utc(policy.expiry_date),
        "payload": sanitize_for_store(policy),
    }


class RenewalRepository:
    def __init__(
        self,
        store: DocumentStore,
        table: str = _RENEWALS_TABLE,
        reminders_table: str = _REMINDERS_TABLE,
    ):
        self._store = store
        self._table = table
        self._reminders_table = reminders_table

    def list_all(self) -> List[RenewalPolicy]:
        """All tracked policies, soonest expiry first. Raises StoreUnavailableError."""

        rows = self._store.select(self._table, order_by="expiry_date_utc")
        return [_row_to_policy(row) for row in rows]

    def get_by_id(self, policy_id: str) -> Optional[RenewalPolicy]:
        rows = self._store.select(self._table, {"id": policy_id}, limit=1)
        return _row_to_policy(rows[0]) if rows else None

    def save(self, policy: RenewalPolicy) -> RenewalPolicy:
        self._store.upsert(self._table, _policy_to_row(policy))
        return policy

    def log_reminder(self, record: ReminderRecord, message: str) -> None:
        """Append a sent reminder to the WhatsApp reminder log."""

        row = sanitize_for_store(record)
        row["message"] = message
        self._store.insert(self._reminders_table, row)

    def list_reminder_log(self, policy_id: str) -> List[ReminderRecord]:
        rows = self._store.select(self._reminders_table, {"policy_id": policy_id}, order_by="sent_at")
        return [_reminder_from_payload(hydrate_from_store(row)) for row in rows]


__all__ = ["RenewalRepository"]
