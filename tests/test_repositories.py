"""
Tests for the persistence layer.

Covers:
- Compare-and-swap saves on the quote version
- Cache merge and the stale fallback when the store is down
- Audit log ordering and failure propagation
- Supabase adapter error mapping (through a fake supabase-py client)
- Renewal and notification repositories round-tripping domain records
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from postgrest.exceptions import APIError

from conftest import FIXED_NOW, FakeSupabaseClient, build_quote
from domain.assignment import AgentNote, QuoteAssignment
from domain.audit import AuditAction
from domain.notification import Notification, NotificationType
from domain.quote import QuoteStatus
from domain.renewal import ReminderRecord, ReminderType
from repositories.document_store import InMemoryDocumentStore, SupabaseDocumentStore
from repositories.errors import ConcurrencyConflictError, StoreUnavailableError
from repositories.notification_repository import NotificationRepository
from repositories.quote_repository import QuoteRepository
from services.demo_data import demo_renewal_policies


class TestQuoteRepository:

    def test_insert_then_conditional_update(self, quotes_repo):
        saved = quotes_repo.save(build_quote(), None)
        assert saved.version == 1

        updated = quotes_repo.save(replace(saved, start_date="2026-04-01"), 1)

        assert updated.version == 2
        assert quotes_repo.get_fresh("quote-1").start_date == "2026-04-01"

    def test_stale_version_conflicts(self, quotes_repo):
        saved = quotes_repo.save(build_quote(), None)
        quotes_repo.save(saved, 1)

        with pytest.raises(ConcurrencyConflictError):
            quotes_repo.save(replace(saved, start_date="2026-05-01"), 1)
        assert quotes_repo.get_fresh("quote-1").version == 2

    def test_duplicate_insert_conflicts(self, quotes_repo):
        quotes_repo.save(build_quote(), None)

        with pytest.raises(ConcurrencyConflictError):
            quotes_repo.save(build_quote(), None)

    def test_round_trip_keeps_nested_records(self, quotes_repo, store):
        assignment = QuoteAssignment(
            id="assignment-1",
            quote_id="quote-1",
            assigned_to_agent_id="2",
            assigned_to_agent_name="Ahmed Al-Salem",
            assigned_by_agent_id="3",
            assigned_by_agent_name="Sarah Johnson",
            assigned_at=FIXED_NOW,
        ).with_note(
            AgentNote(
                id="note-1",
                note_text="Call after 5pm",
                created_at=FIXED_NOW,
                created_by="2",
                created_by_name="Ahmed Al-Salem",
                is_reminder=True,
                reminder_date=FIXED_NOW + timedelta(days=1),
            )
        )
        quote = build_quote(assignment=assignment, value="12345.50", last_reminder_sent=FIXED_NOW)

        stored = quotes_repo.save(quote, None)
        loaded = QuoteRepository(store).get_fresh("quote-1")

        assert loaded == stored
        assert loaded.vehicle.value == Decimal("12345.50")

    def test_list_all_newest_first(self, quotes_repo):
        quotes_repo.save(build_quote("quote-old", created_at=FIXED_NOW - timedelta(days=1)), None)
        quotes_repo.save(build_quote("quote-new"), None)

        assert [q.id for q in quotes_repo.list_all()] == ["quote-new", "quote-old"]
        assert not quotes_repo.is_stale

    def test_list_all_serves_cache_when_store_down(self, quotes_repo, store):
        quotes_repo.save(build_quote(), None)
        quotes_repo.list_all()
        store.fail_tables.add("quotes")

        quotes = quotes_repo.list_all()

        assert [q.id for q in quotes] == ["quote-1"]
        assert quotes_repo.is_stale

    def test_list_all_merges_other_writers(self, store):
        ours = QuoteRepository(store)
        theirs = QuoteRepository(store)
        ours.save(build_quote("quote-1"), None)
        theirs.save(build_quote("quote-2"), None)

        assert {q.id for q in ours.list_all()} == {"quote-1", "quote-2"}

    def test_get_by_id_prefers_cache(self, quotes_repo, store):
        quotes_repo.save(build_quote(), None)
        store.fail_tables.add("quotes")

        assert quotes_repo.get_by_id("quote-1").id == "quote-1"
        with pytest.raises(StoreUnavailableError):
            quotes_repo.get_by_id("quote-2")

    def test_failed_write_leaves_cache_alone(self, quotes_repo, store):
        saved = quotes_repo.save(build_quote(), None)
        store.fail_tables.add("quotes")
        store.fail_ops.add("update_where")

        with pytest.raises(StoreUnavailableError):
            quotes_repo.save(replace(saved, status=QuoteStatus.LINK_SENT), 1)
        assert quotes_repo.get_by_id("quote-1").status == QuoteStatus.DRAFT


class TestAuditLogRepository:

    def test_entries_newest_first(self, audit_repo):
        audit_repo.append("quote-1", AuditAction.QUOTE_CREATED, "created", "Ahmed", at=FIXED_NOW)
        audit_repo.append("quote-1", AuditAction.LINK_SENT, "sent", "Ahmed", at=FIXED_NOW + timedelta(minutes=1))
        audit_repo.append("quote-2", AuditAction.QUOTE_CREATED, "other", "Ahmed", at=FIXED_NOW)

        entries = audit_repo.read_for_quote("quote-1")

        assert [e.action for e in entries] == [AuditAction.LINK_SENT, AuditAction.QUOTE_CREATED]
        assert entries[0].user == "Ahmed"

    def test_unreadable_log_raises(self, audit_repo, store):
        store.fail_tables.add("audit_logs")

        with pytest.raises(StoreUnavailableError):
            audit_repo.read_for_quote("quote-1")


class TestSupabaseDocumentStore:

    def test_select_builds_query_chain(self):
        client = FakeSupabaseClient()
        client.tables["quotes"] = [{"id": "a", "status": "DRAFT"}, {"id": "b", "status": "ISSUED"}]
        store = SupabaseDocumentStore(client)

        rows = store.select("quotes", {"status": "ISSUED"}, order_by="id", descending=True, limit=5)

        assert rows == [{"id": "b", "status": "ISSUED"}]
        query = client.executed[-1]
        assert query.filters == {"status": "ISSUED"}
        assert query.ordering == ("id", True)
        assert query.limit_to == 5

    def test_quote_repository_over_supabase(self):
        client = FakeSupabaseClient()
        repo = QuoteRepository(SupabaseDocumentStore(client))

        saved = repo.save(build_quote(), None)
        repo.save(replace(saved, start_date="2026-04-01"), 1)

        with pytest.raises(ConcurrencyConflictError):
            repo.save(saved, 1)
        assert client.tables["quotes"][0]["version"] == 2

    def test_unique_violation_is_a_conflict(self):
        client = FakeSupabaseClient()
        client.raise_on_execute = APIError({"message": "duplicate key", "code": "23505", "hint": None, "details": None})

        with pytest.raises(ConcurrencyConflictError):
            SupabaseDocumentStore(client).insert("quotes", {"id": "a"})

    def test_other_api_errors_are_unavailable(self):
        client = FakeSupabaseClient()
        client.raise_on_execute = APIError({"message": "permission denied", "code": "42501", "hint": None, "details": None})

        with pytest.raises(StoreUnavailableError) as excinfo:
            SupabaseDocumentStore(client).select("quotes")
        assert excinfo.value.table == "quotes"

    def test_network_errors_are_unavailable(self):
        client = FakeSupabaseClient()
        client.raise_on_execute = httpx.ConnectError("connection refused")

        with pytest.raises(StoreUnavailableError):
            SupabaseDocumentStore(client).upsert("quotes", {"id": "a"})

    def test_update_where_requires_filters(self):
        with pytest.raises(ValueError):
            SupabaseDocumentStore(FakeSupabaseClient()).update_where("quotes", {"status": "X"}, {})
        with pytest.raises(ValueError):
            InMemoryDocumentStore().update_where("quotes", {"status": "X"}, {})


class TestRenewalRepository:

    def test_policy_round_trip(self, renewal_repo):
        policy = demo_renewal_policies(FIXED_NOW)[4]
        record = ReminderRecord(
            id="reminder-1",
            policy_id=policy.id,
            type=ReminderType.THIRTY_DAYS,
            sent_at=FIXED_NOW,
            phone_number="97335554433",
            status="SENT",
        )
        policy = policy.with_reminder(record)

        renewal_repo.save(policy)

        assert renewal_repo.get_by_id(policy.id) == policy
        assert renewal_repo.get_by_id("missing") is None

    def test_list_all_soonest_expiry_first(self, renewal_repo):
        for policy in demo_renewal_policies(FIXED_NOW):
            renewal_repo.save(policy)

        ids = [p.id for p in renewal_repo.list_all()]

        assert ids == ["policy-004", "policy-003", "policy-005", "policy-002", "policy-001"]

    def test_reminder_log(self, renewal_repo):
        record = ReminderRecord(
            id="reminder-1",
            policy_id="policy-001",
            type=ReminderType.FIFTEEN_DAYS,
            sent_at=FIXED_NOW,
            phone_number="97333112233",
            status="SENT",
            message_id="wamid.1",
        )

        renewal_repo.log_reminder(record, "Renew now")

        assert renewal_repo.list_reminder_log("policy-001") == [record]


class TestNotificationRepository:

    def test_recent_for_recipient(self):
        repo = NotificationRepository(InMemoryDocumentStore())
        for minute, recipient in enumerate(["2", "5", "2"]):
            repo.insert(
                Notification(
                    id=f"n-{minute}",
                    type=NotificationType.APPROVAL_UPDATE,
                    title="Exception approved",
                    message="Approved",
                    created_at=FIXED_NOW + timedelta(minutes=minute),
                    recipient_id=recipient,
                )
            )

        assert [n.id for n in repo.list_recent(recipient_id="2")] == ["n-2", "n-0"]
        assert repo.mark_read("n-0")
        assert not repo.mark_read("missing")
        assert [n.read for n in repo.list_recent(recipient_id="2")] == [False, True]
