"""
Tests for renewal reminders and the pool hand-off.

Covers:
- Day rounding and the 30/15-day reminder windows
- A reminder type is sent at most once per policy
- Expired, unactioned policies become one unassigned EXPIRING quote
- Dashboard metrics and manual reminders
- Scheduler start/stop
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import FIXED_NOW
from domain.audit import AuditAction
from domain.quote import LeadDisposition, QuoteStatus
from domain.renewal import (
    RenewalStatus,
    ReminderType,
    days_until_expiry,
    determine_status,
    due_reminder,
    is_due_for_pool,
)
from services.demo_data import demo_renewal_policies
from services.renewal_service import (
    ALL_REMINDERS_SENT,
    RenewalRunSummary,
    RenewalScanner,
    RenewalScheduler,
    pool_quote_id,
    renewal_message,
)


def _policy(days, **overrides):
    """Demo policy 002 moved to expire `days` out."""
    policy = demo_renewal_policies(FIXED_NOW)[1]
    expiry = FIXED_NOW + timedelta(days=days)
    return replace(policy, expiry_date=expiry, issue_date=expiry - timedelta(days=365), **overrides)


class TestRenewalRules:

    def test_days_round_up(self):
        assert days_until_expiry(FIXED_NOW + timedelta(days=29, hours=5), FIXED_NOW) == 30
        assert days_until_expiry(FIXED_NOW + timedelta(days=30), FIXED_NOW) == 30
        assert days_until_expiry(FIXED_NOW, FIXED_NOW) == 0
        assert days_until_expiry(FIXED_NOW - timedelta(hours=1), FIXED_NOW) == 0
        assert days_until_expiry(FIXED_NOW - timedelta(days=2), FIXED_NOW) == -2

    @pytest.mark.parametrize(
        "days, expected",
        [
            (31, None),
            (30, ReminderType.THIRTY_DAYS),
            (16, ReminderType.THIRTY_DAYS),
            (15, ReminderType.FIFTEEN_DAYS),
            (1, ReminderType.FIFTEEN_DAYS),
            (0, None),
        ],
    )
    def test_reminder_windows(self, days, expected):
        assert due_reminder(_policy(days), days) == expected

    def test_decided_policies_get_no_reminders(self):
        policy = _policy(20, renewal_disposition=LeadDisposition.SUCCESSFUL)

        assert due_reminder(policy, 20) is None
        assert determine_status(policy, 20) == RenewalStatus.RENEWED
        assert not is_due_for_pool(_policy(-1, renewal_disposition=LeadDisposition.DECLINED), -1)

    def test_expired_policy_is_due_for_pool_once(self):
        policy = _policy(-2)
        assert is_due_for_pool(policy, -2)
        assert determine_status(policy, -2) == RenewalStatus.EXPIRED_UNACTIONED

        pooled = replace(policy, assigned_to_pool=True, assigned_to_pool_at=FIXED_NOW)
        assert not is_due_for_pool(pooled, -2)
        assert determine_status(pooled, -2) == RenewalStatus.ASSIGNED_TO_POOL

    def test_pool_flag_and_timestamp_go_together(self):
        with pytest.raises(ValueError):
            _policy(-2, assigned_to_pool=True)

    def test_message_mentions_vehicle_and_days(self):
        message = renewal_message(_policy(25), 25)

        assert "Mariam" in message
        assert "Honda Civic" in message
        assert "*25 days*" in message


class TestRenewalScanner:

    def test_sends_reminders_for_due_windows(self, scanner, renewal_repo):
        renewal_repo.save(_policy(25))

        summary = scanner.run()

        assert summary.processed == 1
        assert summary.reminders_sent == 1
        stored = renewal_repo.get_by_id("policy-002")
        assert stored.status == RenewalStatus.REMINDER_30_SENT
        assert [r.type for r in stored.reminders_sent] == [ReminderType.THIRTY_DAYS]
        assert stored.last_contact_date == FIXED_NOW
        assert len(renewal_repo.list_reminder_log("policy-002")) == 1

    def test_rerun_does_not_repeat_a_reminder(self, scanner, renewal_repo):
        renewal_repo.save(_policy(25))
        scanner.run()

        summary = scanner.run()

        assert summary.reminders_sent == 0
        assert len(renewal_repo.get_by_id("policy-002").reminders_sent) == 1

    def test_fifteen_day_reminder_follows_thirty(self, scanner, renewal_repo, clock):
        renewal_repo.save(_policy(20))
        scanner.run()
        clock.advance(days=6)

        scanner.run()

        stored = renewal_repo.get_by_id("policy-002")
        assert [r.type for r in stored.reminders_sent] == [ReminderType.THIRTY_DAYS, ReminderType.FIFTEEN_DAYS]
        assert stored.status == RenewalStatus.REMINDER_15_SENT

    def test_expired_policy_goes_to_pool(self, scanner, renewal_repo, quotes_repo, audit_repo, saved_quote):
        saved_quote("issued-002", status=QuoteStatus.ISSUED)
        renewal_repo.save(_policy(-2))

        summary = scanner.run()

        assert summary.assigned_to_pool == 1
        assert summary.errors == []
        policy = renewal_repo.get_by_id("policy-002")
        assert policy.assigned_to_pool
        assert policy.assigned_to_pool_at == FIXED_NOW
        assert policy.status == RenewalStatus.ASSIGNED_TO_POOL
        assert policy.pool_quote_id == pool_quote_id(policy)

        renewal_quote = quotes_repo.get_fresh(pool_quote_id(policy))
        assert renewal_quote.status == QuoteStatus.EXPIRING
        assert renewal_quote.assignment is None
        assert renewal_quote.lead_disposition == LeadDisposition.NEW
        assert renewal_quote.quote_reference.startswith("Q-REN-")

        original = quotes_repo.get_fresh("issued-002")
        assert original.status == QuoteStatus.EXPIRING
        assert [e.action for e in audit_repo.read_for_quote("issued-002")] == [AuditAction.STATUS_CHANGE]

    def test_pool_handoff_happens_once(self, scanner, renewal_repo, store):
        renewal_repo.save(_policy(-2))
        scanner.run()

        summary = scanner.run()

        assert summary.assigned_to_pool == 0
        assert store.count("quotes") == 1

    def test_rerun_after_partial_failure_reuses_quote(self, scanner, renewal_repo, store):
        renewal_repo.save(_policy(-2))
        store.fail_tables.add("renewal_policies")
        store.fail_ops.add("upsert")

        failed = scanner.run()
        assert failed.errors
        assert not renewal_repo.get_by_id("policy-002").assigned_to_pool

        store.fail_tables.clear()
        store.fail_ops.clear()
        summary = scanner.run()

        assert summary.errors == []
        assert renewal_repo.get_by_id("policy-002").assigned_to_pool
        assert store.count("quotes") == 1

    def test_failed_delivery_is_reported_and_retried(
        self, renewal_repo, quotes_repo, audit_repo, failing_whatsapp, whatsapp, clock
    ):
        renewal_repo.save(_policy(25))
        failing = RenewalScanner(renewal_repo, quotes_repo, audit_repo, failing_whatsapp, clock)

        summary = failing.run()

        assert summary.reminders_sent == 0
        assert len(summary.errors) == 1
        assert renewal_repo.get_by_id("policy-002").reminders_sent == ()

        retry = RenewalScanner(renewal_repo, quotes_repo, audit_repo, whatsapp, clock).run()
        assert retry.reminders_sent == 1

    def test_lost_reminder_log_entry_still_counts_the_reminder(self, scanner, renewal_repo, store):
        renewal_repo.save(_policy(25))
        store.fail_tables.add("whatsapp_reminders")

        summary = scanner.run()

        assert summary.reminders_sent == 1
        assert len(summary.errors) == 1
        assert "Reminder log entry was not recorded" in summary.errors[0]
        stored = renewal_repo.get_by_id("policy-002")
        assert [r.type for r in stored.reminders_sent] == [ReminderType.THIRTY_DAYS]
        assert stored.status == RenewalStatus.REMINDER_30_SENT

    def test_manual_reminder_with_lost_log_entry_succeeds(self, scanner, renewal_repo, store):
        renewal_repo.save(_policy(45))
        store.fail_tables.add("whatsapp_reminders")

        result = scanner.send_manual_reminder("policy-002")

        assert result.success
        assert result.reminder.type == ReminderType.THIRTY_DAYS
        assert result.warnings

    def test_unavailable_policy_store_aborts_run(self, scanner, store):
        store.fail_tables.add("renewal_policies")

        summary = scanner.run()

        assert summary.processed == 0
        assert len(summary.errors) == 1


class TestDashboard:

    @pytest.fixture
    def seeded(self, renewal_repo):
        for policy in demo_renewal_policies(FIXED_NOW):
            renewal_repo.save(policy)

    def test_metrics(self, scanner, seeded):
        metrics = scanner.get_metrics()

        assert metrics.total_expiring == 4
        assert metrics.expiring_30_days == 3
        assert metrics.expiring_15_days == 1
        assert metrics.expiring_7_days == 0
        assert metrics.reminders_scheduled == 2
        assert metrics.auto_assigned_to_pool == 0
        assert metrics.renewal_rate == 20.0
        assert metrics.total_value == Decimal("2190")

    def test_metrics_without_policies(self, scanner):
        metrics = scanner.get_metrics()

        assert metrics.total_expiring == 0
        assert metrics.renewal_rate == 0.0

    def test_list_expiring_soonest_first(self, scanner, seeded):
        expiring = scanner.list_expiring(days_ahead=30)

        assert [e.days_until_expiry for e in expiring] == [10, 20, 25]
        assert expiring[1].status == RenewalStatus.RENEWED

    def test_manual_reminders_in_order(self, scanner, renewal_repo, seeded):
        first = scanner.send_manual_reminder("policy-001")
        second = scanner.send_manual_reminder("policy-001")
        third = scanner.send_manual_reminder("policy-001")

        assert first.success and first.reminder.type == ReminderType.THIRTY_DAYS
        assert second.success and second.reminder.type == ReminderType.FIFTEEN_DAYS
        assert not third.success
        assert third.error == ALL_REMINDERS_SENT
        assert renewal_repo.get_by_id("policy-001").status == RenewalStatus.REMINDER_15_SENT

    def test_manual_reminder_for_unknown_policy(self, scanner):
        result = scanner.send_manual_reminder("policy-999")

        assert not result.success
        assert result.policy is None


class _StubScanner:
    def __init__(self, fail=False):
        self.calls = 0
        self.fail = fail
        self.ran = threading.Event()

    def run(self):
        self.calls += 1
        self.ran.set()
        if self.fail:
            raise RuntimeError("boom")
        return RenewalRunSummary(processed=1)


class TestRenewalScheduler:

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            RenewalScheduler(_StubScanner(), interval_minutes=0)

    def test_run_now_records_summary(self):
        scheduler = RenewalScheduler(_StubScanner())

        summary = scheduler.run_now()

        assert summary.processed == 1
        assert scheduler.last_summary is summary

    def test_start_runs_immediately_and_stop_joins(self):
        stub = _StubScanner()
        scheduler = RenewalScheduler(stub, interval_minutes=60)

        scheduler.start()
        assert stub.ran.wait(5)
        assert scheduler.is_running
        scheduler.stop(timeout=5)

        assert not scheduler.is_running
        assert stub.calls == 1

    def test_failed_run_keeps_scheduler_alive(self):
        stub = _StubScanner(fail=True)
        scheduler = RenewalScheduler(stub, interval_minutes=60)

        scheduler.start()
        try:
            assert stub.ran.wait(5)
            assert scheduler.is_running
        finally:
            scheduler.stop(timeout=5)
