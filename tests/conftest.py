"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api packages, and
provides an in-memory store, a controllable clock and a deterministic
WhatsApp client. Nothing here talks to Supabase or the WhatsApp API.
"""

from __future__ import annotations

import sys
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Set

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import Settings  # noqa: E402
from domain.quote import (  # noqa: E402
    Customer,
    CustomerType,
    InsuranceType,
    Quote,
    QuoteSource,
    QuoteStatus,
    RiskFactors,
    Vehicle,
)
from repositories.audit_log_repository import AuditLogRepository  # noqa: E402
from repositories.document_store import InMemoryDocumentStore  # noqa: E402
from repositories.errors import StoreUnavailableError  # noqa: E402
from repositories.notification_repository import NotificationRepository  # noqa: E402
from repositories.quote_repository import QuoteRepository  # noqa: E402
from repositories.renewal_repository import RenewalRepository  # noqa: E402
from services.assignment_service import AssignmentService, AssignmentTemplate  # noqa: E402
from services.notification_service import NotificationInbox, WhatsAppClient  # noqa: E402
from services.quote_lifecycle_service import QuoteLifecycleService  # noqa: E402
from services.renewal_service import RenewalScanner  # noqa: E402

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FixedRandom:
    """Stand-in for random.Random whose random() always returns `value`."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class FlakyStore(InMemoryDocumentStore):
    """
    In-memory store whose calls on selected tables can be made to fail.

    `fail_tables` fails every call on a table; `fail_ops` restricts failures
    to operations named "select", "insert", "upsert" or "update_where".
    """

    def __init__(self) -> None:
        super().__init__()
        self.fail_tables: Set[str] = set()
        self.fail_ops: Set[str] = set()

    def _check(self, table: str, op: str) -> None:
        if table in self.fail_tables and (not self.fail_ops or op in self.fail_ops):
            raise StoreUnavailableError(f"{table} unavailable", table=table)

    def select(self, table, filters=None, *, order_by=None, descending=False, limit=None):
        self._check(table, "select")
        return super().select(table, filters, order_by=order_by, descending=descending, limit=limit)

    def insert(self, table, row):
        self._check(table, "insert")
        return super().insert(table, row)

    def upsert(self, table, row):
        self._check(table, "upsert")
        return super().upsert(table, row)

    def update_where(self, table, values, filters):
        self._check(table, "update_where")
        return super().update_where(table, values, filters)


class FakeSupabaseQuery:
    """Records a supabase-py query chain and runs it against a dict of tables."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self._client = client
        self._table = table
        self.op = "select"
        self.values: Optional[Dict[str, Any]] = None
        self.filters: Dict[str, Any] = {}
        self.ordering: Optional[tuple] = None
        self.limit_to: Optional[int] = None

    def select(self, columns: str = "*") -> "FakeSupabaseQuery":
        self.op = "select"
        return self

    def insert(self, values: Dict[str, Any]) -> "FakeSupabaseQuery":
        self.op, self.values = "insert", values
        return self

    def upsert(self, values: Dict[str, Any]) -> "FakeSupabaseQuery":
        self.op, self.values = "upsert", values
        return self

    def update(self, values: Dict[str, Any]) -> "FakeSupabaseQuery":
        self.op, self.values = "update", values
        return self

    def eq(self, column: str, value: Any) -> "FakeSupabaseQuery":
        self.filters[column] = value
        return self

    def order(self, column: str, desc: bool = False) -> "FakeSupabaseQuery":
        self.ordering = (column, desc)
        return self

    def limit(self, count: int) -> "FakeSupabaseQuery":
        self.limit_to = count
        return self

    def execute(self) -> SimpleNamespace:
        self._client.executed.append(self)
        if self._client.raise_on_execute is not None:
            raise self._client.raise_on_execute
        rows = self._client.tables.setdefault(self._table, [])
        matching = [r for r in rows if all(r.get(k) == v for k, v in self.filters.items())]
        if self.op == "select":
            data = list(matching)
            if self.ordering:
                column, desc = self.ordering
                data.sort(key=lambda r: r.get(column) or "", reverse=desc)
            if self.limit_to is not None:
                data = data[: self.limit_to]
        elif self.op == "insert":
            rows.append(dict(self.values or {}))
            data = [dict(self.values or {})]
        elif self.op == "upsert":
            rows[:] = [r for r in rows if r.get("id") != (self.values or {}).get("id")]
            rows.append(dict(self.values or {}))
            data = [dict(self.values or {})]
        else:
            for row in matching:
                row.update(self.values or {})
            data = [dict(r) for r in matching]
        return SimpleNamespace(data=data, error=None)


class FakeSupabaseClient:
    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.executed: List[FakeSupabaseQuery] = []
        self.raise_on_execute: Optional[Exception] = None

    def table(self, name: str) -> FakeSupabaseQuery:
        return FakeSupabaseQuery(self, name)


def build_quote(
    quote_id: str = "quote-1",
    *,
    status: QuoteStatus = QuoteStatus.DRAFT,
    created_at: datetime = FIXED_NOW,
    value: str = "10000",
    **overrides: Any,
) -> Quote:
    quote = Quote(
        id=quote_id,
        quote_reference=f"Q-2026-{quote_id[-4:].upper()}",
        customer=Customer(
            cpr="900101123",
            full_name="Khalid Al-Mansoori",
            mobile="97335551234",
            email="khalid.m@email.com",
            type=CustomerType.NEW,
            is_eligible_for_installments=True,
        ),
        vehicle=Vehicle(
            plate_number="445566",
            chassis_number="CP12345ABCD",
            make="Nissan",
            model="Patrol",
            year="2024",
            value=Decimal(value),
        ),
        insurance_type=InsuranceType.MOTOR,
        risk_factors=RiskFactors(),
        start_date="2026-03-15",
        status=status,
        created_at=created_at,
        source=QuoteSource.AGENT_PORTAL,
        agent_id="2",
        agent_name="Ahmed Al-Salem",
    )
    return replace(quote, **overrides) if overrides else quote


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(whatsapp_mock_mode=True)


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def quotes_repo(store: FlakyStore) -> QuoteRepository:
    return QuoteRepository(store)


@pytest.fixture
def audit_repo(store: FlakyStore) -> AuditLogRepository:
    return AuditLogRepository(store)


@pytest.fixture
def renewal_repo(store: FlakyStore) -> RenewalRepository:
    return RenewalRepository(store)


@pytest.fixture
def inbox(store: FlakyStore) -> NotificationInbox:
    return NotificationInbox(NotificationRepository(store))


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def whatsapp(settings: Settings, sleeps: List[float]) -> WhatsAppClient:
    """Mock-mode client that always succeeds and never really sleeps."""
    return WhatsAppClient(settings, rng=FixedRandom(0.0), sleep=sleeps.append)


@pytest.fixture
def failing_whatsapp(settings: Settings) -> WhatsAppClient:
    """Mock-mode client that always hits the simulated failure."""
    return WhatsAppClient(settings, rng=FixedRandom(0.99), sleep=lambda _: None)


@pytest.fixture
def lifecycle(quotes_repo, audit_repo, inbox, whatsapp, clock) -> QuoteLifecycleService:
    return QuoteLifecycleService(quotes_repo, audit_repo, inbox, whatsapp, clock)


@pytest.fixture
def assignments(quotes_repo, audit_repo, clock) -> AssignmentService:
    return AssignmentService(quotes_repo, audit_repo, clock)


@pytest.fixture
def scanner(renewal_repo, quotes_repo, audit_repo, whatsapp, clock) -> RenewalScanner:
    return RenewalScanner(renewal_repo, quotes_repo, audit_repo, whatsapp, clock)


@pytest.fixture
def template() -> AssignmentTemplate:
    return AssignmentTemplate(
        assigned_to_agent_id="2",
        assigned_to_agent_name="Ahmed Al-Salem",
        assigned_by_agent_id="3",
        assigned_by_agent_name="Sarah Johnson",
    )


@pytest.fixture
def make_quote() -> Callable[..., Quote]:
    return build_quote


@pytest.fixture
def saved_quote(quotes_repo: QuoteRepository) -> Callable[..., Quote]:
    """Factory that stores a quote (version 1) and returns the stored copy."""

    def _save(quote_id: str = "quote-1", **kwargs: Any) -> Quote:
        return quotes_repo.save(build_quote(quote_id, **kwargs), None)

    return _save
