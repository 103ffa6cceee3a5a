"""
API tests through FastAPI's TestClient.

Each test gets a fresh container on the in-memory store, seeded with the
demo records, a fixed clock and a mock WhatsApp client that always delivers.
"""

from __future__ import annotations

import csv
import io

import pytest
from fastapi.testclient import TestClient

from api.dependencies import build_container, get_container
from api.main import app
from conftest import FakeClock, FixedRandom
from config.settings import Settings
from repositories.document_store import InMemoryDocumentStore
from services.notification_service import WhatsAppClient

NEW_QUOTE = {
    "customer": {
        "cpr": "900101123",
        "full_name": "Khalid Al-Mansoori",
        "mobile": "97335551234",
        "email": "khalid.m@email.com",
        "is_eligible_for_installments": False,
    },
    "vehicle": {
        "plate_number": "445566",
        "chassis_number": "CP12345ABCD",
        "make": "Nissan",
        "model": "Patrol",
        "year": "2024",
        "value": "25000",
    },
    "start_date": "2026-03-15",
    "agent_id": "2",
    "agent_name": "Ahmed Al-Salem",
    "actor": "Ahmed Al-Salem",
}

AHMED = {"agent_id": "2", "agent_name": "Ahmed Al-Salem"}


@pytest.fixture
def container():
    settings = Settings()
    return build_container(
        settings,
        store=InMemoryDocumentStore(),
        whatsapp=WhatsAppClient(settings, rng=FixedRandom(0.0), sleep=lambda _: None),
        clock=FakeClock(),
        seed_demo=True,
    )


@pytest.fixture
def client(container):
    app.dependency_overrides[get_container] = lambda: container
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client) -> dict:
    response = client.post("/api/v1/quotes", json=NEW_QUOTE)
    assert response.status_code == 201, response.text
    return response.json()["quote"]


def _assign(client, *quote_ids):
    return client.post(
        "/api/v1/assignments",
        json={
            "quote_ids": list(quote_ids),
            "assigned_to_agent_id": "2",
            "assigned_to_agent_name": "Ahmed Al-Salem",
            "assigned_by_agent_id": "3",
            "assigned_by_agent_name": "Sarah Johnson",
        },
    )


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestQuotesApi:

    def test_demo_quotes_are_listed(self, client):
        response = client.get("/api/v1/quotes", params={"status": "DRAFT"})

        assert response.status_code == 200
        assert {q["id"] for q in response.json()} == {"customer-portal-1", "customer-portal-2", "agent-portal-1"}

    def test_create_and_fetch(self, client):
        created = _create(client)

        assert created["status"] == "DRAFT"
        assert created["version"] == 1
        assert created["quote_reference"].startswith("Q-")

        fetched = client.get(f"/api/v1/quotes/{created['id']}").json()
        assert fetched["customer"]["full_name"] == "Khalid Al-Mansoori"

    def test_unknown_quote_is_404(self, client):
        assert client.get("/api/v1/quotes/missing").status_code == 404

    def test_create_requires_actor(self, client):
        body = {k: v for k, v in NEW_QUOTE.items() if k != "actor"}

        assert client.post("/api/v1/quotes", json=body).status_code == 422

    def test_plans_for_quote(self, client):
        created = _create(client)

        plans = client.get(f"/api/v1/quotes/{created['id']}/plans").json()

        assert [p["id"] for p in plans] == ["plan_gig_1", "plan_snic_1", "plan_tisur_1"]

    def test_stale_edit_is_409(self, client):
        created = _create(client)
        edit = {
            "version": created["version"],
            "customer": NEW_QUOTE["customer"],
            "vehicle": NEW_QUOTE["vehicle"],
            "risk_factors": {"age_under_24": False, "license_under_1_year": False},
            "start_date": "2026-04-01",
            "actor": "Ahmed Al-Salem",
        }
        assert client.put(f"/api/v1/quotes/{created['id']}", json=edit).status_code == 200

        response = client.put(f"/api/v1/quotes/{created['id']}", json=edit)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "CONFLICT"

    def test_send_link_then_customer_events(self, client):
        created = _create(client)
        quote_id = created["id"]

        sent = client.post(
            f"/api/v1/quotes/{quote_id}/send-link",
            json={"plan_id": "plan_snic_1", "actor": "Ahmed Al-Salem", "payment_pending": False},
        )
        assert sent.status_code == 200
        assert sent.json()["quote"]["status"] == "LINK_SENT"
        assert sent.json()["quote"]["provider"] == "SNIC"

        clicked = client.post(f"/api/v1/quotes/{quote_id}/customer-events", json={"event": "LINK_CLICKED"})
        assert clicked.json()["quote"]["status"] == "LINK_CLICKED"

        issued_early = client.post(f"/api/v1/quotes/{quote_id}/customer-events", json={"event": "POLICY_ISSUED"})
        assert issued_early.status_code == 409
        assert issued_early.json()["detail"]["error"] == "INVALID_TRANSITION"

    def test_unknown_plan_is_422(self, client):
        created = _create(client)

        response = client.post(
            f"/api/v1/quotes/{created['id']}/send-link",
            json={"plan_id": "plan_none", "actor": "Ahmed Al-Salem"},
        )

        assert response.status_code == 422

    def test_audit_trail(self, client):
        created = _create(client)

        entries = client.get(f"/api/v1/quotes/{created['id']}/audit").json()

        assert [e["action"] for e in entries] == ["QUOTE_CREATED"]
        assert entries[0]["user"] == "Ahmed Al-Salem"

    def test_draft_reminder_run(self, client):
        response = client.post("/api/v1/reminders/drafts/run")

        assert response.status_code == 200
        assert sorted(response.json()["sent"]) == ["agent-portal-1", "customer-portal-1", "customer-portal-2"]


class TestApprovalsApi:

    def test_exception_flow_notifies_agent(self, client):
        quote_id = _create(client)["id"]

        requested = client.post(
            f"/api/v1/quotes/{quote_id}/exception",
            json={"plan_id": "plan_gig_1", "actor": "Ahmed Al-Salem"},
        )
        assert requested.json()["quote"]["status"] == "PENDING_APPROVAL"
        assert [q["id"] for q in client.get("/api/v1/approvals/pending").json()] == [quote_id]

        decided = client.post(f"/api/v1/approvals/{quote_id}/decision", json={"approved": True})
        assert decided.json()["quote"]["status"] == "APPROVAL_GRANTED"

        notifications = client.get("/api/v1/notifications", params={"recipient_id": "2"}).json()
        assert [n["quote_id"] for n in notifications] == [quote_id]
        read = client.post(f"/api/v1/notifications/{notifications[0]['id']}/read")
        assert read.status_code == 200

    def test_decision_without_request_is_409(self, client):
        quote_id = _create(client)["id"]

        response = client.post(f"/api/v1/approvals/{quote_id}/decision", json={"approved": False})

        assert response.status_code == 409

    def test_unknown_notification_is_404(self, client):
        assert client.post("/api/v1/notifications/missing/read").status_code == 404


class TestPoolApi:

    def test_assign_claim_note_and_export(self, client):
        response = _assign(client, "agent-portal-1", "missing")
        body = response.json()
        assert body["assigned"] == ["agent-portal-1"]
        assert body["failures"] == {"missing": "NOT_FOUND"}

        pool = client.get("/api/v1/pool", params={"agent_id": "2"}).json()
        assert [q["id"] for q in pool] == ["agent-portal-1"]

        claimed = client.post("/api/v1/pool/claim-next", json=AHMED)
        assert claimed.json()["quote"]["assignment"]["status"] == "CLAIMED"

        again = client.post("/api/v1/pool/agent-portal-1/claim", json=AHMED)
        assert again.status_code == 409

        noted = client.post(
            "/api/v1/pool/agent-portal-1/notes",
            json={"text": "Customer asked for a call back", "author_id": "2", "author_name": "Ahmed Al-Salem"},
        )
        assert len(noted.json()["quote"]["assignment"]["agent_notes"]) == 1

        export = client.get("/api/v1/pool/export", params={"agent_id": "2"})
        assert export.status_code == 200
        assert export.headers["content-type"].startswith("text/csv")
        rows = list(csv.reader(io.StringIO(export.text)))
        assert rows[1][0] == "Q-2026-AP001"

    def test_reject_with_unknown_reason_is_422(self, client):
        _assign(client, "agent-portal-1")

        response = client.post("/api/v1/pool/agent-portal-1/reject", json={**AHMED, "reason": "BORED"})

        assert response.status_code == 422

    def test_complete_before_issue_is_409(self, client):
        _assign(client, "agent-portal-1")

        assert client.post("/api/v1/pool/agent-portal-1/complete", json=AHMED).status_code == 409

    def test_unassigned_list(self, client):
        _assign(client, "agent-portal-1")

        ids = {q["id"] for q in client.get("/api/v1/pool/unassigned").json()}

        assert ids == {"customer-portal-1", "customer-portal-2"}


class TestRenewalsApi:

    def test_expiring_and_metrics(self, client):
        expiring = client.get("/api/v1/renewals/expiring", params={"days_ahead": 30}).json()
        assert [e["days_until_expiry"] for e in expiring] == [10, 20, 25]

        metrics = client.get("/api/v1/renewals/metrics").json()
        assert metrics["total_expiring"] == 4

    def test_run_hands_expired_policy_to_pool(self, client):
        summary = client.post("/api/v1/renewals/run").json()

        assert summary["reminders_sent"] == 2
        assert summary["assigned_to_pool"] == 1
        renewal = client.get("/api/v1/quotes/RENEWAL-policy-004").json()
        assert renewal["status"] == "EXPIRING"
        assert renewal["assignment"] is None

    def test_manual_reminders(self, client):
        first = client.post("/api/v1/renewals/policy-001/reminders")
        assert first.json()["reminder_type"] == "30_DAYS"
        client.post("/api/v1/renewals/policy-001/reminders")

        assert client.post("/api/v1/renewals/policy-001/reminders").status_code == 409
        assert client.post("/api/v1/renewals/policy-999/reminders").status_code == 404


class TestAuthApi:

    def test_login(self, client):
        response = client.post("/api/v1/auth/login", json={"username": "credit", "password": "password"})

        assert response.json()["active_role"] == "CREDIT_CONTROL"
        assert client.post("/api/v1/auth/login", json={"username": "credit", "password": "x"}).status_code == 401

    def test_discount_code_lifecycle(self, client):
        assert client.get("/api/v1/discount-codes/ZA15AH126").json()["discount_percent"] == 15

        redeem = {
            "code": "ZA15AH126",
            "customer_name": "Khalid Al-Mansoori",
            "customer_contact": "33123456",
            "quote_id": "agent-portal-1",
        }
        assert client.post("/api/v1/discount-codes/redeem", json=redeem).status_code == 200
        assert client.post("/api/v1/discount-codes/redeem", json=redeem).status_code == 409
        assert client.post("/api/v1/discount-codes/redeem", json={**redeem, "code": "NOPE"}).status_code == 404
