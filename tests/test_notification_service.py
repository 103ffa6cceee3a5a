"""
Tests for `services/notification_service.py`.

The live-mode tests route the WhatsApp client through httpx.MockTransport,
so no request leaves the process.
"""

from __future__ import annotations

import json

import httpx
import pytest

from config.settings import Settings
from conftest import FixedRandom
from domain.notification import NotificationType
from services.notification_service import WhatsAppClient, format_phone_number

LIVE_SETTINGS = Settings(
    whatsapp_mock_mode=False,
    whatsapp_phone_number_id="1234567890",
    whatsapp_access_token="token-abc",
    whatsapp_business_account_id="987654321",
)


def _live_client(handler) -> WhatsAppClient:
    return WhatsAppClient(LIVE_SETTINGS, http_client=httpx.Client(transport=httpx.MockTransport(handler)))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("+973 3312 3456", "97333123456"),
        ("0097333123456", "97333123456"),
        ("33123456", "97333123456"),
        ("97333123456", "97333123456"),
        ("", ""),
    ],
)
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


class TestMockMode:

    def test_success_waits_and_returns_message_id(self, whatsapp, sleeps):
        response = whatsapp.send_message("33123456", "Hello")

        assert response.success
        assert response.message_id.startswith("wamid.mock_")
        assert sleeps == [0.5]

    def test_simulated_failure(self, failing_whatsapp):
        response = failing_whatsapp.send_template("33123456", "renewal_reminder", ["Khalid"])

        assert not response.success
        assert "Simulated network error" in response.error

    def test_bulk_send_pauses_between_messages(self, settings):
        sleeps = []
        client = WhatsAppClient(settings, rng=FixedRandom(0.0), sleep=sleeps.append)

        result = client.send_bulk([("33111111", "a"), ("33222222", "b"), ("33333333", "c")])

        assert (result.sent, result.failed) == (3, 0)
        assert sleeps.count(0.1) == 2

    def test_validate_config_lists_missing_values(self, whatsapp):
        valid, errors = whatsapp.validate_config()

        assert not valid
        assert len(errors) == 3


class TestLiveMode:

    def test_text_message_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.live_1"}]})

        response = _live_client(handler).send_message("+973 3312 3456", "Your link")

        assert response.success
        assert response.message_id == "wamid.live_1"
        assert seen["url"] == "https://graph.facebook.com/v17.0/1234567890/messages"
        assert seen["auth"] == "Bearer token-abc"
        assert seen["body"]["to"] == "97333123456"
        assert seen["body"]["text"]["body"] == "Your link"

    def test_template_parameters(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.live_2"}]})

        _live_client(handler).send_template("33123456", "renewal_reminder", ["Khalid", "30"])

        component = seen["body"]["template"]["components"][0]
        assert [p["text"] for p in component["parameters"]] == ["Khalid", "30"]

    def test_api_error_message_is_surfaced(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "Invalid parameter"}})

        response = _live_client(handler).send_message("33123456", "x")

        assert not response.success
        assert response.error == "Invalid parameter"

    @pytest.mark.parametrize(
        "status, kwargs",
        [
            (200, {"json": {"contacts": []}}),
            (200, {"json": {"messages": []}}),
            (200, {"json": ["unexpected"]}),
            (200, {"text": "<html>gateway</html>"}),
        ],
    )
    def test_malformed_success_body_is_a_failed_response(self, status, kwargs):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, **kwargs)

        response = _live_client(handler).send_message("33123456", "hi")

        assert not response.success
        assert response.error == "Unexpected WhatsApp API response"

    @pytest.mark.parametrize(
        "kwargs, expected",
        [
            ({"json": {"error": "Rate limited"}}, "Rate limited"),
            ({"json": ["unexpected"]}, "WhatsApp API returned HTTP 429"),
            ({"text": "busy"}, "WhatsApp API returned HTTP 429"),
        ],
    )
    def test_unusual_error_bodies(self, kwargs, expected):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, **kwargs)

        response = _live_client(handler).send_message("33123456", "x")

        assert not response.success
        assert response.error == expected

    def test_network_error_is_a_failed_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        response = _live_client(handler).send_message("33123456", "x")

        assert not response.success
        assert "Network error" in response.error

    def test_timeout_is_a_failed_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        response = _live_client(handler).send_message("33123456", "x")

        assert response.error == "WhatsApp API request timed out"

    def test_validate_config_when_complete(self):
        assert WhatsAppClient(LIVE_SETTINGS).validate_config() == (True, [])


def test_inbox_push_and_mark_read(inbox):
    pushed = inbox.push(NotificationType.SYSTEM, "Renewals", "Scan finished", recipient_id="3")

    assert [n.id for n in inbox.list_recent(recipient_id="3")] == [pushed.id]
    assert inbox.mark_read(pushed.id)
    assert inbox.list_recent(recipient_id="3")[0].read
