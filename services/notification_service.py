"""
Notification channel: WhatsApp messaging and in-app notifications.

The WhatsApp client talks to the WhatsApp Business (Graph) API. In mock
mode (the default, for development) no request is made: the send is logged,
delayed ~500ms and succeeds 95% of the time. Both the random source and the
sleep function are injectable so tests are deterministic.

Phone numbers are normalized to country code + subscriber number with no
'+' or spaces, e.g. 97333123456.
"""

from __future__ import annotations

import logging
import random
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

import httpx

from config.settings import Settings, get_settings
from domain.notification import Notification, NotificationType
from domain.time import to_iso_utc, utc_now
from repositories.notification_repository import NotificationRepository

logger = logging.getLogger(__name__)

_MOCK_LATENCY_SECONDS = 0.5
_MOCK_SUCCESS_RATE = 0.95
_BULK_DELAY_SECONDS = 0.1
_REQUEST_TIMEOUT_SECONDS = 30.0


def format_phone_number(phone: str, country_code: str = "973") -> str:
    """
    Normalize a phone number for the WhatsApp API.

    Example:
        format_phone_number("+973 3312 3456")  # "97333123456"
        format_phone_number("0097333123456")   # "97333123456"
        format_phone_number("33123456")        # "97333123456"
    """

    cleaned = re.sub(r"\D", "", phone or "")
    if cleaned.startswith(country_code):
        return cleaned
    if cleaned.startswith("00" + country_code):
        return cleaned[2:]
    if len(cleaned) == 8:
        return country_code + cleaned
    return cleaned


_UNEXPECTED_RESPONSE = "Unexpected WhatsApp API response"


def _error_message(response: httpx.Response) -> Optional[str]:
    """The Graph API error message from an error response, if the body carries one."""

    try:
        error = response.json().get("error")
    except (ValueError, AttributeError):
        return None
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return None


@dataclass(frozen=True, slots=True)
class WhatsAppResponse:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    timestamp: Optional[str] = None


@dataclass(frozen=True, slots=True)
class BulkSendResult:
    sent: int
    failed: int
    results: List[WhatsAppResponse] = field(default_factory=list)


class WhatsAppClient:
    """Sends WhatsApp text and template messages."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        http_client: Optional[httpx.Client] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._settings = settings or get_settings()
        self._http_client = http_client
        self._rng = rng or random.Random()
        self._sleep = sleep

    @property
    def mock_mode(self) -> bool:
        return self._settings.whatsapp_mock_mode

    def validate_config(self) -> Tuple[bool, List[str]]:
        """Check live-mode credentials. Returns (valid, errors)."""

        errors: List[str] = []
        if not self._settings.whatsapp_phone_number_id:
            errors.append("WhatsApp Phone Number ID not configured")
        if not self._settings.whatsapp_access_token:
            errors.append("WhatsApp Access Token not configured")
        if not self._settings.whatsapp_business_account_id:
            errors.append("WhatsApp Business Account ID not configured")
        return (not errors, errors)

    def send_message(self, phone: str, text: str) -> WhatsAppResponse:
        to = format_phone_number(phone, self._settings.default_country_code)
        if self.mock_mode:
            return self._mock_send(to, text)
        return self._post(
            {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": to,
                "type": "text",
                "text": {"preview_url": False, "body": text},
            }
        )

    def send_template(
        self,
        phone: str,
        template_name: str,
        params: Sequence[str] = (),
        language: str = "en",
    ) -> WhatsAppResponse:
        to = format_phone_number(phone, self._settings.default_country_code)
        if self.mock_mode:
            return self._mock_send(to, f"Template: {template_name}")
        return self._post(
            {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "template",
                "template": {
                    "name": template_name,
                    "language": {"code": language},
                    "components": [
                        {
                            "type": "body",
                            "parameters": [{"type": "text", "text": p} for p in params],
                        }
                    ],
                },
            }
        )

    def send_bulk(self, messages: Sequence[Tuple[str, str]]) -> BulkSendResult:
        """Send (phone, text) pairs one at a time with a short delay between sends."""

        results: List[WhatsAppResponse] = []
        for index, (phone, text) in enumerate(messages):
            if index:
                self._sleep(_BULK_DELAY_SECONDS)
            results.append(self.send_message(phone, text))
        sent = sum(1 for r in results if r.success)
        return BulkSendResult(sent=sent, failed=len(results) - sent, results=results)

    def _mock_send(self, to: str, text: str) -> WhatsAppResponse:
        logger.info("[MOCK WhatsApp] Sending message", extra={"to": to, "preview": text[:100]})
        self._sleep(_MOCK_LATENCY_SECONDS)
        if self._rng.random() < _MOCK_SUCCESS_RATE:
            return WhatsAppResponse(
                success=True,
                message_id=f"wamid.mock_{uuid4().hex[:12]}",
                timestamp=to_iso_utc(utc_now()),
            )
        return WhatsAppResponse(success=False, error="Mock failure: Simulated network error")

    def _post(self, payload: Dict[str, Any]) -> WhatsAppResponse:
        url = f"{self._settings.whatsapp_api_url}/{self._settings.whatsapp_phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {self._settings.whatsapp_access_token}"}
        client = self._http_client or httpx.Client(timeout=_REQUEST_TIMEOUT_SECONDS)
        try:
            response = client.post(url, json=payload, headers=headers)
            if response.status_code >= 400:
                return WhatsAppResponse(
                    success=False,
                    error=_error_message(response) or f"WhatsApp API returned HTTP {response.status_code}",
                )
            try:
                message_id = response.json()["messages"][0]["id"]
            except (ValueError, KeyError, IndexError, TypeError) as e:
                logger.error(
                    "Unexpected WhatsApp API response",
                    extra={"status_code": response.status_code, "body": response.text[:200], "error": repr(e)},
                )
                return WhatsAppResponse(success=False, error=_UNEXPECTED_RESPONSE)
            return WhatsAppResponse(
                success=True,
                message_id=message_id,
                timestamp=to_iso_utc(utc_now()),
            )
        except httpx.TimeoutException:
            return WhatsAppResponse(success=False, error="WhatsApp API request timed out")
        except httpx.RequestError as e:
            return WhatsAppResponse(success=False, error=f"Network error sending WhatsApp message: {e}")
        finally:
            if self._http_client is None:
                client.close()


class NotificationInbox:
    """In-app notification records shown on the portal."""

    def __init__(self, repository: NotificationRepository):
        self._repository = repository

    def push(
        self,
        type: NotificationType,
        title: str,
        message: str,
        *,
        quote_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> Notification:
        """Store a notification. Raises StoreUnavailableError on failure."""

        notification = Notification(
            id=str(uuid4()),
            type=NotificationType(type),
            title=title,
            message=message,
            created_at=utc_now(),
            quote_id=quote_id,
            recipient_id=recipient_id,
        )
        return self._repository.insert(notification)

    def list_recent(self, limit: int = 20, recipient_id: Optional[str] = None) -> List[Notification]:
        return self._repository.list_recent(limit=limit, recipient_id=recipient_id)

    def mark_read(self, notification_id: str) -> bool:
        return self._repository.mark_read(notification_id)


__all__ = [
    "BulkSendResult",
    "NotificationInbox",
    "WhatsAppClient",
    "WhatsAppResponse",
    "format_phone_number",
]
