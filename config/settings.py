"""
Application settings.

Values come from the process environment, with a `.env` file at the project
root loaded first. Missing Supabase credentials are not an error: the
application then runs against the in-process document store (demo mode).

Environment variables:
- SUPABASE_URL, SUPABASE_KEY: hosted document store credentials
- QUOTES_TABLE, AUDIT_LOGS_TABLE, NOTIFICATIONS_TABLE, RENEWALS_TABLE,
  REMINDERS_TABLE: table names
- WHATSAPP_API_URL, WHATSAPP_PHONE_NUMBER_ID, WHATSAPP_ACCESS_TOKEN,
  WHATSAPP_BUSINESS_ACCOUNT_ID, WHATSAPP_MOCK_MODE: WhatsApp Business API
- DEFAULT_COUNTRY_CODE: prefix for local mobile numbers
- RENEWAL_INTERVAL_MINUTES: renewal scanner period
- LOG_LEVEL: root logger level for entry points
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {key} must be an integer, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    quotes_table: str = "quotes"
    audit_logs_table: str = "audit_logs"
    notifications_table: str = "notifications"
    renewals_table: str = "renewal_policies"
    reminders_table: str = "whatsapp_reminders"

    whatsapp_api_url: str = "https://graph.facebook.com/v17.0"
    whatsapp_phone_number_id: Optional[str] = None
    whatsapp_access_token: Optional[str] = None
    whatsapp_business_account_id: Optional[str] = None
    whatsapp_mock_mode: bool = True

    default_country_code: str = "973"
    renewal_interval_minutes: int = 60
    log_level: str = "INFO"

    @property
    def uses_remote_store(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from an environment mapping.

    Args:
        env: Mapping to read from. Defaults to os.environ after loading .env.

    Returns:
        Settings instance
    """

    if env is None:
        load_dotenv(dotenv_path=env_path)
        env = os.environ

    interval = _get_int(env, "RENEWAL_INTERVAL_MINUTES", 60)
    if interval <= 0:
        raise RuntimeError("RENEWAL_INTERVAL_MINUTES must be positive")

    return Settings(
        supabase_url=env.get("SUPABASE_URL") or None,
        supabase_key=env.get("SUPABASE_KEY") or None,
        quotes_table=env.get("QUOTES_TABLE") or "quotes",
        audit_logs_table=env.get("AUDIT_LOGS_TABLE") or "audit_logs",
        notifications_table=env.get("NOTIFICATIONS_TABLE") or "notifications",
        renewals_table=env.get("RENEWALS_TABLE") or "renewal_policies",
        reminders_table=env.get("REMINDERS_TABLE") or "whatsapp_reminders",
        whatsapp_api_url=env.get("WHATSAPP_API_URL") or "https://graph.facebook.com/v17.0",
        whatsapp_phone_number_id=env.get("WHATSAPP_PHONE_NUMBER_ID") or None,
        whatsapp_access_token=env.get("WHATSAPP_ACCESS_TOKEN") or None,
        whatsapp_business_account_id=env.get("WHATSAPP_BUSINESS_ACCOUNT_ID") or None,
        whatsapp_mock_mode=_get_bool(env, "WHATSAPP_MOCK_MODE", True),
        default_country_code=env.get("DEFAULT_COUNTRY_CODE") or "973",
        renewal_interval_minutes=interval,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure the root logger for an entry point (API app or script)."""

    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ["Settings", "configure_logging", "get_settings", "load_settings"]
