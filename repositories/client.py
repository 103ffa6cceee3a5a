"""
Supabase client initialization.

This module contains *only* the database connection setup. The client is
created lazily so that importing repositories never requires credentials;
demo mode and tests run against the in-process document store instead.

Environment variables required for remote mode:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import threading
from typing import Optional

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

from config.settings import Settings, get_settings

_client: Optional[Client] = None
_client_lock = threading.Lock()


def get_supabase_client(settings: Optional[Settings] = None) -> Client:
    """
    Return the shared Supabase client, creating it on first use.

    Raises:
        RuntimeError: if SUPABASE_URL or SUPABASE_KEY is not configured
    """

    global _client
    settings = settings or get_settings()

    with _client_lock:
        if _client is not None:
            return _client

        if not settings.supabase_url:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_URL. "
                "Set SUPABASE_URL to your Supabase project URL."
            )
        if not settings.supabase_key:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_KEY. "
                "Set SUPABASE_KEY to your Supabase API key."
            )

        _client = create_client(settings.supabase_url, settings.supabase_key)
        return _client


__all__ = ["get_supabase_client"]
