#!/usr/bin/env python3
"""
Seed Demo Data

Inserts the sample portal quotes and renewal policies into the configured
store. Existing quotes are left untouched; policies are upserted.

Usage:
    python seed_demo_data.py
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import configure_logging, load_settings
from repositories.document_store import create_document_store
from repositories.errors import StoreUnavailableError
from repositories.quote_repository import QuoteRepository
from repositories.renewal_repository import RenewalRepository
from services.demo_data import seed_demo_data


def main() -> int:
    settings = load_settings()
    configure_logging(settings)

    if not settings.uses_remote_store:
        print("WARNING: SUPABASE_URL/SUPABASE_KEY not set; seeding the in-process store only")

    store = create_document_store(settings)
    quotes = QuoteRepository(store, table=settings.quotes_table)
    renewals = RenewalRepository(store, table=settings.renewals_table, reminders_table=settings.reminders_table)

    try:
        summary = seed_demo_data(quotes, renewals)
    except StoreUnavailableError as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1

    print(f"✓ Quotes created:  {summary.quotes_created}")
    print(f"  Quotes skipped:  {summary.quotes_skipped} (already present)")
    print(f"✓ Policies saved:  {summary.policies_saved}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
