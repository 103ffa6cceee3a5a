#!/usr/bin/env python3
"""
Renewal Scheduler

Runs the renewal scanner: WhatsApp reminders 30 and 15 days before expiry,
and hand-off of expired, unactioned policies to the agent pool.

Usage:
    python run_renewal_scheduler.py --once
    python run_renewal_scheduler.py --interval-minutes 60
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import build_container
from config.settings import configure_logging, load_settings
from services.renewal_service import RenewalRunSummary, RenewalScheduler


def print_summary(summary: RenewalRunSummary) -> None:
    print("=" * 60)
    print("RENEWAL RUN SUMMARY")
    print("=" * 60)
    print(f"Policies processed:  {summary.processed}")
    print(f"Reminders sent:      {summary.reminders_sent}")
    print(f"Assigned to pool:    {summary.assigned_to_pool}")
    print(f"Errors:              {len(summary.errors)}")
    for error in summary.errors:
        print(f"  - {error}")
    print("=" * 60)


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Run the policy renewal scanner",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single scan and exit"
    )

    parser.add_argument(
        "--interval-minutes",
        type=int,
        help="Minutes between scans (default: RENEWAL_INTERVAL_MINUTES or 60)"
    )

    args = parser.parse_args()

    settings = load_settings()
    configure_logging(settings)
    container = build_container(settings)

    if args.once:
        summary = container.renewal_scanner.run()
        print_summary(summary)
        return 1 if summary.errors else 0

    interval = args.interval_minutes or settings.renewal_interval_minutes
    if interval <= 0:
        print("ERROR: --interval-minutes must be positive", file=sys.stderr)
        return 2

    scheduler = RenewalScheduler(container.renewal_scanner, interval_minutes=interval)
    print(f"Starting renewal scheduler (every {interval} minutes). Press Ctrl+C to stop.")
    scheduler.start()
    try:
        while scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping renewal scheduler...")
    finally:
        scheduler.stop()

    if scheduler.last_summary is not None:
        print_summary(scheduler.last_summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
