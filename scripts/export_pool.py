#!/usr/bin/env python3
"""
Pool Export Script

Exports the agent pool (assigned quotes with urgency and notes count) to CSV.

Usage:
    python export_pool.py --output pool.csv
    python export_pool.py --agent-id 2 --output ahmed_pool.csv
"""

from __future__ import annotations

import argparse
import sys
from collections import Counter
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import build_container
from config.settings import configure_logging, load_settings


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Export the agent pool to CSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export the whole pool
  python export_pool.py --output pool.csv

  # Export one agent's quotes
  python export_pool.py --agent-id 2 --output ahmed_pool.csv
        """
    )

    parser.add_argument(
        "--output",
        "-o",
        required=True,
        help="Path to output CSV file"
    )

    parser.add_argument(
        "--agent-id",
        "-a",
        help="Only export quotes assigned to this agent"
    )

    args = parser.parse_args()

    try:
        settings = load_settings()
        configure_logging(settings)
        container = build_container(settings)

        print("Fetching pool...")
        print(f"  Agent filter: {args.agent_id or 'None (all agents)'}")
        print()

        quotes = container.assignments.list_pool(args.agent_id, include_closed=True)
        if not quotes:
            print("No assigned quotes found")
            return 1

        csv_content = container.assignments.export_pool(args.agent_id)
        with open(args.output, "w", newline="", encoding="utf-8") as f:
            f.write(csv_content)

        statuses = Counter(q.assignment.status.value for q in quotes if q.assignment is not None)

        print("=" * 60)
        print("EXPORT SUMMARY")
        print("=" * 60)
        print(f"Total quotes exported: {len(quotes)}")
        for status, count in sorted(statuses.items()):
            print(f"  {status:<10} {count}")
        print()
        print(f"Output file: {args.output}")
        print("=" * 60)

        return 0

    except KeyboardInterrupt:
        print("\n\nExport interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
