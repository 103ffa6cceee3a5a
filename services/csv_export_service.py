"""
CSV export service for an agent's pool.

Generates CSV content listing pool quotes with their assignment state and
urgency.

Security:
- Authorization: Exports scoped to one agent include only that agent's quotes
- CSV Injection Prevention: Sanitizes all text fields to prevent formula execution
- Security Logging: Logs when dangerous characters are stripped

Values are written with the csv module, so embedded commas, quotes and
newlines are quoted rather than breaking the row.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from datetime import datetime
from io import StringIO
from typing import Iterable, List, Optional

from domain.assignment import classify_urgency
from domain.quote import Quote
from domain.time import to_iso_utc

logger = logging.getLogger(__name__)


class SecurityError(Exception):
    """Raised when an agent-scoped export includes another agent's quote."""
    pass


FORMULA_PREFIXES = frozenset({"=", "+", "-", "@", "\t", "\r"})


def sanitize_csv_field(value: str | None, field_name: str = "unknown") -> str:
    """
    Strip leading formula characters from a value before it goes into a CSV cell.

    Spreadsheet tools evaluate cells beginning with =, +, -, @, tab or
    carriage return. Each strip is logged with the field name so exports
    carrying hostile customer input show up in the logs.

    Example:
        sanitize_csv_field("=HYPERLINK(\"http://x\")", "customer_name")
        # 'HYPERLINK("http://x")', warning logged

        sanitize_csv_field("Khalid Al-Mansoori", "customer_name")
        # unchanged, nothing logged
    """
    if value is None or value == "":
        return ""

    original = str(value).strip()
    cleaned = original.lstrip("".join(FORMULA_PREFIXES))

    if cleaned != original:
        removed = original[: len(original) - len(cleaned)]
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": removed,
                "original_value": original[:100],
                "sanitized_value": cleaned[:100],
            },
        )

    return cleaned


POOL_CSV_HEADER: List[str] = [
    "Quote Ref",
    "Customer Name",
    "Mobile",
    "Insurance Type",
    "Status",
    "Assignment Status",
    "Assigned To",
    "Assigned Date",
    "Claimed Date",
    "Urgency",
    "Notes",
]


@dataclass(frozen=True, slots=True)
class PoolExportRow:
    """
    One exported pool quote, already sanitized.
    """
    quote_ref: str
    customer_name: str
    mobile: str
    insurance_type: str
    status: str
    assignment_status: str
    assigned_to: str
    assigned_date: str
    claimed_date: str
    urgency: str
    notes: int

    def as_list(self) -> List[str]:
        return [
            self.quote_ref,
            self.customer_name,
            self.mobile,
            self.insurance_type,
            self.status,
            self.assignment_status,
            self.assigned_to,
            self.assigned_date,
            self.claimed_date,
            self.urgency,
            str(self.notes),
        ]


def _export_row(quote: Quote, as_of: datetime) -> PoolExportRow:
    assignment = quote.assignment
    return PoolExportRow(
        quote_ref=sanitize_csv_field(quote.display_reference, "quote_ref"),
        customer_name=sanitize_csv_field(quote.customer.full_name, "customer_name"),
        mobile=sanitize_csv_field(quote.customer.mobile, "mobile"),
        insurance_type=quote.insurance_type.value,
        status=quote.status.value,
        assignment_status=assignment.status.value if assignment else "Unassigned",
        assigned_to=sanitize_csv_field(assignment.assigned_to_agent_name, "assigned_to") if assignment else "",
        assigned_date=to_iso_utc(assignment.assigned_at) if assignment else "N/A",
        claimed_date=to_iso_utc(assignment.claimed_at) if assignment and assignment.claimed_at else "N/A",
        urgency=classify_urgency(assignment.assigned_at, as_of).value if assignment and assignment.is_active else "",
        notes=len(assignment.agent_notes) if assignment else 0,
    )


def export_pool_csv(quotes: Iterable[Quote], as_of: datetime, agent_id: Optional[str] = None) -> str:
    """
    Generate CSV content for pool quotes.

    Args:
        quotes: Quotes to export, in the order they should appear
        as_of: Evaluation time for urgency
        agent_id: When set, every quote must be assigned to this agent

    Returns:
        CSV content as a string (header row included)

    Raises:
        SecurityError: If agent_id is set and a quote belongs to someone else
    """
    rows: List[PoolExportRow] = []
    for quote in quotes:
        if agent_id is not None and (
            quote.assignment is None or quote.assignment.assigned_to_agent_id != agent_id
        ):
            raise SecurityError(f"Authorization failed: quote {quote.id} is not assigned to agent {agent_id}")
        rows.append(_export_row(quote, as_of))

    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(POOL_CSV_HEADER)
    for row in rows:
        writer.writerow(row.as_list())
    return output.getvalue()


__all__ = [
    "POOL_CSV_HEADER",
    "PoolExportRow",
    "SecurityError",
    "export_pool_csv",
    "sanitize_csv_field",
]
