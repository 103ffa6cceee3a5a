"""
Tests for pool CSV export.

Verifies:
- Formula characters are stripped from text fields
- Commas, quotes and newlines are quoted, not row-breaking
- Agent-scoped exports refuse other agents' quotes
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import replace

import pytest

from conftest import FIXED_NOW, build_quote
from domain.assignment import QuoteAssignment
from services.csv_export_service import (
    POOL_CSV_HEADER,
    SecurityError,
    export_pool_csv,
    sanitize_csv_field,
)


def _assigned(quote, agent_id="2", agent_name="Ahmed Al-Salem"):
    assignment = QuoteAssignment(
        id=f"assignment-{quote.id}",
        quote_id=quote.id,
        assigned_to_agent_id=agent_id,
        assigned_to_agent_name=agent_name,
        assigned_by_agent_id="3",
        assigned_by_agent_name="Sarah Johnson",
        assigned_at=FIXED_NOW,
    )
    return replace(quote, assignment=assignment)


def _rows(text):
    return list(csv.reader(io.StringIO(text)))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("=HYPERLINK(\"http://x\")", "HYPERLINK(\"http://x\")"),
        ("+97333123456", "97333123456"),
        ("-@cmd", "cmd"),
        ("Khalid Al-Mansoori", "Khalid Al-Mansoori"),
        (None, ""),
        ("", ""),
    ],
)
def test_sanitize_csv_field(raw, expected):
    assert sanitize_csv_field(raw) == expected


def test_stripping_is_logged(caplog):
    with caplog.at_level(logging.WARNING):
        sanitize_csv_field("=1+1", "customer_name")

    assert any("customer_name" in record.getMessage() for record in caplog.records)


def test_export_header_and_row():
    quote = _assigned(build_quote())

    rows = _rows(export_pool_csv([quote], FIXED_NOW))

    assert rows[0] == POOL_CSV_HEADER
    assert rows[1][0] == "Q-2026-TE-1"
    assert rows[1][1] == "Khalid Al-Mansoori"
    assert rows[1][5] == "ASSIGNED"
    assert rows[1][8] == "N/A"
    assert rows[1][9] == "NORMAL"


def test_embedded_delimiters_stay_in_one_field():
    quote = build_quote()
    quote = _assigned(replace(quote, customer=replace(quote.customer, full_name='Al-Khalifa, "Jr"\nBahrain')))

    rows = _rows(export_pool_csv([quote], FIXED_NOW))

    assert len(rows) == 2
    assert rows[1][1] == 'Al-Khalifa, "Jr"\nBahrain'


def test_agent_scope_is_enforced():
    mine = _assigned(build_quote("quote-1"))
    theirs = _assigned(build_quote("quote-2"), agent_id="5", agent_name="Layla Ahmed")

    assert len(_rows(export_pool_csv([mine], FIXED_NOW, agent_id="2"))) == 2
    with pytest.raises(SecurityError):
        export_pool_csv([mine, theirs], FIXED_NOW, agent_id="2")
    with pytest.raises(SecurityError):
        export_pool_csv([build_quote()], FIXED_NOW, agent_id="2")
