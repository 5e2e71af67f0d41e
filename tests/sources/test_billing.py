"""Tests for billing export parsing."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from ticket_token_metrics.reporting.weeks import WeekWindow
from ticket_token_metrics.sources.billing import (
    BillingEntry,
    costs_for_week,
    load_billing_exports,
    merge_billing_entries,
    parse_billing_csv,
)

WEEK = WeekWindow("Week 1", date(2025, 11, 10), date(2025, 11, 14), "Nov 10-14")


def test_parse_billing_csv_keeps_dated_rows_and_sums_model_columns(tmp_path: Path) -> None:
    path = tmp_path / "billing.csv"
    path.write_text(
        "\ufeffService,Claude Sonnet 4 ($),Claude 3 Haiku ($),Claude Haiku 4 ($),Other ($),Total costs ($)\n"
        "Service total,10.00,1.00,0.50,2.00,13.50\n"
        "2025-11-10,4.00,0.25,,1.00,5.25\n"
        "2025-11-11,bad,0.75,0.25,1.00,2.00\n",
        encoding="utf-8",
    )

    entries = parse_billing_csv(path)

    assert entries == [
        BillingEntry(day=date(2025, 11, 10), total_cost=5.25, model_cost=4.25),
        BillingEntry(day=date(2025, 11, 11), total_cost=2.0, model_cost=1.0),
    ]


def test_costs_for_week_sums_inclusive_days_and_reports_none_when_empty() -> None:
    entries = [
        BillingEntry(date(2025, 11, 9), 100.0, 100.0),
        BillingEntry(date(2025, 11, 10), 1.111, 1.0),
        BillingEntry(date(2025, 11, 14), 2.222, 0.0),
    ]

    weekly = costs_for_week(entries, WEEK)

    assert weekly.total_cost == pytest.approx(3.33)
    assert weekly.model_cost == 1.0
    assert costs_for_week([], WEEK).total_cost is None


def test_merge_billing_entries_keeps_last_export_per_day() -> None:
    older = [BillingEntry(date(2025, 11, 10), 1.0, 1.0), BillingEntry(date(2025, 11, 11), 2.0, 2.0)]
    newer = [BillingEntry(date(2025, 11, 11), 5.0, 4.0), BillingEntry(date(2025, 11, 9), 3.0, 3.0)]

    merged = merge_billing_entries([older, newer])

    assert merged == [
        BillingEntry(date(2025, 11, 9), 3.0, 3.0),
        BillingEntry(date(2025, 11, 10), 1.0, 1.0),
        BillingEntry(date(2025, 11, 11), 5.0, 4.0),
    ]


def test_load_billing_exports_merges_overlapping_files(tmp_path: Path) -> None:
    header = "Service,Claude Sonnet 4 ($),Total costs ($)\nService total,0,0\n"
    first = tmp_path / "costs(1).csv"
    first.write_text(header + "2025-11-10,1.00,1.50\n2025-11-11,2.00,2.50\n", encoding="utf-8")
    second = tmp_path / "costs(2).csv"
    second.write_text(header + "2025-11-11,3.00,3.50\n2025-11-12,4.00,4.50\n", encoding="utf-8")

    entries = load_billing_exports([first, second])

    assert [entry.day for entry in entries] == [date(2025, 11, 10), date(2025, 11, 11), date(2025, 11, 12)]
    weekly = costs_for_week(entries, WEEK)
    assert weekly.model_cost == 8.0
    assert weekly.total_cost == 9.5
