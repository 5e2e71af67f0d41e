"""Cloud billing export parsing and per-week cost totals."""

from __future__ import annotations

import csv
import logging
import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from ..reporting.weeks import WeekWindow
from .errors import BillingSourceError

LOGGER = logging.getLogger(__name__)
MODEL_COST_COLUMNS: tuple[str, ...] = ("Claude Sonnet 4", "Claude 3 Haiku", "Claude Haiku 4")
TOTAL_COST_COLUMN = "Total costs"
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class BillingEntry:
    """Costs recorded for one billing day."""

    day: date
    total_cost: float
    model_cost: float


@dataclass(frozen=True)
class WeeklyCost:
    """Billing totals for one week; None when nothing was recorded."""

    total_cost: float | None
    model_cost: float | None


def parse_billing_csv(path: Path) -> list[BillingEntry]:
    """Read daily rows from a billing export.

    The first column holds the date; summary rows such as "Service total" are
    skipped because they do not carry one. Model cost is the sum of every
    column whose header names a tracked model.
    """
    try:
        with path.open("r", encoding="utf-8-sig", newline="") as handle:
            rows = [row for row in csv.reader(handle) if any(cell.strip() for cell in row)]
    except OSError as exc:
        raise BillingSourceError(f"Failed to read billing export {path}: {exc}") from exc

    if len(rows) < 2:
        LOGGER.warning("Billing export %s has no data rows.", path)
        return []

    header = [cell.strip() for cell in rows[0]]
    total_index = _find_column(header, TOTAL_COST_COLUMN)
    model_indexes = [
        index
        for marker in MODEL_COST_COLUMNS
        if (index := _find_column(header, marker)) is not None
    ]

    entries: list[BillingEntry] = []
    for row in rows[1:]:
        day_text = row[0].strip() if row else ""
        if not _DATE_PATTERN.match(day_text):
            continue
        entries.append(
            BillingEntry(
                day=date.fromisoformat(day_text),
                total_cost=_cell_amount(row, total_index),
                model_cost=sum(_cell_amount(row, index) for index in model_indexes),
            )
        )
    LOGGER.info("Parsed %d billing days from %s", len(entries), path)
    return entries


def merge_billing_entries(exports: Iterable[Iterable[BillingEntry]]) -> list[BillingEntry]:
    """Combine overlapping exports into one entry per day, sorted by day.

    When several exports cover the same day, the one given last wins.
    """
    by_day: dict[date, BillingEntry] = {}
    for entries in exports:
        for entry in entries:
            by_day[entry.day] = entry
    return [by_day[day] for day in sorted(by_day)]


def load_billing_exports(paths: Iterable[Path]) -> list[BillingEntry]:
    """Parse each billing export in order and merge them by day."""
    exports = [parse_billing_csv(path) for path in paths]
    merged = merge_billing_entries(exports)
    LOGGER.info("Merged %d billing exports into %d billing days", len(exports), len(merged))
    return merged


def costs_for_week(entries: Iterable[BillingEntry], week: WeekWindow) -> WeeklyCost:
    """Sum billing days that fall inside the week."""
    total_cost = 0.0
    model_cost = 0.0
    for entry in entries:
        if week.start <= entry.day <= week.end:
            total_cost += entry.total_cost
            model_cost += entry.model_cost
    return WeeklyCost(
        total_cost=round(total_cost, 2) if total_cost > 0 else None,
        model_cost=round(model_cost, 2) if model_cost > 0 else None,
    )


def _find_column(header: Sequence[str], marker: str) -> int | None:
    for index, name in enumerate(header):
        if marker in name:
            return index
    return None


def _cell_amount(row: Sequence[str], index: int | None) -> float:
    if index is None or index >= len(row):
        return 0.0
    try:
        amount = float(row[index].strip() or 0)
    except ValueError:
        return 0.0
    return amount if math.isfinite(amount) else 0.0
