"""Per-ticket token aggregation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .schemas import TokenTotals, UsageBreakdown


def merge(global_totals: dict[str, TokenTotals], ticket_key: str, usage: UsageBreakdown) -> dict[str, TokenTotals]:
    """Add one usage breakdown to a ticket's totals in place and return the mapping."""
    totals = global_totals.get(ticket_key)
    if totals is None:
        totals = TokenTotals()
        global_totals[ticket_key] = totals
    totals.add_usage(usage)
    return global_totals


def merge_totals(left: Mapping[str, TokenTotals], right: Mapping[str, TokenTotals]) -> dict[str, TokenTotals]:
    """Return a new mapping with both sides summed per ticket; inputs are left untouched."""
    merged = {ticket_key: totals.copy() for ticket_key, totals in left.items()}
    for ticket_key, totals in right.items():
        existing = merged.get(ticket_key)
        if existing is None:
            merged[ticket_key] = totals.copy()
        else:
            existing += totals
    return merged


def merge_all(partials: Iterable[Mapping[str, TokenTotals]]) -> dict[str, TokenTotals]:
    """Fold any number of per-file mappings into one global mapping."""
    merged: dict[str, TokenTotals] = {}
    for partial in partials:
        merged = merge_totals(merged, partial)
    return merged
