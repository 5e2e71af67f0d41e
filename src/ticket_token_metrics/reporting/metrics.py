"""Derived weekly ratios with explicit insufficient-data handling."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal

from .schemas import WeeklyBucket, WeeklyMetrics, WeeklyPullRequestStats


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero instead of to even."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def safe_ratio(numerator: float | None, denominator: float | None) -> float | None:
    """Return numerator / denominator, or None when either is missing or the result is not finite."""
    if numerator is None or denominator is None or denominator <= 0:
        return None
    result = numerator / denominator
    return result if math.isfinite(result) else None


def calculate_metrics(
    bucket: WeeklyBucket,
    pr_stats: WeeklyPullRequestStats | None = None,
    model_cost: float | None = None,
) -> WeeklyMetrics:
    """Compute the week's ratios; any ratio lacking its inputs is None."""
    total_tokens = bucket.total_tokens
    lines_changed = pr_stats.total_lines_changed if pr_stats is not None else None
    pr_count = pr_stats.feature_pr_count if pr_stats is not None else None
    cycle_time = pr_stats.avg_cycle_time_days if pr_stats is not None else None

    tokens_per_story_point = safe_ratio(bucket.ratio_tokens, bucket.ratio_story_points)
    loc_per_token = safe_ratio(lines_changed, total_tokens)
    tokens_per_pr = safe_ratio(total_tokens, pr_count)
    tokens_per_cycle_time = safe_ratio(tokens_per_pr, cycle_time)
    cost_per_story_point = safe_ratio(model_cost, bucket.total_story_points)
    cost_per_pr = safe_ratio(model_cost, pr_count)
    cost_per_loc = safe_ratio(model_cost, lines_changed)

    return WeeklyMetrics(
        tokens_per_story_point=_rounded_int(tokens_per_story_point),
        loc_per_token=_rounded(loc_per_token, 8),
        tokens_per_cycle_time=_rounded_int(tokens_per_cycle_time),
        cost_per_story_point=_rounded(cost_per_story_point, 2),
        cost_per_pr=_rounded(cost_per_pr, 2),
        cost_per_loc=_rounded(cost_per_loc, 4),
    )


def _rounded(value: float | None, digits: int) -> float | None:
    return round_half_up(value, digits) if value is not None else None


def _rounded_int(value: float | None) -> int | None:
    return int(round_half_up(value)) if value is not None else None
