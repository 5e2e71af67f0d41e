"""Tests for configured week windows."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from ticket_token_metrics.reporting.errors import WeekConfigError
from ticket_token_metrics.reporting.weeks import WeekWindow, parse_week, validate_weeks, week_for_timestamp

WEEK_5 = WeekWindow("Week 5", date(2025, 11, 3), date(2025, 11, 7), "Nov 3-7")
WEEK_6 = WeekWindow("Week 6", date(2025, 11, 8), date(2025, 11, 14), "Nov 8-14")


def test_boundary_timestamps_fall_in_exactly_one_week() -> None:
    last_moment = datetime(2025, 11, 7, 23, 59, 59, 999000, tzinfo=UTC)
    first_moment = datetime(2025, 11, 8, 0, 0, tzinfo=UTC)

    assert week_for_timestamp(last_moment, [WEEK_5, WEEK_6]) is WEEK_5
    assert week_for_timestamp(first_moment, [WEEK_5, WEEK_6]) is WEEK_6
    assert week_for_timestamp(datetime(2025, 11, 15, 0, 0, tzinfo=UTC), [WEEK_5, WEEK_6]) is None


def test_sub_millisecond_end_of_day_stays_in_the_earlier_week() -> None:
    week_1 = WeekWindow("W1", date(2025, 1, 6), date(2025, 1, 12), "Jan 6-12")
    week_2 = WeekWindow("W2", date(2025, 1, 13), date(2025, 1, 19), "Jan 13-19")

    assert week_for_timestamp(datetime(2025, 1, 12, 23, 59, 59, 999500, tzinfo=UTC), [week_1, week_2]) is week_1
    assert week_for_timestamp(datetime(2025, 1, 12, 23, 59, 59, 999999, tzinfo=UTC), [week_1, week_2]) is week_1
    assert week_for_timestamp(datetime(2025, 1, 13, 0, 0, tzinfo=UTC), [week_1, week_2]) is week_2


def test_contains_evaluates_week_bounds_in_the_given_timezone() -> None:
    pacific = timezone(timedelta(hours=-8))
    evening_utc = datetime(2025, 11, 8, 5, 0, tzinfo=UTC)

    assert WEEK_6.contains(evening_utc)
    assert WEEK_5.contains(evening_utc, pacific)


def test_parse_week_uses_label_period_or_name() -> None:
    assert parse_week({"name": "Week 1", "start": "2025-10-07", "end": "2025-10-10", "period": "Oct 7-10"}).label == (
        "Oct 7-10"
    )
    assert parse_week({"name": "Week 1", "start": "2025-10-07", "end": "2025-10-10"}).label == "Week 1"


@pytest.mark.parametrize(
    "raw_week",
    [
        {"name": "Week 1", "start": "2025-10-07"},
        {"name": "Week 1", "start": "2025-10-07", "end": "10/10/2025"},
    ],
)
def test_parse_week_rejects_incomplete_entries(raw_week: dict[str, str]) -> None:
    with pytest.raises(WeekConfigError):
        parse_week(raw_week)


@pytest.mark.parametrize(
    "weeks",
    [
        [WeekWindow("Inverted", date(2025, 11, 7), date(2025, 11, 3), "x")],
        [WEEK_5, WeekWindow("Week 5", date(2025, 11, 10), date(2025, 11, 14), "x")],
        [WEEK_5, WeekWindow("Overlap", date(2025, 11, 7), date(2025, 11, 10), "x")],
        [WEEK_6, WEEK_5],
    ],
)
def test_validate_weeks_rejects_bad_configurations(weeks: list[WeekWindow]) -> None:
    with pytest.raises(WeekConfigError):
        validate_weeks(weeks)


def test_validate_weeks_accepts_adjacent_weeks() -> None:
    validate_weeks([WEEK_5, WEEK_6])
