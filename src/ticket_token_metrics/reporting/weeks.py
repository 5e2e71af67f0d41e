"""Calendar week windows used to bucket tickets and activity."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any

from .errors import WeekConfigError


@dataclass(frozen=True)
class WeekWindow:
    """One configured reporting week; both dates are inclusive."""

    name: str
    start: date
    end: date
    label: str

    def start_instant(self, timezone: tzinfo = UTC) -> datetime:
        """Return 00:00:00.000 on the start date."""
        return datetime.combine(self.start, time(0, 0), tzinfo=timezone)

    def next_start_instant(self, timezone: tzinfo = UTC) -> datetime:
        """Return 00:00:00 on the day after the end date."""
        return datetime.combine(self.end + timedelta(days=1), time(0, 0), tzinfo=timezone)

    def contains(self, timestamp: datetime, timezone: tzinfo = UTC) -> bool:
        """Return True when the timestamp falls in the closed week interval."""
        normalized = timestamp if timestamp.tzinfo is not None else timestamp.replace(tzinfo=UTC)
        return self.start_instant(timezone) <= normalized < self.next_start_instant(timezone)


def parse_week(raw_week: dict[str, Any]) -> WeekWindow:
    """Build a WeekWindow from a `{name, start, end, label}` mapping."""
    try:
        name = str(raw_week["name"])
        start = date.fromisoformat(str(raw_week["start"]))
        end = date.fromisoformat(str(raw_week["end"]))
    except KeyError as exc:
        raise WeekConfigError(f"Week entry is missing {exc.args[0]!r}: {raw_week!r}.") from exc
    except ValueError as exc:
        raise WeekConfigError(f"Invalid week date in {raw_week!r}: {exc}.") from exc
    label = raw_week.get("label") or raw_week.get("period") or name
    return WeekWindow(name=name, start=start, end=end, label=str(label))


def validate_weeks(weeks: Sequence[WeekWindow]) -> None:
    """Fail unless weeks are ordered, non-inverted, uniquely named and non-overlapping."""
    seen_names: set[str] = set()
    previous: WeekWindow | None = None
    for week in weeks:
        if week.end < week.start:
            raise WeekConfigError(f"Week {week.name!r} ends ({week.end}) before it starts ({week.start}).")
        if week.name in seen_names:
            raise WeekConfigError(f"Duplicate week name {week.name!r}.")
        seen_names.add(week.name)
        if previous is not None and week.start <= previous.end:
            raise WeekConfigError(
                f"Week {week.name!r} ({week.start}..{week.end}) overlaps or precedes "
                f"week {previous.name!r} ({previous.start}..{previous.end})."
            )
        previous = week


def week_for_timestamp(
    timestamp: datetime,
    weeks: Sequence[WeekWindow],
    timezone: tzinfo = UTC,
) -> WeekWindow | None:
    """Return the week whose closed interval contains the timestamp."""
    for week in weeks:
        if week.contains(timestamp, timezone):
            return week
    return None
