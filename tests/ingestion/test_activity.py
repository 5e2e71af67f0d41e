"""Tests for per-week transcript activity counters."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

from ticket_token_metrics.ingestion.activity import ActivityTracker, classify_prompt, detect_compaction, message_text
from ticket_token_metrics.ingestion.schemas import (
    EventType,
    TranscriptEvent,
    UsageBreakdown,
    WeeklyActivity,
    active_minutes_until,
)
from ticket_token_metrics.reporting.weeks import WeekWindow

WEEK = WeekWindow("Week 1", date(2025, 10, 7), date(2025, 10, 10), "Oct 7-10")
IN_WEEK = datetime(2025, 10, 8, 12, 0, tzinfo=UTC)


def test_detect_compaction_distinguishes_manual_and_automatic() -> None:
    assert detect_compaction(_event(EventType.USER_MESSAGE, "/compact")) == "manual"
    assert detect_compaction(_event(EventType.COMPACTION)) == "automatic"
    assert detect_compaction(_event(EventType.SYSTEM, subtype="compact_boundary")) == "automatic"
    assert detect_compaction(_event(EventType.SYSTEM, subtype="informational")) is None
    assert detect_compaction(_event(EventType.USER_MESSAGE, "Context window exceeded, automatically compacting")) == (
        "automatic"
    )
    assert detect_compaction(_event(EventType.USER_MESSAGE, "write tests")) is None


def test_message_text_joins_text_blocks_only() -> None:
    content = [
        {"type": "text", "text": "first"},
        {"type": "tool_use", "name": "Read"},
        {"type": "text", "text": "second"},
    ]

    assert message_text(content) == "first second"
    assert message_text(None) == ""


def test_tracker_counts_prompts_interruptions_and_tool_errors() -> None:
    tracker = ActivityTracker([WEEK], UTC)
    events = [
        _event(EventType.USER_MESSAGE, "Warmup"),
        _event(EventType.USER_MESSAGE, "add the endpoint"),
        _event(EventType.USER_MESSAGE, "[Request interrupted by user]"),
        _event(
            EventType.ASSISTANT_MESSAGE,
            [{"type": "tool_use", "name": "Bash"}, {"type": "tool_use", "name": "Read"}],
            usage=UsageBreakdown(input_tokens=10, cache_read_tokens=90, output_tokens=5),
        ),
        _event(EventType.USER_MESSAGE, [{"type": "tool_result", "is_error": True, "content": "boom"}]),
        _event(EventType.USER_MESSAGE, "outside", timestamp=datetime(2025, 10, 11, 0, 0, tzinfo=UTC)),
    ]
    for event in events:
        tracker.observe(event)

    activity = tracker.activity_by_week["Week 1"]
    assert activity.prompts == 2
    assert activity.interruptions == 1
    assert activity.interruption_rate == 50.0
    assert activity.tool_uses == 2
    assert activity.tool_errors == 1
    assert activity.tool_error_rate == 50.0
    assert activity.total_tokens == 105
    assert activity.assistant_messages == 1


def test_weekly_activity_rates_are_zero_without_denominator() -> None:
    activity = WeeklyActivity(interruptions=3, tool_errors=2)

    assert activity.interruption_rate == 0.0
    assert activity.tool_error_rate == 0.0


def test_classify_prompt_uses_first_matching_category() -> None:
    assert classify_prompt("Implement the export endpoint") == "feature_development"
    assert classify_prompt("fix the failing test") == "bug_fix"
    assert classify_prompt("add a playwright spec") == "testing"
    assert classify_prompt("please commit and push") == "version_control"
    assert classify_prompt("thanks!") == "general"


def test_tracker_records_prompt_length_and_top_category() -> None:
    tracker = ActivityTracker([WEEK], UTC)
    for text in ["fix it", "fix bug", "create the page", "Warmup"]:
        tracker.observe(_event(EventType.USER_MESSAGE, text))

    activity = tracker.activity_by_week["Week 1"]
    assert activity.prompts == 3
    assert activity.prompt_characters == 28
    assert activity.avg_prompt_length == 9
    assert activity.prompt_categories == {"bug_fix": 2, "feature_development": 1}
    assert activity.top_prompt_category == "bug_fix"


def test_weekly_activity_prompt_stats_default_when_empty() -> None:
    activity = WeeklyActivity()

    assert activity.avg_prompt_length == 0
    assert activity.top_prompt_category is None
    assert activity.avg_time_to_context_window is None


def test_active_minutes_skip_idle_gaps_and_stop_at_compaction() -> None:
    start = datetime(2025, 10, 8, 9, 0, tzinfo=UTC)
    times = [start + timedelta(minutes=offset) for offset in (50, 0, 10, 60, 65, 90)]

    assert active_minutes_until(times, start + timedelta(minutes=65)) == 25.0
    assert active_minutes_until([start], start) == 0.0


def test_tracker_measures_time_to_first_compaction_per_session() -> None:
    tracker = ActivityTracker([WEEK], UTC)
    start = datetime(2025, 10, 8, 9, 0, tzinfo=UTC)
    events = [
        _event(EventType.USER_MESSAGE, "start", timestamp=start, session_id="A"),
        _event(EventType.ASSISTANT_MESSAGE, "ok", timestamp=start + timedelta(minutes=12), session_id="A"),
        _event(EventType.COMPACTION, timestamp=start + timedelta(minutes=12), session_id="A"),
        _event(EventType.USER_MESSAGE, "/compact", timestamp=start + timedelta(minutes=40), session_id="A"),
        _event(EventType.USER_MESSAGE, "go", timestamp=start, session_id="B"),
        _event(EventType.COMPACTION, timestamp=start + timedelta(minutes=4), session_id="B"),
        _event(EventType.COMPACTION, timestamp=start, session_id=None),
    ]
    for event in events:
        tracker.observe(event)

    activity = tracker.activity_by_week["Week 1"]
    assert activity.auto_compactions == 3
    assert activity.manual_compactions == 1
    assert activity.avg_time_to_context_window == 8.0


def test_merge_adds_per_file_activity() -> None:
    tracker = ActivityTracker([WEEK], UTC)
    first = tracker.spawn()
    first.observe(_event(EventType.USER_MESSAGE, "build it", session_id="A"))
    second = tracker.spawn()
    second.observe(_event(EventType.USER_MESSAGE, "build more", session_id="A"))

    tracker.merge(first)
    tracker.merge(second)

    activity = tracker.activity_by_week["Week 1"]
    assert activity.prompts == 2
    assert activity.prompt_categories == {"feature_development": 2}
    assert len(activity.session_message_times["A"]) == 2
    assert first.activity_by_week["Week 1"].prompts == 1


def _event(
    event_type: EventType,
    content: str | list[object] | None = None,
    subtype: str | None = None,
    usage: UsageBreakdown | None = None,
    timestamp: datetime = IN_WEEK,
    session_id: str | None = None,
) -> TranscriptEvent:
    return TranscriptEvent(
        event_type=event_type,
        line_number=1,
        timestamp=timestamp,
        session_id=session_id,
        message_content=content,
        usage=usage,
        subtype=subtype,
    )
