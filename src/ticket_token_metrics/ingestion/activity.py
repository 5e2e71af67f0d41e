"""Per-week transcript activity: token breakdown, compactions, prompts and interruptions."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import tzinfo
from typing import Any

from ..reporting.weeks import WeekWindow, week_for_timestamp
from .schemas import EventType, TranscriptEvent, WeeklyActivity

_MANUAL_COMPACTION_PATTERN = re.compile(
    r"/compact|compact history|manually compact|compress context|compress conversation",
    re.IGNORECASE,
)
_AUTO_COMPACTION_PATTERN = re.compile(
    r"context window.*exceeded|automatically compacting|auto.*compact|compaction.*triggered",
    re.IGNORECASE,
)
_INTERRUPTION_MARKERS: tuple[str, ...] = (
    "[Request interrupted by user]",
    "[Request interrupted by user for tool use]",
)
_IGNORED_PROMPTS = frozenset({"Warmup"})

# Checked in order; the first match wins.
PROMPT_CATEGORIES: dict[str, re.Pattern[str]] = {
    "feature_development": re.compile(r"implement|add feature|create|build|develop|new feature", re.IGNORECASE),
    "bug_fix": re.compile(r"fix|bug|error|issue|problem|broken|debug", re.IGNORECASE),
    "testing": re.compile(r"test|spec|jest|playwright|unit test|e2e|integration test", re.IGNORECASE),
    "refactoring": re.compile(r"refactor|reorganize|restructure|clean up|improve code", re.IGNORECASE),
    "documentation": re.compile(r"document|readme|comment|doc|explain|describe", re.IGNORECASE),
    "code_review": re.compile(r"review|check|validate|verify|examine", re.IGNORECASE),
    "code_understanding": re.compile(r"how does|what does|explain|understand|clarify", re.IGNORECASE),
    "version_control": re.compile(r"commit|push|pull|merge|branch|git", re.IGNORECASE),
    "configuration": re.compile(r"config|setup|install|configure|environment", re.IGNORECASE),
}
GENERAL_CATEGORY = "general"


def message_text(content: str | list[Any] | None) -> str:
    """Join the text blocks of a message into one string."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    parts = [
        block["text"]
        for block in content
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
    ]
    return " ".join(parts)


def classify_prompt(text: str) -> str:
    """Return the first matching prompt category, or "general"."""
    for category, pattern in PROMPT_CATEGORIES.items():
        if pattern.search(text):
            return category
    return GENERAL_CATEGORY


def detect_compaction(event: TranscriptEvent) -> str | None:
    """Return "manual", "automatic" or None for one event."""
    if event.event_type is EventType.COMPACTION:
        return "automatic"
    if event.event_type is EventType.SYSTEM and event.subtype == "compact_boundary":
        return "automatic"

    text = message_text(event.message_content)
    if not text:
        return None
    if _MANUAL_COMPACTION_PATTERN.search(text):
        return "manual"
    if _AUTO_COMPACTION_PATTERN.search(text):
        return "automatic"
    return None


class ActivityTracker:
    """Bin transcript events into configured weeks by their own timestamps."""

    def __init__(self, weeks: Sequence[WeekWindow], timezone: tzinfo) -> None:
        self._weeks = weeks
        self._timezone = timezone
        self.activity_by_week: dict[str, WeeklyActivity] = {week.name: WeeklyActivity() for week in weeks}

    def spawn(self) -> ActivityTracker:
        """Return an empty tracker over the same weeks and timezone."""
        return ActivityTracker(self._weeks, self._timezone)

    def merge(self, other: ActivityTracker) -> None:
        """Add another tracker's per-week activity into this one."""
        for name, activity in other.activity_by_week.items():
            self.activity_by_week[name] += activity

    def observe(self, event: TranscriptEvent) -> None:
        """Count one event toward the week containing its timestamp."""
        if event.timestamp is None:
            return
        week = week_for_timestamp(event.timestamp, self._weeks, self._timezone)
        if week is None:
            return
        activity = self.activity_by_week[week.name]
        if event.session_id:
            activity.session_message_times.setdefault(event.session_id, []).append(event.timestamp)

        if event.event_type is EventType.ASSISTANT_MESSAGE and event.usage is not None:
            activity.input_tokens += event.usage.input_tokens
            activity.cache_creation_tokens += event.usage.cache_creation_tokens
            activity.cache_read_tokens += event.usage.cache_read_tokens
            activity.output_tokens += event.usage.output_tokens
            activity.assistant_messages += 1

        compaction = detect_compaction(event)
        if compaction == "manual":
            activity.manual_compactions += 1
        elif compaction == "automatic":
            activity.auto_compactions += 1
        if compaction is not None and event.session_id:
            activity.first_compaction_times.setdefault(event.session_id, event.timestamp)

        if event.event_type is EventType.USER_MESSAGE:
            text = message_text(event.message_content)
            if text.strip() and text not in _IGNORED_PROMPTS:
                activity.prompts += 1
                activity.prompt_characters += len(text)
                category = classify_prompt(text)
                activity.prompt_categories[category] = activity.prompt_categories.get(category, 0) + 1
            if any(marker in text for marker in _INTERRUPTION_MARKERS):
                activity.interruptions += 1

        if isinstance(event.message_content, list):
            for block in event.message_content:
                if not isinstance(block, dict):
                    continue
                if block.get("type") == "tool_use":
                    activity.tool_uses += 1
                elif block.get("type") == "tool_result" and block.get("is_error") is True:
                    activity.tool_errors += 1
