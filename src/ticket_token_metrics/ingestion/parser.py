"""Streaming parser for AI-assistant transcript JSONL files."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson

from .schemas import EventType, ParseStats, TranscriptEvent, UsageBreakdown

LOGGER = logging.getLogger(__name__)

# Raw usage keys in the transcript, mapped onto UsageBreakdown fields.
USAGE_KEY_MAP: tuple[tuple[str, str], ...] = (
    ("input_tokens", "input_tokens"),
    ("output_tokens", "output_tokens"),
    ("cache_creation_input_tokens", "cache_creation_tokens"),
    ("cache_read_input_tokens", "cache_read_tokens"),
    ("thinking_output_tokens", "reasoning_tokens"),
)


def iter_transcript_events(transcript_path: Path, stats: ParseStats | None = None) -> Iterator[TranscriptEvent]:
    """Yield typed events from a transcript file, skipping malformed lines.

    Malformed JSON and non-object lines are counted on `stats` and never raise.
    """
    parse_stats = stats if stats is not None else ParseStats()
    with transcript_path.open("rb") as handle:
        for line_number, raw_line in enumerate(handle, start=1):
            if not raw_line.strip():
                continue
            parse_stats.lines_read += 1
            try:
                payload = orjson.loads(raw_line)
            except orjson.JSONDecodeError:
                parse_stats.lines_skipped_malformed += 1
                LOGGER.debug("Skipping malformed JSON in %s at line %d.", transcript_path, line_number)
                continue
            if not isinstance(payload, dict):
                parse_stats.lines_skipped_malformed += 1
                LOGGER.debug("Skipping non-object JSON in %s at line %d.", transcript_path, line_number)
                continue

            parse_stats.events_parsed += 1
            yield parse_transcript_event(payload, line_number)


def parse_transcript_event(payload: dict[str, Any], line_number: int) -> TranscriptEvent:
    """Build a TranscriptEvent from one decoded JSON object."""
    message = payload.get("message")
    if not isinstance(message, dict):
        message = {}

    content = message.get("content")
    if not isinstance(content, (str, list)):
        content = None

    usage_value = message.get("usage")
    usage = parse_usage(usage_value) if isinstance(usage_value, dict) else None

    git_branch = payload.get("gitBranch")
    session_id = payload.get("sessionId")
    subtype = payload.get("subtype")

    return TranscriptEvent(
        event_type=EventType.from_raw(payload.get("type")),
        line_number=line_number,
        timestamp=parse_optional_timestamp(payload.get("timestamp")),
        session_id=session_id if isinstance(session_id, str) else None,
        git_branch=git_branch if isinstance(git_branch, str) and git_branch else None,
        message_content=content,
        usage=usage,
        subtype=subtype if isinstance(subtype, str) else None,
    )


def parse_usage(raw_usage: dict[str, Any]) -> UsageBreakdown:
    """Extract token counts, coercing missing or invalid values to zero."""
    values = {field_name: coerce_token_count(raw_usage.get(raw_key)) for raw_key, field_name in USAGE_KEY_MAP}
    return UsageBreakdown(**values)


def coerce_token_count(value: Any) -> int:
    """Return a non-negative int for a raw usage value; anything else becomes 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float) and math.isfinite(value):
        return max(int(value), 0)
    return 0


def parse_optional_timestamp(value: Any) -> datetime | None:
    """Parse an RFC3339-style timestamp into an aware datetime; invalid values become None."""
    if not isinstance(value, str) or not value:
        return None
    normalized = value.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
