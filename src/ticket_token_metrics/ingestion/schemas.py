"""Typed schemas used by the transcript ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from .tickets import UNATTRIBUTED, TicketId

IDLE_GAP = timedelta(minutes=30)

USAGE_FIELDS: tuple[str, ...] = (
    "input_tokens",
    "output_tokens",
    "cache_creation_tokens",
    "cache_read_tokens",
    "reasoning_tokens",
)


class EventType(Enum):
    """Transcript line types that matter for attribution and activity."""

    USER_MESSAGE = "user"
    ASSISTANT_MESSAGE = "assistant"
    SYSTEM = "system"
    COMPACTION = "compaction"
    OTHER = "other"

    @classmethod
    def from_raw(cls, value: Any) -> EventType:
        """Map a raw `type` field to an event type, falling back to OTHER."""
        for member in cls:
            if member.value == value:
                return member
        return cls.OTHER


@dataclass(frozen=True)
class UsageBreakdown:
    """Token counts reported on one assistant message."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    reasoning_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Return the sum of all category counters."""
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
            + self.reasoning_tokens
        )


@dataclass(frozen=True)
class TranscriptEvent:
    """One parsed line of a conversation transcript."""

    event_type: EventType
    line_number: int
    timestamp: datetime | None = None
    session_id: str | None = None
    git_branch: str | None = None
    message_content: str | list[Any] | None = None
    usage: UsageBreakdown | None = None
    subtype: str | None = None


@dataclass(frozen=True)
class AttributedUsage:
    """Usage from one assistant message together with the ticket it was spent on."""

    ticket: TicketId | None
    usage: UsageBreakdown
    timestamp: datetime | None
    session_id: str | None

    @property
    def ticket_key(self) -> str:
        """Return the aggregation key for this usage (ticket string or sentinel)."""
        return str(self.ticket) if self.ticket is not None else UNATTRIBUTED


@dataclass
class TokenTotals:
    """Per-ticket token accumulator; `total` is always the category sum."""

    input: int = 0
    output: int = 0
    cache_creation: int = 0
    cache_read: int = 0
    reasoning: int = 0

    @property
    def total(self) -> int:
        """Return the sum of the five category counters."""
        return self.input + self.output + self.cache_creation + self.cache_read + self.reasoning

    def add_usage(self, usage: UsageBreakdown) -> None:
        """Increment counters by one usage breakdown."""
        self.input += usage.input_tokens
        self.output += usage.output_tokens
        self.cache_creation += usage.cache_creation_tokens
        self.cache_read += usage.cache_read_tokens
        self.reasoning += usage.reasoning_tokens

    def copy(self) -> TokenTotals:
        """Return an independent copy."""
        return TokenTotals(
            input=self.input,
            output=self.output,
            cache_creation=self.cache_creation,
            cache_read=self.cache_read,
            reasoning=self.reasoning,
        )

    def as_dict(self) -> dict[str, int]:
        """Return counters as a plain mapping, total included."""
        return {
            "total": self.total,
            "input": self.input,
            "output": self.output,
            "cache_creation": self.cache_creation,
            "cache_read": self.cache_read,
            "reasoning": self.reasoning,
        }

    def __add__(self, other: TokenTotals) -> TokenTotals:
        """Return a new object with summed counters."""
        return TokenTotals(
            input=self.input + other.input,
            output=self.output + other.output,
            cache_creation=self.cache_creation + other.cache_creation,
            cache_read=self.cache_read + other.cache_read,
            reasoning=self.reasoning + other.reasoning,
        )

    def __iadd__(self, other: TokenTotals) -> TokenTotals:
        """Mutate this object by adding counters in-place."""
        self.input += other.input
        self.output += other.output
        self.cache_creation += other.cache_creation
        self.cache_read += other.cache_read
        self.reasoning += other.reasoning
        return self


@dataclass
class ParseStats:
    """Line-level parse counters for one transcript file."""

    lines_read: int = 0
    events_parsed: int = 0
    lines_skipped_malformed: int = 0


@dataclass(frozen=True)
class TranscriptFileResult:
    """Per-file attribution output."""

    tokens_by_ticket: dict[str, TokenTotals]
    parse_stats: ParseStats
    usage_events: int
    unattributed_events: int = 0


@dataclass
class TranscriptCounters:
    """Counters emitted by TranscriptIngestionService.ingest()."""

    files_scanned: int = 0
    files_processed: int = 0
    lines_read: int = 0
    events_parsed: int = 0
    lines_skipped_malformed: int = 0
    usage_events: int = 0
    usage_events_unattributed: int = 0
    failed_files: list[str] = field(default_factory=list)


@dataclass
class WeeklyActivity:
    """Transcript activity binned by event timestamp into one week."""

    input_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    output_tokens: int = 0
    assistant_messages: int = 0
    manual_compactions: int = 0
    auto_compactions: int = 0
    prompts: int = 0
    interruptions: int = 0
    tool_uses: int = 0
    tool_errors: int = 0
    prompt_characters: int = 0
    prompt_categories: dict[str, int] = field(default_factory=dict)
    session_message_times: dict[str, list[datetime]] = field(default_factory=dict)
    first_compaction_times: dict[str, datetime] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        """Return the token breakdown total (reasoning is not reported per week)."""
        return self.input_tokens + self.cache_creation_tokens + self.cache_read_tokens + self.output_tokens

    @property
    def interruption_rate(self) -> float:
        """Return interruptions per prompt as a percentage."""
        if self.prompts <= 0:
            return 0.0
        return round(self.interruptions / self.prompts * 100, 2)

    @property
    def tool_error_rate(self) -> float:
        """Return failed tool results per tool use as a percentage."""
        if self.tool_uses <= 0:
            return 0.0
        return round(self.tool_errors / self.tool_uses * 100, 2)

    @property
    def avg_prompt_length(self) -> int:
        """Return the mean prompt length in characters, rounded half up."""
        if self.prompts <= 0:
            return 0
        return int(Decimal(self.prompt_characters) / Decimal(self.prompts) + Decimal("0.5"))

    @property
    def top_prompt_category(self) -> str | None:
        """Return the most frequent prompt category; the first one seen wins ties."""
        top: str | None = None
        top_count = 0
        for category, count in self.prompt_categories.items():
            if count > top_count:
                top, top_count = category, count
        return top

    @property
    def avg_time_to_context_window(self) -> float | None:
        """Return mean active minutes from a session's first message to its first compaction."""
        durations = [
            active_minutes_until(self.session_message_times.get(session_id, []), compacted_at)
            for session_id, compacted_at in self.first_compaction_times.items()
            if self.session_message_times.get(session_id)
        ]
        if not durations:
            return None
        return round(sum(durations) / len(durations), 2)

    def __iadd__(self, other: WeeklyActivity) -> WeeklyActivity:
        """Mutate this object by adding counters in-place."""
        self.input_tokens += other.input_tokens
        self.cache_creation_tokens += other.cache_creation_tokens
        self.cache_read_tokens += other.cache_read_tokens
        self.output_tokens += other.output_tokens
        self.assistant_messages += other.assistant_messages
        self.manual_compactions += other.manual_compactions
        self.auto_compactions += other.auto_compactions
        self.prompts += other.prompts
        self.interruptions += other.interruptions
        self.tool_uses += other.tool_uses
        self.tool_errors += other.tool_errors
        self.prompt_characters += other.prompt_characters
        for category, count in other.prompt_categories.items():
            self.prompt_categories[category] = self.prompt_categories.get(category, 0) + count
        for session_id, times in other.session_message_times.items():
            self.session_message_times.setdefault(session_id, []).extend(times)
        for session_id, compacted_at in other.first_compaction_times.items():
            current = self.first_compaction_times.get(session_id)
            if current is None or compacted_at < current:
                self.first_compaction_times[session_id] = compacted_at
        return self


@dataclass(frozen=True)
class TranscriptIngestionResult:
    """Global per-ticket token totals plus optional per-week activity."""

    tokens_by_ticket: dict[str, TokenTotals]
    counters: TranscriptCounters
    activity_by_week: dict[str, WeeklyActivity] = field(default_factory=dict)
    transcripts_available: bool = True


def active_minutes_until(message_times: list[datetime], compacted_at: datetime) -> float:
    """Sum gaps shorter than IDLE_GAP between consecutive messages up to the compaction.

    The message that reaches or passes the compaction time still contributes its gap.
    """
    ordered = sorted(message_times)
    active = timedelta()
    for previous, current in zip(ordered, ordered[1:]):
        gap = current - previous
        if gap < IDLE_GAP:
            active += gap
        if current >= compacted_at:
            break
    return active.total_seconds() / 60
