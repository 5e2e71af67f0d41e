"""Typed schemas for contributor session/cost exports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from .errors import SchemaMismatchError


class ExportKind(Enum):
    """Contributor export table kinds."""

    SESSION = "session"
    COST = "cost"


class SchemaVersion(Enum):
    """Export column layouts; CURRENT adds `agent_id` as the second column."""

    LEGACY = "legacy"
    CURRENT = "current"


SESSION_LEGACY_COLUMNS: tuple[str, ...] = (
    "session_id",
    "branch",
    "started_at",
    "ended_at",
    "turn_count",
    "total_cost_usd",
    "interrupted_turns",
)
SESSION_CURRENT_COLUMNS: tuple[str, ...] = (
    "session_id",
    "agent_id",
    "branch",
    "started_at",
    "ended_at",
    "turn_count",
    "total_cost_usd",
    "interrupted_turns",
)
COST_LEGACY_COLUMNS: tuple[str, ...] = (
    "session_id",
    "turn_number",
    "message_id",
    "total_tokens",
)
COST_CURRENT_COLUMNS: tuple[str, ...] = (
    "session_id",
    "agent_id",
    "turn_number",
    "message_id",
    "total_tokens",
)

EPOCH_MILLISECONDS_THRESHOLD = 100_000_000_000

EXPORT_COLUMNS: dict[ExportKind, dict[SchemaVersion, tuple[str, ...]]] = {
    ExportKind.SESSION: {
        SchemaVersion.LEGACY: SESSION_LEGACY_COLUMNS,
        SchemaVersion.CURRENT: SESSION_CURRENT_COLUMNS,
    },
    ExportKind.COST: {
        SchemaVersion.LEGACY: COST_LEGACY_COLUMNS,
        SchemaVersion.CURRENT: COST_CURRENT_COLUMNS,
    },
}


def known_header_lines(kind: ExportKind) -> dict[str, SchemaVersion]:
    """Return the exact header lines accepted for an export kind."""
    return {",".join(columns): version for version, columns in EXPORT_COLUMNS[kind].items()}


def parse_export_timestamp(value: str) -> datetime | None:
    """Parse epoch seconds, epoch milliseconds or ISO-8601 text into an aware datetime."""
    text = value.strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    if number != number or number < 0:
        return None
    if number >= EPOCH_MILLISECONDS_THRESHOLD:
        number /= 1000
    try:
        return datetime.fromtimestamp(number, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


@dataclass(frozen=True)
class SessionRecord:
    """One canonical row of a contributor session export."""

    session_id: str
    agent_id: str | None
    branch: str
    started_at: str
    ended_at: str
    turn_count: int
    total_cost_usd: float
    interrupted_turns: int

    @property
    def dedupe_key(self) -> tuple[str, str, str, str]:
        """Return the business key used to drop duplicate rows."""
        return (self.session_id, self.branch, self.started_at, self.ended_at)

    @property
    def started_instant(self) -> datetime | None:
        return parse_export_timestamp(self.started_at)

    def as_row(self) -> list[str]:
        """Return values in canonical (current schema) column order."""
        return [
            self.session_id,
            self.agent_id or "",
            self.branch,
            self.started_at,
            self.ended_at,
            str(self.turn_count),
            str(self.total_cost_usd),
            str(self.interrupted_turns),
        ]


@dataclass(frozen=True)
class CostRecord:
    """One canonical row of a contributor per-turn cost export."""

    session_id: str
    agent_id: str | None
    turn_number: int
    message_id: str
    total_tokens: int

    @property
    def dedupe_key(self) -> tuple[str, int, str]:
        """Return the business key used to drop duplicate rows."""
        return (self.session_id, self.turn_number, self.message_id)

    def as_row(self) -> list[str]:
        """Return values in canonical (current schema) column order."""
        return [
            self.session_id,
            self.agent_id or "",
            str(self.turn_number),
            self.message_id,
            str(self.total_tokens),
        ]


ExportRecord = SessionRecord | CostRecord


@dataclass(frozen=True)
class RawTable:
    """Unparsed export lines from one contributor source."""

    name: str
    lines: list[str]


@dataclass
class SourceReport:
    """Per-source merge outcome."""

    name: str
    rows_read: int = 0
    rows_kept: int = 0
    duplicate_rows_skipped: int = 0
    header_rows_skipped: int = 0
    malformed_rows_skipped: int = 0
    legacy_rows: int = 0
    current_rows: int = 0
    error: SchemaMismatchError | None = None


@dataclass
class DeduplicatedTable:
    """Merged export rows in first-seen order plus merge counters."""

    kind: ExportKind
    records: list[ExportRecord] = field(default_factory=list)
    source_reports: list[SourceReport] = field(default_factory=list)

    @property
    def duplicate_rows_skipped(self) -> int:
        """Return duplicates dropped across all sources."""
        return sum(report.duplicate_rows_skipped for report in self.source_reports)

    @property
    def header_rows_skipped(self) -> int:
        """Return re-exported header lines dropped across all sources."""
        return sum(report.header_rows_skipped for report in self.source_reports)

    @property
    def malformed_rows_skipped(self) -> int:
        """Return malformed rows dropped across all sources."""
        return sum(report.malformed_rows_skipped for report in self.source_reports)

    @property
    def failed_sources(self) -> list[SourceReport]:
        """Return reports of sources that hit a schema mismatch."""
        return [report for report in self.source_reports if report.error is not None]
