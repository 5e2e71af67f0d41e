"""Typed schemas for weekly report assembly."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..ingestion.schemas import TranscriptCounters, WeeklyActivity
from .weeks import WeekWindow


@dataclass(frozen=True)
class TicketContribution:
    """One ticket's lump-sum contribution to the week its pull request was created in."""

    ticket: str
    pr_number: int
    pr_created_at: datetime
    tokens: int | None
    story_points: float | None

    @property
    def counts_toward_ratio(self) -> bool:
        """Return True when both tokens and story points are known."""
        return self.tokens is not None and self.story_points is not None


@dataclass(frozen=True)
class WeeklyBucket:
    """Tickets joined to one week, with derived aggregate fields."""

    week: WeekWindow
    contributions: tuple[TicketContribution, ...] = ()

    @property
    def ticket_count(self) -> int:
        return len(self.contributions)

    @property
    def total_tokens(self) -> int | None:
        """Return tokens of every ticket in the week, or None when no ticket has transcript tokens."""
        known = [item.tokens for item in self.contributions if item.tokens is not None]
        return sum(known) if known else None

    @property
    def total_story_points(self) -> float:
        """Return story points of every ticket in the week, with or without tokens."""
        return sum(item.story_points for item in self.contributions if item.story_points is not None)

    @property
    def ratio_tokens(self) -> int | None:
        eligible = [item.tokens or 0 for item in self.contributions if item.counts_toward_ratio]
        return sum(eligible) if eligible else None

    @property
    def ratio_story_points(self) -> float:
        return sum(item.story_points or 0.0 for item in self.contributions if item.counts_toward_ratio)


class ExclusionReason(Enum):
    """Why a ticket's tokens were left out of every weekly bucket."""

    OUTSIDE_CONFIGURED_WEEKS = "outside_configured_weeks"
    NO_MERGED_PULL_REQUEST = "no_merged_pull_request"


@dataclass(frozen=True)
class ExcludedTicket:
    ticket: str
    reason: ExclusionReason
    tokens: int | None
    pr_number: int | None = None
    pr_created_at: datetime | None = None


@dataclass(frozen=True)
class JoinResult:
    """Weekly buckets plus tickets that could not be placed in any of them."""

    buckets: list[WeeklyBucket]
    excluded: list[ExcludedTicket] = field(default_factory=list)
    unattributed_tokens: int = 0

    @property
    def excluded_tokens(self) -> int:
        return sum(item.tokens or 0 for item in self.excluded)

    def excluded_by(self, reason: ExclusionReason) -> list[ExcludedTicket]:
        return [item for item in self.excluded if item.reason is reason]


@dataclass(frozen=True)
class WeeklyPullRequestStats:
    """Feature pull-request activity for one week."""

    feature_pr_count: int = 0
    total_lines_changed: int = 0
    loc_per_pr: int | None = None
    developer_count: int = 0
    loc_per_developer: int | None = None
    avg_cycle_time_days: float | None = None
    nkt: float | None = None
    comments_per_pr: float | None = None


@dataclass(frozen=True)
class SessionExportSummary:
    """Contributor session-export rows whose start falls in one week."""

    session_count: int = 0
    turn_count: int = 0
    interrupted_turns: int = 0
    total_cost_usd: float = 0.0


@dataclass(frozen=True)
class WeeklyMetrics:
    """Derived ratios for one week; None means insufficient data."""

    tokens_per_story_point: int | None = None
    loc_per_token: float | None = None
    tokens_per_cycle_time: int | None = None
    cost_per_story_point: float | None = None
    cost_per_pr: float | None = None
    cost_per_loc: float | None = None


@dataclass(frozen=True)
class WeeklyReportRow:
    """Everything reported for one configured week."""

    bucket: WeeklyBucket
    metrics: WeeklyMetrics
    pr_stats: WeeklyPullRequestStats | None = None
    total_cost: float | None = None
    model_cost: float | None = None
    activity: WeeklyActivity | None = None
    sessions: SessionExportSummary | None = None

    @property
    def week(self) -> WeekWindow:
        return self.bucket.week


@dataclass(frozen=True)
class ReportSummary:
    """Run-level counts printed after a report is built."""

    transcript_counters: TranscriptCounters
    transcripts_available: bool
    tickets_with_tokens: int
    pull_requests_loaded: int
    tickets_linked: int
    tickets_joined: int
    tickets_excluded: int
    excluded_tokens: int
    unattributed_tokens: int
    story_points_found: int
    session_rows: int
    failed_sources: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class WeeklyReport:
    rows: list[WeeklyReportRow]
    join: JoinResult
    summary: ReportSummary
