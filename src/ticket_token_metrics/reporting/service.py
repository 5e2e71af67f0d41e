"""Service orchestration for the weekly ticket/token report."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import UTC, tzinfo
from typing import TypeVar

from ..exports.schemas import SessionRecord
from ..ingestion.schemas import TranscriptCounters, TranscriptIngestionResult
from ..ingestion.service import TranscriptIngestionService
from ..ingestion.tickets import TICKET_CORRECTIONS
from ..sources.billing import BillingEntry, costs_for_week
from ..sources.errors import SourceError
from ..sources.pull_requests import PullRequestCache, PullRequestRecord, build_ticket_links
from ..sources.story_points import StoryPointLookup
from .joiner import join_weeks
from .metrics import calculate_metrics, round_half_up
from .pr_stats import calculate_pr_stats, feature_pull_requests_for_week
from .schemas import (
    ReportSummary,
    SessionExportSummary,
    WeeklyBucket,
    WeeklyPullRequestStats,
    WeeklyReport,
    WeeklyReportRow,
)
from .weeks import WeekWindow, validate_weeks

LOGGER = logging.getLogger(__name__)
T = TypeVar("T")


class WeeklyReportService:
    """Builds one report row per configured week from every available source.

    Sources left as None are reported as missing data. A failure in one
    source or one week is logged and leaves the affected fields empty.
    """

    def __init__(
        self,
        weeks: Sequence[WeekWindow],
        transcripts: TranscriptIngestionService | None = None,
        pull_request_loader: Callable[[], Sequence[PullRequestRecord]] | None = None,
        story_points: StoryPointLookup | None = None,
        billing_entries: Sequence[BillingEntry] | None = None,
        session_records: Sequence[SessionRecord] | None = None,
        excluded_tickets: Iterable[str] = (),
        excluded_developers: Iterable[str] = (),
        corrections: Mapping[str, str] = TICKET_CORRECTIONS,
        timezone: tzinfo = UTC,
        pull_request_cache: PullRequestCache | None = None,
    ) -> None:
        validate_weeks(weeks)
        self._weeks = list(weeks)
        self._transcripts = transcripts
        self._pull_request_loader = pull_request_loader
        self._story_points = story_points
        self._billing_entries = billing_entries
        self._session_records = session_records
        self._excluded_tickets = [ticket.upper() for ticket in excluded_tickets]
        self._excluded_developers = list(excluded_developers)
        self._corrections = corrections
        self._timezone = timezone
        self._pull_request_cache = pull_request_cache or PullRequestCache()
        self._failed_sources: list[str] = []

    def build(self) -> WeeklyReport:
        """Run the whole pipeline once and return the report."""
        self._failed_sources = []
        ingestion = self._ingest_transcripts()
        prs = self._load_pull_requests()
        links = build_ticket_links(prs, self._corrections)
        in_range_tickets = [
            str(ticket)
            for ticket, link in links.items()
            if any(week.contains(link.pr_created_at, self._timezone) for week in self._weeks)
        ]
        story_points = self._lookup_story_points(in_range_tickets)

        join = join_weeks(
            links.values(),
            ingestion.tokens_by_ticket,
            story_points,
            self._weeks,
            self._timezone,
        )

        rows: list[WeeklyReportRow] = []
        for index, bucket in enumerate(join.buckets, start=1):
            LOGGER.info("Building %s (%s) [%d/%d]", bucket.week.name, bucket.week.label, index, len(join.buckets))
            rows.append(self._build_row(bucket, prs, ingestion))

        summary = ReportSummary(
            transcript_counters=ingestion.counters,
            transcripts_available=ingestion.transcripts_available,
            tickets_with_tokens=len(ingestion.tokens_by_ticket),
            pull_requests_loaded=len(prs),
            tickets_linked=len(links),
            tickets_joined=sum(bucket.ticket_count for bucket in join.buckets),
            tickets_excluded=len(join.excluded),
            excluded_tokens=join.excluded_tokens,
            unattributed_tokens=join.unattributed_tokens,
            story_points_found=len(story_points),
            session_rows=len(self._session_records or ()),
            failed_sources=list(self._failed_sources),
        )
        return WeeklyReport(rows=rows, join=join, summary=summary)

    def _build_row(
        self,
        bucket: WeeklyBucket,
        prs: Sequence[PullRequestRecord],
        ingestion: TranscriptIngestionResult,
    ) -> WeeklyReportRow:
        week = bucket.week
        pr_stats = self._guard(week, "pull request stats", lambda: self._pr_stats_for_week(prs, week))
        weekly_cost = None
        if self._billing_entries is not None:
            weekly_cost = self._guard(week, "billing", lambda: costs_for_week(self._billing_entries or (), week))
        sessions = None
        if self._session_records is not None:
            sessions = self._guard(
                week, "session exports", lambda: summarize_sessions(self._session_records or (), week, self._timezone)
            )

        model_cost = weekly_cost.model_cost if weekly_cost is not None else None
        metrics = calculate_metrics(bucket, pr_stats, model_cost)
        row = WeeklyReportRow(
            bucket=bucket,
            metrics=metrics,
            pr_stats=pr_stats,
            total_cost=weekly_cost.total_cost if weekly_cost is not None else None,
            model_cost=model_cost,
            activity=ingestion.activity_by_week.get(week.name) if ingestion.transcripts_available else None,
            sessions=sessions,
        )
        LOGGER.info(
            "%s: %d tickets, %s tokens, %s story points, tokens/SP=%s",
            week.name,
            bucket.ticket_count,
            bucket.total_tokens,
            bucket.total_story_points,
            metrics.tokens_per_story_point,
        )
        return row

    def _pr_stats_for_week(self, prs: Sequence[PullRequestRecord], week: WeekWindow) -> WeeklyPullRequestStats:
        feature_prs = feature_pull_requests_for_week(
            prs,
            week,
            self._timezone,
            self._excluded_tickets,
            self._excluded_developers,
            self._corrections,
        )
        return calculate_pr_stats(feature_prs)

    def _ingest_transcripts(self) -> TranscriptIngestionResult:
        if self._transcripts is None:
            LOGGER.warning("No transcript source configured; token fields will be empty.")
            return TranscriptIngestionResult(
                tokens_by_ticket={}, counters=TranscriptCounters(), transcripts_available=False
            )
        return self._transcripts.ingest()

    def _load_pull_requests(self) -> list[PullRequestRecord]:
        loader = self._pull_request_loader
        if loader is None:
            LOGGER.warning("No pull request source configured; no tickets can be joined to weeks.")
            return []
        try:
            return self._pull_request_cache.get_or_load(loader)
        except SourceError as exc:
            self._failed_sources.append("pull_requests")
            LOGGER.warning("Pull requests unavailable: %s", exc)
            return []

    def _lookup_story_points(self, ticket_ids: Sequence[str]) -> dict[str, float]:
        if self._story_points is None or not ticket_ids:
            return {}
        try:
            return self._story_points.get_story_points(ticket_ids)
        except SourceError as exc:
            self._failed_sources.append("story_points")
            LOGGER.warning("Story points unavailable: %s", exc)
            return {}

    def _guard(self, week: WeekWindow, source_name: str, compute: Callable[[], T]) -> T | None:
        try:
            return compute()
        except Exception as exc:
            self._failed_sources.append(f"{week.name}:{source_name}")
            LOGGER.warning("%s unavailable for %s: %s", source_name, week.name, exc)
            return None


def summarize_sessions(
    records: Iterable[SessionRecord],
    week: WeekWindow,
    timezone: tzinfo = UTC,
) -> SessionExportSummary:
    """Total the exported sessions that started inside the week."""
    session_count = 0
    turn_count = 0
    interrupted_turns = 0
    total_cost = 0.0
    for record in records:
        started = record.started_instant
        if started is None or not week.contains(started, timezone):
            continue
        session_count += 1
        turn_count += record.turn_count
        interrupted_turns += record.interrupted_turns
        total_cost += record.total_cost_usd
    return SessionExportSummary(
        session_count=session_count,
        turn_count=turn_count,
        interrupted_turns=interrupted_turns,
        total_cost_usd=round_half_up(total_cost, 2),
    )
