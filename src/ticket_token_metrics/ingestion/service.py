"""Service orchestration for transcript token attribution."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, tzinfo
from pathlib import Path

from ..reporting.weeks import WeekWindow
from .activity import ActivityTracker
from .aggregation import merge, merge_totals
from .attribution import TicketAttributor
from .errors import TranscriptDirectoryError
from .parser import iter_transcript_events
from .schemas import ParseStats, TokenTotals, TranscriptCounters, TranscriptFileResult, TranscriptIngestionResult
from .tickets import TICKET_CORRECTIONS, UNATTRIBUTED

LOGGER = logging.getLogger(__name__)
SUBAGENT_FILE_PREFIX = "agent-"


class TranscriptIngestionService:
    """Coordinates transcript discovery, per-file attribution and global merge."""

    def __init__(
        self,
        transcripts_root: Path,
        weeks: Sequence[WeekWindow] | None = None,
        timezone: tzinfo = UTC,
        corrections: Mapping[str, str] = TICKET_CORRECTIONS,
        require_root: bool = False,
    ) -> None:
        self._transcripts_root = transcripts_root
        self._require_root = require_root
        self._weeks = list(weeks or [])
        self._timezone = timezone
        self._corrections = corrections

    def ingest(self) -> TranscriptIngestionResult:
        """Process every transcript file and return global per-ticket totals.

        A missing root yields an empty result marked unavailable, unless the
        service was built with `require_root=True`.
        """
        counters = TranscriptCounters()
        tracker = ActivityTracker(self._weeks, self._timezone) if self._weeks else None

        if not self._transcripts_root.is_dir():
            if self._require_root:
                raise TranscriptDirectoryError(f"Transcript directory not found: {self._transcripts_root}")
            LOGGER.warning("Transcript directory not found: %s", self._transcripts_root)
            return TranscriptIngestionResult(tokens_by_ticket={}, counters=counters, transcripts_available=False)

        tokens_by_ticket: dict[str, TokenTotals] = {}
        for transcript_path in discover_transcript_files(self._transcripts_root):
            counters.files_scanned += 1
            try:
                file_result = process_transcript_file(transcript_path, self._corrections, tracker)
            except OSError as exc:
                counters.failed_files.append(str(transcript_path))
                LOGGER.error("Failed to read transcript %s: %s", transcript_path, exc)
                continue

            tokens_by_ticket = merge_totals(tokens_by_ticket, file_result.tokens_by_ticket)
            counters.files_processed += 1
            counters.lines_read += file_result.parse_stats.lines_read
            counters.events_parsed += file_result.parse_stats.events_parsed
            counters.lines_skipped_malformed += file_result.parse_stats.lines_skipped_malformed
            counters.usage_events += file_result.usage_events
            counters.usage_events_unattributed += file_result.unattributed_events

        unattributed = tokens_by_ticket.get(UNATTRIBUTED)
        if unattributed is not None:
            LOGGER.info("Unattributed tokens: %d", unattributed.total)

        LOGGER.info(
            "Processed %d/%d transcript files, %d usage events, %d malformed lines skipped.",
            counters.files_processed,
            counters.files_scanned,
            counters.usage_events,
            counters.lines_skipped_malformed,
        )
        return TranscriptIngestionResult(
            tokens_by_ticket=tokens_by_ticket,
            counters=counters,
            activity_by_week=tracker.activity_by_week if tracker is not None else {},
        )


def process_transcript_file(
    transcript_path: Path,
    corrections: Mapping[str, str] = TICKET_CORRECTIONS,
    tracker: ActivityTracker | None = None,
) -> TranscriptFileResult:
    """Attribute one transcript file's usage events to tickets.

    Activity is collected on a per-file tracker and merged into `tracker` only
    once the whole file has been read.
    """
    parse_stats = ParseStats()
    attributor = TicketAttributor(corrections)
    tokens_by_ticket: dict[str, TokenTotals] = {}
    usage_events = 0
    unattributed_events = 0
    file_tracker = tracker.spawn() if tracker is not None else None

    for event in iter_transcript_events(transcript_path, parse_stats):
        if file_tracker is not None:
            file_tracker.observe(event)
        attributed = attributor.observe(event)
        if attributed is None:
            continue
        usage_events += 1
        if attributed.ticket is None:
            unattributed_events += 1
        merge(tokens_by_ticket, attributed.ticket_key, attributed.usage)

    if tracker is not None and file_tracker is not None:
        tracker.merge(file_tracker)

    LOGGER.debug(
        "Parsed transcript %s: %d events, %d usage events, %d malformed lines",
        transcript_path,
        parse_stats.events_parsed,
        usage_events,
        parse_stats.lines_skipped_malformed,
    )
    return TranscriptFileResult(
        tokens_by_ticket=tokens_by_ticket,
        parse_stats=parse_stats,
        usage_events=usage_events,
        unattributed_events=unattributed_events,
    )


def discover_transcript_files(transcripts_root: Path) -> list[Path]:
    """Discover main-conversation JSONL files in sorted path order."""
    if not transcripts_root.exists():
        return []
    return sorted(
        path
        for path in transcripts_root.rglob("*.jsonl")
        if path.is_file() and not path.name.startswith(SUBAGENT_FILE_PREFIX)
    )
