"""CLI entrypoints for ticket token attribution and weekly reporting."""

from __future__ import annotations

import logging
from pathlib import Path
from zoneinfo import ZoneInfo

import orjson
import typer
from rich.console import Console

from .config import ConfigError, ReportConfig, jira_settings_from_env, load_report_config
from .exports.schemas import DeduplicatedTable, ExportKind, SessionRecord
from .exports.service import ExportMergeService
from .ingestion.errors import IngestionError
from .ingestion.schemas import TranscriptIngestionResult
from .ingestion.service import TranscriptIngestionService
from .paths import get_default_database_path, get_default_transcripts_root
from .reporting.errors import ReportError
from .reporting.render import render_ticket_tokens, render_weekly_report, report_to_json
from .reporting.repository import ReportRepository
from .reporting.schemas import WeeklyReport
from .reporting.service import WeeklyReportService
from .sources.billing import BillingEntry, load_billing_exports
from .sources.errors import SourceError
from .sources.pull_requests import load_pull_requests_json
from .sources.rate_limit import FixedIntervalGate
from .sources.story_points import JiraStoryPointClient, StaticStoryPointLookup, StoryPointLookup

LOGGER = logging.getLogger(__name__)

TYPER_APP = typer.Typer(help="Ticket-level token attribution and weekly delivery metrics.")


@TYPER_APP.callback()
def main() -> None:
    """Root CLI callback."""


@TYPER_APP.command("tokens")
def tokens_command(
    transcripts_dir: Path | None = typer.Option(
        None,
        "--transcripts-dir",
        "-t",
        help="Directory of JSONL transcripts (defaults to ~/.claude/projects).",
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write per-ticket totals as JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Attribute transcript token usage to tickets and print per-ticket totals."""
    _configure_logging(verbose)
    service = TranscriptIngestionService(
        transcripts_dir or get_default_transcripts_root(),
        require_root=transcripts_dir is not None,
    )
    try:
        result = service.ingest()
    except IngestionError as exc:
        raise typer.BadParameter(str(exc)) from exc

    _emit_ingestion_summary(result)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        payload = {ticket: totals.as_dict() for ticket, totals in sorted(result.tokens_by_ticket.items())}
        output.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
    render_ticket_tokens(result.tokens_by_ticket, Console())


@TYPER_APP.command("merge-exports")
def merge_exports_command(
    paths: list[Path] = typer.Argument(..., help="Contributor export CSV files, merged in the given order."),
    kind: ExportKind = typer.Option(ExportKind.SESSION, "--kind", "-k", help="Export table kind."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the merged CSV here."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Merge contributor session/cost exports, dropping repeated headers and duplicate rows."""
    _configure_logging(verbose)
    missing = [str(path) for path in paths if not path.exists()]
    if missing:
        raise typer.BadParameter(f"Export file(s) not found: {', '.join(missing)}")

    table = ExportMergeService(output_path=output).merge_paths(paths, kind)
    _emit_merge_summary(table)


@TYPER_APP.command("weekly")
def weekly_command(
    config_path: Path = typer.Option(..., "--config", "-c", help="JSON report configuration file."),
    transcripts_dir: Path | None = typer.Option(
        None,
        "--transcripts-dir",
        "-t",
        help="Directory of JSONL transcripts (defaults to ~/.claude/projects).",
    ),
    pull_requests_path: Path | None = typer.Option(
        None,
        "--pull-requests",
        "-p",
        help=(
            "JSON export of `gh pr list --json number,title,body,state,author,createdAt,mergedAt,"
            "headRefName,additions,deletions,comments,reviews`."
        ),
    ),
    story_points_path: Path | None = typer.Option(
        None,
        "--story-points",
        help="JSON object of ticket -> story points; the issue tracker is queried when omitted and JIRA_* is set.",
    ),
    billing_paths: list[Path] | None = typer.Option(
        None,
        "--billing",
        "-b",
        help="Cloud billing CSV export; repeat for overlapping exports, later ones win per day.",
    ),
    session_exports: list[Path] | None = typer.Option(
        None,
        "--sessions",
        "-s",
        help="Contributor session export CSV; repeat for several contributors.",
    ),
    database_path: Path | None = typer.Option(
        None,
        "--database-path",
        "-d",
        help="DuckDB file for report tables (defaults to TICKET_METRICS_DATABASE_PATH or the XDG data dir).",
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the report as JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Join tokens, story points and pull requests into weekly metrics."""
    _configure_logging(verbose)
    config = _load_config(config_path)
    timezone = _parse_timezone(config.timezone)
    for option_name, path in (
        ("--pull-requests", pull_requests_path),
        ("--story-points", story_points_path),
    ):
        if path is not None and not path.exists():
            raise typer.BadParameter(f"{option_name} file not found: {path}")
    for path in billing_paths or []:
        if not path.exists():
            raise typer.BadParameter(f"--billing file not found: {path}")

    service = WeeklyReportService(
        weeks=config.weeks,
        transcripts=TranscriptIngestionService(
            transcripts_dir or get_default_transcripts_root(),
            weeks=config.weeks,
            timezone=timezone,
            corrections=config.ticket_corrections,
            require_root=transcripts_dir is not None,
        ),
        pull_request_loader=(lambda: load_pull_requests_json(pull_requests_path)) if pull_requests_path else None,
        story_points=_build_story_point_lookup(story_points_path, config),
        billing_entries=_load_billing(billing_paths),
        session_records=_load_session_records(session_exports),
        excluded_tickets=config.excluded_tickets,
        excluded_developers=config.excluded_developers,
        corrections=config.ticket_corrections,
        timezone=timezone,
    )
    try:
        report = service.build()
    except IngestionError as exc:
        raise typer.BadParameter(str(exc)) from exc

    _store_report(report, database_path or get_default_database_path())
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(report_to_json(report))
    _emit_report_summary(report)
    render_weekly_report(report, Console())


def _configure_logging(verbose: bool) -> None:
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
    )


def _load_config(config_path: Path) -> ReportConfig:
    try:
        return load_report_config(config_path)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _parse_timezone(timezone: str) -> ZoneInfo:
    """Parse the configured timezone into a ZoneInfo instance."""
    try:
        return ZoneInfo(timezone)
    except Exception as exc:
        raise typer.BadParameter(f"Invalid timezone: {timezone}.") from exc


def _build_story_point_lookup(story_points_path: Path | None, config: ReportConfig) -> StoryPointLookup | None:
    if story_points_path is not None:
        try:
            return StaticStoryPointLookup.from_json_file(story_points_path)
        except SourceError as exc:
            raise typer.BadParameter(str(exc)) from exc
    settings = jira_settings_from_env(config.story_points_field)
    if settings is None:
        LOGGER.warning("No story point source: pass --story-points or set JIRA_BASE_URL and JIRA_TOKEN.")
        return None
    return JiraStoryPointClient(
        base_url=settings.base_url,
        token=settings.token,
        gate=FixedIntervalGate(0.2),
        field=settings.story_points_field,
    )


def _load_billing(billing_paths: list[Path] | None) -> list[BillingEntry] | None:
    if not billing_paths:
        return None
    try:
        return load_billing_exports(billing_paths)
    except SourceError as exc:
        LOGGER.warning("Billing data unavailable: %s", exc)
        return None


def _load_session_records(session_exports: list[Path] | None) -> list[SessionRecord] | None:
    if not session_exports:
        return None
    missing = [str(path) for path in session_exports if not path.exists()]
    if missing:
        raise typer.BadParameter(f"Session export file(s) not found: {', '.join(missing)}")
    table = ExportMergeService().merge_paths(session_exports, ExportKind.SESSION)
    return [record for record in table.records if isinstance(record, SessionRecord)]


def _store_report(report: WeeklyReport, database_path: Path) -> None:
    repository: ReportRepository | None = None
    try:
        repository = ReportRepository(database_path)
        repository.ensure_schema()
        repository.replace_report(report)
    except ReportError as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        if repository is not None:
            repository.close()


def _emit_ingestion_summary(result: TranscriptIngestionResult) -> None:
    counters = result.counters
    typer.echo("\nSummary:")
    typer.echo(f"transcripts_available={int(result.transcripts_available)}")
    typer.echo(f"files_scanned={counters.files_scanned}")
    typer.echo(f"files_processed={counters.files_processed}")
    typer.echo(f"events_parsed={counters.events_parsed}")
    typer.echo(f"usage_events={counters.usage_events}")
    typer.echo(f"usage_events_unattributed={counters.usage_events_unattributed}")
    typer.echo(f"lines_skipped_malformed={counters.lines_skipped_malformed}")
    typer.echo(f"tickets={len(result.tokens_by_ticket)}")
    if counters.failed_files:
        typer.echo(f"failed_files={len(counters.failed_files)}")


def _emit_merge_summary(table: DeduplicatedTable) -> None:
    typer.echo("\nSummary:")
    typer.echo(f"sources={len(table.source_reports)}")
    typer.echo(f"rows_kept={len(table.records)}")
    typer.echo(f"duplicate_rows_skipped={table.duplicate_rows_skipped}")
    typer.echo(f"header_rows_skipped={table.header_rows_skipped}")
    typer.echo(f"malformed_rows_skipped={table.malformed_rows_skipped}")
    typer.echo(f"failed_sources={len(table.failed_sources)}")
    for report in table.failed_sources:
        typer.echo(f"schema_mismatch={report.error}")


def _emit_report_summary(report: WeeklyReport) -> None:
    summary = report.summary
    typer.echo("\nSummary:")
    typer.echo(f"weeks={len(report.rows)}")
    typer.echo(f"transcript_files_processed={summary.transcript_counters.files_processed}")
    typer.echo(f"pull_requests_loaded={summary.pull_requests_loaded}")
    typer.echo(f"tickets_linked={summary.tickets_linked}")
    typer.echo(f"tickets_joined={summary.tickets_joined}")
    typer.echo(f"tickets_excluded={summary.tickets_excluded}")
    typer.echo(f"unattributed_tokens={summary.unattributed_tokens}")
    typer.echo(f"session_rows={summary.session_rows}")


def module_cli_entry_point() -> None:
    TYPER_APP()
