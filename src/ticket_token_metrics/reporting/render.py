"""Rich and JSON rendering for weekly reports and ticket token totals."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict
from typing import Any

import orjson
from rich.console import Console
from rich.table import Table

from ..ingestion.schemas import TokenTotals
from ..ingestion.tickets import UNATTRIBUTED
from .schemas import WeeklyReport, WeeklyReportRow

TABLE_ROW_STYLES = ["white", "yellow"]
MISSING = "-"


def render_ticket_tokens(tokens_by_ticket: Mapping[str, TokenTotals], console: Console) -> None:
    """Render per-ticket token totals, largest first, with a grand total footer."""
    if not tokens_by_ticket:
        console.print("No token usage found in transcripts.")
        return

    table = Table(title="Tokens by Ticket", show_footer=True, footer_style="bold", title_justify="left")
    table.add_column("Ticket", footer="Grand Total", justify="left")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cache Write", justify="right")
    table.add_column("Cache Read", justify="right")
    table.add_column("Reasoning", justify="right")
    table.add_column("Total", justify="right")

    grand_total = TokenTotals()
    ordered = sorted(tokens_by_ticket.items(), key=lambda item: (item[0] == UNATTRIBUTED, -item[1].total, item[0]))
    for index, (ticket, totals) in enumerate(ordered):
        grand_total += totals
        table.add_row(
            ticket,
            f"{totals.input:,}",
            f"{totals.output:,}",
            f"{totals.cache_creation:,}",
            f"{totals.cache_read:,}",
            f"{totals.reasoning:,}",
            f"{totals.total:,}",
            style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)],
        )

    table.columns[1].footer = f"{grand_total.input:,}"
    table.columns[2].footer = f"{grand_total.output:,}"
    table.columns[3].footer = f"{grand_total.cache_creation:,}"
    table.columns[4].footer = f"{grand_total.cache_read:,}"
    table.columns[5].footer = f"{grand_total.reasoning:,}"
    table.columns[6].footer = f"{grand_total.total:,}"
    console.print(table)


def render_weekly_report(report: WeeklyReport, console: Console) -> None:
    """Render the weekly metrics table followed by the run summary."""
    table = Table(title="Weekly Ticket Metrics", title_justify="left")
    table.add_column("Week", justify="left")
    table.add_column("Period", justify="left")
    table.add_column("Tickets", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Story Points", justify="right")
    table.add_column("Tokens/SP", justify="right")
    table.add_column("PRs", justify="right")
    table.add_column("LOC/Token", justify="right")
    table.add_column("Tokens/Day", justify="right")
    table.add_column("Cost ($)", justify="right")
    table.add_column("Cost/SP", justify="right")

    for index, row in enumerate(report.rows):
        table.add_row(*_weekly_cells(row), style=TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)])
    console.print(table)
    console.print("\n")

    summary = report.summary
    summary_table = Table(title="Run Summary", show_header=False, title_justify="left")
    summary_table.add_column("Item", justify="left")
    summary_table.add_column("Value", justify="right")
    counters = summary.transcript_counters
    summary_table.add_row("Transcripts available", "yes" if summary.transcripts_available else "no")
    summary_table.add_row("Transcript files processed", f"{counters.files_processed}/{counters.files_scanned}")
    summary_table.add_row("Malformed lines skipped", f"{counters.lines_skipped_malformed:,}")
    summary_table.add_row("Pull requests loaded", f"{summary.pull_requests_loaded:,}")
    summary_table.add_row("Tickets linked to merged PRs", f"{summary.tickets_linked:,}")
    summary_table.add_row("Tickets joined to weeks", f"{summary.tickets_joined:,}")
    summary_table.add_row("Tickets excluded", f"{summary.tickets_excluded:,}")
    summary_table.add_row("Excluded tokens", f"{summary.excluded_tokens:,}")
    summary_table.add_row("Unattributed tokens", f"{summary.unattributed_tokens:,}")
    if summary.failed_sources:
        summary_table.add_row("Unavailable sources", ", ".join(summary.failed_sources))
    console.print(summary_table)


def report_to_json(report: WeeklyReport) -> bytes:
    """Serialize the report for the downstream chart renderer."""
    payload: dict[str, Any] = {
        "weeks": [_row_payload(row) for row in report.rows],
        "excluded": [
            {
                "ticket": item.ticket,
                "reason": item.reason.value,
                "tokens": item.tokens,
                "pr_number": item.pr_number,
            }
            for item in report.join.excluded
        ],
        "summary": asdict(report.summary),
    }
    return orjson.dumps(payload, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS)


def _row_payload(row: WeeklyReportRow) -> dict[str, Any]:
    bucket = row.bucket
    return {
        "week": row.week.name,
        "period": row.week.label,
        "start": row.week.start,
        "end": row.week.end,
        "total_tokens": bucket.total_tokens,
        "total_story_points": bucket.total_story_points,
        "ratio_tokens": bucket.ratio_tokens,
        "ratio_story_points": bucket.ratio_story_points,
        "tickets": [asdict(item) for item in bucket.contributions],
        "metrics": asdict(row.metrics),
        "pull_requests": asdict(row.pr_stats) if row.pr_stats is not None else None,
        "total_cost": row.total_cost,
        "model_cost": row.model_cost,
        "activity": _activity_payload(row),
        "sessions": asdict(row.sessions) if row.sessions is not None else None,
    }


def _activity_payload(row: WeeklyReportRow) -> dict[str, Any] | None:
    activity = row.activity
    if activity is None:
        return None
    payload = asdict(activity)
    del payload["session_message_times"]
    del payload["first_compaction_times"]
    payload["total_tokens"] = activity.total_tokens
    payload["interruption_rate"] = activity.interruption_rate
    payload["tool_error_rate"] = activity.tool_error_rate
    payload["avg_prompt_length"] = activity.avg_prompt_length
    payload["top_prompt_category"] = activity.top_prompt_category
    payload["avg_time_to_context_window"] = activity.avg_time_to_context_window
    return payload


def _weekly_cells(row: WeeklyReportRow) -> list[str]:
    bucket = row.bucket
    metrics = row.metrics
    return [
        row.week.name,
        row.week.label,
        str(bucket.ticket_count),
        _format_number(bucket.total_tokens),
        _format_number(bucket.total_story_points),
        _format_number(metrics.tokens_per_story_point),
        str(row.pr_stats.feature_pr_count) if row.pr_stats is not None else MISSING,
        _format_number(metrics.loc_per_token, ".8f"),
        _format_number(metrics.tokens_per_cycle_time),
        _format_number(row.model_cost, ",.2f"),
        _format_number(metrics.cost_per_story_point, ",.2f"),
    ]


def _format_number(value: float | int | None, format_spec: str = ",") -> str:
    if value is None:
        return MISSING
    if format_spec == "," and isinstance(value, float) and not value.is_integer():
        return f"{value:,.2f}"
    if format_spec == ",":
        return f"{int(value):,}"
    return format(value, format_spec)
