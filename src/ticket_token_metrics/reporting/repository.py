"""DuckDB repository for weekly report output tables."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import duckdb

from .errors import ReportRepositoryError
from .schemas import WeeklyReport, WeeklyReportRow

LOGGER = logging.getLogger(__name__)


class ReportRepository:
    """DuckDB-backed store for the latest weekly report."""

    def __init__(self, database_path: Path) -> None:
        self._database_path = database_path
        database_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._connection = duckdb.connect(str(database_path))
        except duckdb.Error as exc:
            raise ReportRepositoryError(f"Failed to open report database {database_path}: {exc}") from exc

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._connection.close()

    def ensure_schema(self) -> None:
        """Create report tables when missing."""
        _ = self._connection.execute(
            """
CREATE TABLE IF NOT EXISTS weekly_metrics (
    week_name VARCHAR PRIMARY KEY,
    week_label VARCHAR NOT NULL,
    week_start DATE NOT NULL,
    week_end DATE NOT NULL,
    ticket_count BIGINT NOT NULL,
    total_tokens BIGINT,
    total_story_points DOUBLE NOT NULL,
    tokens_per_story_point BIGINT,
    loc_per_token DOUBLE,
    tokens_per_cycle_time BIGINT,
    cost_per_story_point DOUBLE,
    cost_per_pr DOUBLE,
    cost_per_loc DOUBLE,
    feature_pr_count BIGINT,
    total_lines_changed BIGINT,
    loc_per_pr BIGINT,
    loc_per_developer BIGINT,
    avg_cycle_time_days DOUBLE,
    nkt DOUBLE,
    comments_per_pr DOUBLE,
    total_cost DOUBLE,
    model_cost DOUBLE,
    manual_compactions BIGINT,
    auto_compactions BIGINT,
    prompts BIGINT,
    interruption_rate DOUBLE,
    tool_error_rate DOUBLE,
    avg_prompt_length BIGINT,
    top_prompt_category VARCHAR,
    avg_time_to_context_window DOUBLE,
    session_count BIGINT,
    session_cost_usd DOUBLE,
    generated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
            """
        )
        _ = self._connection.execute(
            """
CREATE TABLE IF NOT EXISTS ticket_contributions (
    week_name VARCHAR NOT NULL,
    ticket VARCHAR NOT NULL,
    pr_number BIGINT NOT NULL,
    pr_created_at TIMESTAMPTZ NOT NULL,
    tokens BIGINT,
    story_points DOUBLE,
    PRIMARY KEY (week_name, ticket)
)
            """
        )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Open a DB transaction scope."""
        _ = self._connection.execute("BEGIN TRANSACTION")
        try:
            yield
        except Exception:
            _ = self._connection.execute("ROLLBACK")
            raise
        else:
            _ = self._connection.execute("COMMIT")

    def replace_report(self, report: WeeklyReport) -> None:
        """Replace both report tables with the contents of `report`."""
        weekly_rows = [_weekly_metrics_row(row) for row in report.rows]
        contribution_rows = [
            [
                row.week.name,
                contribution.ticket,
                contribution.pr_number,
                contribution.pr_created_at,
                contribution.tokens,
                contribution.story_points,
            ]
            for row in report.rows
            for contribution in row.bucket.contributions
        ]
        with self.transaction():
            _ = self._connection.execute("DELETE FROM ticket_contributions")
            _ = self._connection.execute("DELETE FROM weekly_metrics")
            if weekly_rows:
                _ = self._connection.executemany(
                    """
INSERT INTO weekly_metrics (
    week_name, week_label, week_start, week_end,
    ticket_count, total_tokens, total_story_points,
    tokens_per_story_point, loc_per_token, tokens_per_cycle_time,
    cost_per_story_point, cost_per_pr, cost_per_loc,
    feature_pr_count, total_lines_changed, loc_per_pr, loc_per_developer,
    avg_cycle_time_days, nkt, comments_per_pr, total_cost, model_cost,
    manual_compactions, auto_compactions, prompts, interruption_rate, tool_error_rate,
    avg_prompt_length, top_prompt_category, avg_time_to_context_window,
    session_count, session_cost_usd
)
VALUES (
    ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
    ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
)
                    """,
                    weekly_rows,
                )
            if contribution_rows:
                _ = self._connection.executemany(
                    """
INSERT INTO ticket_contributions (week_name, ticket, pr_number, pr_created_at, tokens, story_points)
VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    contribution_rows,
                )
        LOGGER.info(
            "Stored %d weekly rows and %d ticket contributions in %s",
            len(weekly_rows),
            len(contribution_rows),
            self._database_path,
        )

    def fetch_weekly_metrics(self) -> list[dict[str, Any]]:
        """Return stored weekly rows ordered by week start."""
        cursor = self._connection.execute(
            """
SELECT week_name, week_label, ticket_count, total_tokens, total_story_points, tokens_per_story_point
FROM weekly_metrics
ORDER BY week_start
            """
        )
        columns = [description[0] for description in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def fetch_ticket_contributions(self, week_name: str) -> list[dict[str, Any]]:
        """Return stored contributions for one week ordered by ticket."""
        cursor = self._connection.execute(
            """
SELECT ticket, pr_number, tokens, story_points
FROM ticket_contributions
WHERE week_name = ?
ORDER BY ticket
            """,
            [week_name],
        )
        columns = [description[0] for description in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]


def _weekly_metrics_row(row: WeeklyReportRow) -> list[Any]:
    bucket = row.bucket
    metrics = row.metrics
    pr_stats = row.pr_stats
    activity = row.activity
    sessions = row.sessions
    return [
        row.week.name,
        row.week.label,
        row.week.start,
        row.week.end,
        bucket.ticket_count,
        bucket.total_tokens,
        bucket.total_story_points,
        metrics.tokens_per_story_point,
        metrics.loc_per_token,
        metrics.tokens_per_cycle_time,
        metrics.cost_per_story_point,
        metrics.cost_per_pr,
        metrics.cost_per_loc,
        pr_stats.feature_pr_count if pr_stats is not None else None,
        pr_stats.total_lines_changed if pr_stats is not None else None,
        pr_stats.loc_per_pr if pr_stats is not None else None,
        pr_stats.loc_per_developer if pr_stats is not None else None,
        pr_stats.avg_cycle_time_days if pr_stats is not None else None,
        pr_stats.nkt if pr_stats is not None else None,
        pr_stats.comments_per_pr if pr_stats is not None else None,
        row.total_cost,
        row.model_cost,
        activity.manual_compactions if activity is not None else None,
        activity.auto_compactions if activity is not None else None,
        activity.prompts if activity is not None else None,
        activity.interruption_rate if activity is not None else None,
        activity.tool_error_rate if activity is not None else None,
        activity.avg_prompt_length if activity is not None else None,
        activity.top_prompt_category if activity is not None else None,
        activity.avg_time_to_context_window if activity is not None else None,
        sessions.session_count if sessions is not None else None,
        sessions.total_cost_usd if sessions is not None else None,
    ]
