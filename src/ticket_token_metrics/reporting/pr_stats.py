"""Weekly feature pull-request statistics."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, tzinfo

from ..ingestion.tickets import TICKET_CORRECTIONS
from ..sources.pull_requests import PullRequestRecord, is_feature_pull_request
from .metrics import round_half_up
from .schemas import WeeklyPullRequestStats
from .weeks import WeekWindow


def feature_pull_requests_for_week(
    prs: Iterable[PullRequestRecord],
    week: WeekWindow,
    timezone: tzinfo = UTC,
    excluded_tickets: Iterable[str] = (),
    excluded_developers: Iterable[str] = (),
    corrections: Mapping[str, str] = TICKET_CORRECTIONS,
) -> list[PullRequestRecord]:
    """Return feature pull requests created inside the week."""
    excluded_tickets = list(excluded_tickets)
    excluded_developers = list(excluded_developers)
    return [
        pr
        for pr in prs
        if pr.created_at is not None
        and week.contains(pr.created_at, timezone)
        and is_feature_pull_request(pr, excluded_tickets, excluded_developers, corrections)
    ]


def calculate_pr_stats(feature_prs: Iterable[PullRequestRecord]) -> WeeklyPullRequestStats:
    """Summarize lines changed, developers, cycle time, comments and NK/T for a week's feature PRs.

    NK/T is N feature PRs times K distinct authors over T, the average cycle
    time in days; T falls back to 1 when no PR has a cycle time.
    """
    prs = list(feature_prs)
    if not prs:
        return WeeklyPullRequestStats()

    total_lines = sum(pr.lines_changed for pr in prs)
    developers = {pr.author_login for pr in prs if pr.author_login}
    cycle_times = [days for pr in prs if (days := pr.cycle_time_days) is not None]
    avg_cycle_time = sum(cycle_times) / len(cycle_times) if cycle_times else None
    comment_counts = [count for pr in prs if (count := pr.developer_comments) is not None]

    n_changes = len(prs)
    k_developers = len(developers)
    t_days = avg_cycle_time or 1
    return WeeklyPullRequestStats(
        feature_pr_count=n_changes,
        total_lines_changed=total_lines,
        loc_per_pr=int(round_half_up(total_lines / n_changes)),
        developer_count=k_developers,
        loc_per_developer=int(round_half_up(total_lines / k_developers)) if k_developers else None,
        avg_cycle_time_days=round_half_up(avg_cycle_time, 2) if avg_cycle_time is not None else None,
        nkt=round_half_up(n_changes * k_developers / t_days, 2),
        comments_per_pr=round_half_up(sum(comment_counts) / len(comment_counts), 2) if comment_counts else None,
    )
