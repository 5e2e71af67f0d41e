"""Join per-ticket tokens and story points to the week of each ticket's pull request."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, tzinfo

from ..ingestion.schemas import TokenTotals
from ..ingestion.tickets import UNATTRIBUTED
from ..sources.pull_requests import PullRequestTicketLink
from .schemas import ExcludedTicket, ExclusionReason, JoinResult, TicketContribution, WeeklyBucket
from .weeks import WeekWindow, week_for_timestamp

LOGGER = logging.getLogger(__name__)


def join_weeks(
    links: Iterable[PullRequestTicketLink],
    tokens_by_ticket: Mapping[str, TokenTotals],
    story_points: Mapping[str, float],
    weeks: Sequence[WeekWindow],
    timezone: tzinfo = UTC,
) -> JoinResult:
    """Place each linked ticket in the week containing its pull request's creation time.

    A ticket's whole token total lands in that one week regardless of when the
    tokens were spent. Tickets whose pull request falls outside every week, and
    tickets with tokens but no merged pull request, are reported as excluded.
    """
    contributions_by_week: dict[str, list[TicketContribution]] = {week.name: [] for week in weeks}
    excluded: list[ExcludedTicket] = []
    linked_tickets: set[str] = set()

    for link in links:
        ticket_key = str(link.ticket)
        if ticket_key in linked_tickets:
            continue
        linked_tickets.add(ticket_key)

        totals = tokens_by_ticket.get(ticket_key)
        tokens = totals.total if totals is not None else None
        week = week_for_timestamp(link.pr_created_at, weeks, timezone)
        if week is None:
            excluded.append(
                ExcludedTicket(
                    ticket=ticket_key,
                    reason=ExclusionReason.OUTSIDE_CONFIGURED_WEEKS,
                    tokens=tokens,
                    pr_number=link.pr_number,
                    pr_created_at=link.pr_created_at,
                )
            )
            continue
        contributions_by_week[week.name].append(
            TicketContribution(
                ticket=ticket_key,
                pr_number=link.pr_number,
                pr_created_at=link.pr_created_at,
                tokens=tokens,
                story_points=story_points.get(ticket_key),
            )
        )

    for ticket_key, totals in tokens_by_ticket.items():
        if ticket_key == UNATTRIBUTED or ticket_key in linked_tickets:
            continue
        excluded.append(
            ExcludedTicket(ticket=ticket_key, reason=ExclusionReason.NO_MERGED_PULL_REQUEST, tokens=totals.total)
        )

    unattributed = tokens_by_ticket.get(UNATTRIBUTED)
    result = JoinResult(
        buckets=[
            WeeklyBucket(week=week, contributions=tuple(contributions_by_week[week.name])) for week in weeks
        ],
        excluded=excluded,
        unattributed_tokens=unattributed.total if unattributed is not None else 0,
    )
    LOGGER.info(
        "Joined %d tickets into %d weeks; %d excluded (%d tokens).",
        len(linked_tickets) - len(result.excluded_by(ExclusionReason.OUTSIDE_CONFIGURED_WEEKS)),
        len(result.buckets),
        len(excluded),
        result.excluded_tokens,
    )
    return result
