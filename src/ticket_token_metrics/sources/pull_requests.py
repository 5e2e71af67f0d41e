"""Pull-request metadata loading, caching and ticket linking."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import orjson

from ..ingestion.parser import parse_optional_timestamp
from ..ingestion.tickets import TICKET_CORRECTIONS, TicketId, extract_ticket_id
from .errors import PullRequestSourceError

LOGGER = logging.getLogger(__name__)
MERGED_STATE = "MERGED"
DEPENDENCY_UPDATE_MARKERS: tuple[str, ...] = (
    "update dependency",
    "update prisma",
    "update vitest",
    "update node.js",
    "update github",
    "update actions/",
)
BOT_COMMENTER_MARKERS: tuple[str, ...] = ("coderabbitai", "github-actions", "dependabot", "renovate")


@dataclass(frozen=True)
class PullRequestRecord:
    """Pull-request metadata as exported by `gh pr list --json`."""

    number: int
    title: str
    body: str
    state: str
    author_login: str | None
    author_is_bot: bool
    created_at: datetime | None
    merged_at: datetime | None
    head_branch: str | None
    additions: int = 0
    deletions: int = 0
    developer_comments: int | None = None

    @property
    def is_merged(self) -> bool:
        return self.state.upper() == MERGED_STATE

    @property
    def lines_changed(self) -> int:
        return self.additions + self.deletions

    @property
    def cycle_time_days(self) -> float | None:
        """Return merged minus created in fractional days."""
        if self.created_at is None or self.merged_at is None:
            return None
        return (self.merged_at - self.created_at).total_seconds() / 86400


@dataclass(frozen=True)
class PullRequestTicketLink:
    """A merged pull request and the ticket its title or body names."""

    ticket: TicketId
    pr_number: int
    pr_created_at: datetime
    merged_at: datetime | None
    head_branch: str | None


def parse_pull_request(raw: Mapping[str, Any]) -> PullRequestRecord:
    """Build a record from one `gh` JSON object."""
    try:
        number = int(raw["number"])
    except (KeyError, TypeError, ValueError) as exc:
        raise PullRequestSourceError(f"Pull request without a valid number: {raw!r}.") from exc

    author = raw.get("author") or {}
    if not isinstance(author, dict):
        author = {}
    return PullRequestRecord(
        number=number,
        title=str(raw.get("title") or ""),
        body=str(raw.get("body") or ""),
        state=str(raw.get("state") or ""),
        author_login=author.get("login"),
        author_is_bot=bool(author.get("is_bot", False)),
        created_at=parse_optional_timestamp(raw.get("createdAt")),
        merged_at=parse_optional_timestamp(raw.get("mergedAt")),
        head_branch=raw.get("headRefName"),
        additions=_non_negative_int(raw.get("additions")),
        deletions=_non_negative_int(raw.get("deletions")),
        developer_comments=count_developer_comments(raw),
    )


def count_developer_comments(raw: Mapping[str, Any]) -> int | None:
    """Count human comments plus human reviews with a body; None when neither list was exported."""
    comments = raw.get("comments")
    reviews = raw.get("reviews")
    if not isinstance(comments, list) and not isinstance(reviews, list):
        return None

    total = 0
    for comment in comments if isinstance(comments, list) else []:
        if isinstance(comment, dict) and _is_developer(comment.get("author")):
            total += 1
    for review in reviews if isinstance(reviews, list) else []:
        if not isinstance(review, dict) or not _is_developer(review.get("author")):
            continue
        body = review.get("body")
        if isinstance(body, str) and body.strip():
            total += 1
    return total


def load_pull_requests_json(path: Path) -> list[PullRequestRecord]:
    """Read a JSON array of pull requests; entries without a number are skipped."""
    try:
        payload = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as exc:
        raise PullRequestSourceError(f"Failed to read pull requests from {path}: {exc}") from exc
    if not isinstance(payload, list):
        raise PullRequestSourceError(f"Expected a JSON array of pull requests in {path}.")

    records: list[PullRequestRecord] = []
    for raw in payload:
        if not isinstance(raw, dict):
            LOGGER.warning("Skipping non-object pull request entry in %s.", path)
            continue
        try:
            records.append(parse_pull_request(raw))
        except PullRequestSourceError as exc:
            LOGGER.warning("%s", exc)
    LOGGER.info("Loaded %d pull requests from %s", len(records), path)
    return records


class PullRequestCache:
    """Hold one pull-request listing until it expires."""

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: list[PullRequestRecord] | None = None
        self._expires_at = 0.0

    def get_or_load(self, loader: Callable[[], Sequence[PullRequestRecord]]) -> list[PullRequestRecord]:
        """Return cached records, calling `loader` when empty or expired."""
        now = self._clock()
        if self._records is None or now >= self._expires_at:
            self._records = list(loader())
            self._expires_at = now + self._ttl_seconds
            LOGGER.debug("Pull request cache refreshed with %d records.", len(self._records))
        return list(self._records)

    def invalidate(self) -> None:
        self._records = None
        self._expires_at = 0.0


def pull_request_ticket(
    pr: PullRequestRecord,
    corrections: Mapping[str, str] = TICKET_CORRECTIONS,
) -> TicketId | None:
    """Return the ticket named in the title, falling back to the body."""
    return extract_ticket_id(pr.title, corrections) or extract_ticket_id(pr.body, corrections)


def build_ticket_links(
    prs: Iterable[PullRequestRecord],
    corrections: Mapping[str, str] = TICKET_CORRECTIONS,
) -> dict[TicketId, PullRequestTicketLink]:
    """Link each ticket to the first merged pull request that names it."""
    links: dict[TicketId, PullRequestTicketLink] = {}
    for pr in prs:
        if not pr.is_merged or pr.created_at is None:
            continue
        ticket = pull_request_ticket(pr, corrections)
        if ticket is None or ticket in links:
            continue
        links[ticket] = PullRequestTicketLink(
            ticket=ticket,
            pr_number=pr.number,
            pr_created_at=pr.created_at,
            merged_at=pr.merged_at,
            head_branch=pr.head_branch,
        )
    return links


def is_dependency_update(title: str | None) -> bool:
    if not title:
        return False
    lowered = title.lower()
    return any(marker in lowered for marker in DEPENDENCY_UPDATE_MARKERS)


def is_excluded_developer(author_login: str | None, excluded_developers: Iterable[str]) -> bool:
    """Match excluded developer names as case-insensitive substrings of the login."""
    if not author_login:
        return False
    login = author_login.lower()
    return any(excluded.lower() in login for excluded in excluded_developers if excluded)


def is_feature_pull_request(
    pr: PullRequestRecord,
    excluded_tickets: Iterable[str] = (),
    excluded_developers: Iterable[str] = (),
    corrections: Mapping[str, str] = TICKET_CORRECTIONS,
) -> bool:
    """Return True for merged, human-authored feature work."""
    if not pr.is_merged or pr.author_is_bot:
        return False
    if is_dependency_update(pr.title):
        return False
    excluded = {ticket.upper() for ticket in excluded_tickets}
    ticket = pull_request_ticket(pr, corrections)
    if ticket is not None and str(ticket) in excluded:
        return False
    return not is_excluded_developer(pr.author_login, excluded_developers)


def _is_developer(author: Any) -> bool:
    if not isinstance(author, dict) or author.get("is_bot"):
        return False
    login = str(author.get("login") or "").lower()
    return not any(marker in login for marker in BOT_COMMENTER_MARKERS)


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(value, 0)
