"""Story-point lookups from a static file or the issue tracker REST API."""

from __future__ import annotations

import logging
import math
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

import orjson

from .errors import StoryPointSourceError
from .rate_limit import FixedIntervalGate

LOGGER = logging.getLogger(__name__)
DEFAULT_STORY_POINTS_FIELD = "customfield_10004"
DEFAULT_TIMEOUT_SECONDS = 30.0


class StoryPointLookup(Protocol):
    """Anything that can resolve story points for a set of ticket ids."""

    def get_story_points(self, ticket_ids: Iterable[str]) -> dict[str, float]:
        """Return story points for the tickets that have them; others are omitted."""
        ...


def coerce_story_points(value: Any) -> float | None:
    """Return a positive finite story-point value, or None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return float(value)


class StaticStoryPointLookup:
    """Story points taken from an in-memory `{ticket: points}` mapping."""

    def __init__(self, points_by_ticket: Mapping[str, Any]) -> None:
        self._points: dict[str, float] = {}
        for ticket, raw_points in points_by_ticket.items():
            points = coerce_story_points(raw_points)
            if points is not None:
                self._points[str(ticket).upper()] = points

    @classmethod
    def from_json_file(cls, path: Path) -> StaticStoryPointLookup:
        try:
            payload = orjson.loads(path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as exc:
            raise StoryPointSourceError(f"Failed to read story points from {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise StoryPointSourceError(f"Expected a JSON object of story points in {path}.")
        return cls(payload)

    def get_story_points(self, ticket_ids: Iterable[str]) -> dict[str, float]:
        return {ticket: self._points[ticket] for ticket in ticket_ids if ticket in self._points}


class JiraStoryPointClient:
    """Fetch story points one issue at a time, paced by a fixed delay."""

    def __init__(
        self,
        base_url: str,
        token: str,
        gate: FixedIntervalGate | None = None,
        field: str = DEFAULT_STORY_POINTS_FIELD,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._gate = gate or FixedIntervalGate()
        self._field = field
        self._timeout_seconds = timeout_seconds

    def issue_url(self, ticket_id: str) -> str:
        query = urllib.parse.urlencode({"fields": f"{self._field},summary,status"})
        return f"{self._base_url}/rest/api/2/issue/{urllib.parse.quote(ticket_id)}?{query}"

    def fetch_issue(self, ticket_id: str) -> dict[str, Any]:
        """Return the decoded issue payload for one ticket."""
        request = urllib.request.Request(
            self.issue_url(ticket_id),
            headers={"Authorization": f"Bearer {self._token}", "Accept": "application/json"},
        )
        self._gate.wait()
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_seconds) as response:
                if response.status != 200:
                    raise StoryPointSourceError(f"Failed to fetch {ticket_id}: HTTP {response.status}")
                payload = orjson.loads(response.read())
        except (urllib.error.URLError, TimeoutError, orjson.JSONDecodeError) as exc:
            raise StoryPointSourceError(f"Failed to fetch {ticket_id}: {exc}") from exc
        if not isinstance(payload, dict):
            raise StoryPointSourceError(f"Unexpected payload for {ticket_id}.")
        return payload

    def get_story_points(self, ticket_ids: Iterable[str]) -> dict[str, float]:
        results: dict[str, float] = {}
        for ticket_id in ticket_ids:
            try:
                payload = self.fetch_issue(ticket_id)
            except StoryPointSourceError as exc:
                LOGGER.warning("Could not fetch story points for %s: %s", ticket_id, exc)
                continue
            fields = payload.get("fields") or {}
            points = coerce_story_points(fields.get(self._field)) if isinstance(fields, dict) else None
            if points is None:
                LOGGER.info("No story points recorded for %s.", ticket_id)
                continue
            results[ticket_id] = points
        return results
