"""Report configuration loaded from a JSON file and the environment."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson

from .ingestion.tickets import TicketId, merge_corrections
from .reporting.errors import WeekConfigError
from .reporting.weeks import WeekWindow, parse_week, validate_weeks
from .sources.story_points import DEFAULT_STORY_POINTS_FIELD

LOGGER = logging.getLogger(__name__)
JIRA_BASE_URL_ENV = "JIRA_BASE_URL"
JIRA_TOKEN_ENV = "JIRA_TOKEN"


class ConfigError(Exception):
    """Raised when the report configuration file is unusable."""


@dataclass(frozen=True)
class JiraSettings:
    base_url: str
    token: str
    story_points_field: str = DEFAULT_STORY_POINTS_FIELD


@dataclass(frozen=True)
class ReportConfig:
    """Validated report configuration.

    Attributes:
        weeks: Ordered, non-overlapping reporting weeks.
        excluded_tickets: Tickets whose pull requests are not feature work.
        excluded_developers: Login substrings whose pull requests are ignored.
        ticket_corrections: Built-in typo corrections plus configured ones.
        story_points_field: Issue field holding story points.
        timezone: IANA timezone name week boundaries are evaluated in.
    """

    weeks: list[WeekWindow]
    excluded_tickets: list[str] = field(default_factory=list)
    excluded_developers: list[str] = field(default_factory=list)
    ticket_corrections: dict[str, str] = field(default_factory=lambda: merge_corrections(None))
    story_points_field: str = DEFAULT_STORY_POINTS_FIELD
    timezone: str = "UTC"


def load_report_config(path: Path) -> ReportConfig:
    """Read and validate a JSON report configuration file."""
    try:
        payload = orjson.loads(path.read_bytes())
    except OSError as exc:
        raise ConfigError(f"Failed to read config {path}: {exc}") from exc
    except orjson.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Config {path} must contain a JSON object.")
    return parse_report_config(payload)


def parse_report_config(payload: Mapping[str, Any]) -> ReportConfig:
    raw_weeks = payload.get("weeks")
    if not isinstance(raw_weeks, list) or not raw_weeks:
        raise ConfigError("Config must define a non-empty `weeks` list.")
    try:
        weeks = [parse_week(raw_week) for raw_week in raw_weeks]
        validate_weeks(weeks)
    except WeekConfigError as exc:
        raise ConfigError(str(exc)) from exc

    raw_corrections = payload.get("ticket_corrections") or {}
    if not isinstance(raw_corrections, dict):
        raise ConfigError("`ticket_corrections` must be an object of ticket -> ticket.")
    try:
        corrections = merge_corrections({str(key): str(value) for key, value in raw_corrections.items()})
    except ValueError as exc:
        raise ConfigError(f"Invalid ticket correction: {exc}") from exc

    return ReportConfig(
        weeks=weeks,
        excluded_tickets=[_normalize_ticket(ticket) for ticket in _string_list(payload, "excluded_tickets")],
        excluded_developers=_string_list(payload, "excluded_developers"),
        ticket_corrections=corrections,
        story_points_field=str(payload.get("story_points_field") or DEFAULT_STORY_POINTS_FIELD),
        timezone=str(payload.get("timezone") or "UTC"),
    )


def jira_settings_from_env(story_points_field: str = DEFAULT_STORY_POINTS_FIELD) -> JiraSettings | None:
    """Return issue-tracker settings when both env vars are set."""
    base_url = os.environ.get(JIRA_BASE_URL_ENV)
    token = os.environ.get(JIRA_TOKEN_ENV)
    if not base_url or not token:
        return None
    return JiraSettings(base_url=base_url, token=token, story_points_field=story_points_field)


def _string_list(payload: Mapping[str, Any], key: str) -> list[str]:
    value = payload.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"`{key}` must be a list of strings.")
    return list(value)


def _normalize_ticket(value: str) -> str:
    try:
        return str(TicketId.parse(value))
    except ValueError as exc:
        raise ConfigError(f"Invalid excluded ticket {value!r}.") from exc
