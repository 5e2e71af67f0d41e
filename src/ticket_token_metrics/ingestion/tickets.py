"""Ticket identifier parsing and extraction."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import orjson

UNATTRIBUTED = "UNATTRIBUTED"

# Known historical typos in branch names, command arguments and PR titles.
TICKET_CORRECTIONS: dict[str, str] = {
    "VIBE-516": "VIBE-216",
}

_TICKET_PATTERN = re.compile(r"([A-Z]+)-(\d+)", re.IGNORECASE)
_EXACT_TICKET_PATTERN = re.compile(r"^([A-Z]+)-(\d+)$", re.IGNORECASE)
_COMMAND_ARGS_PATTERN = re.compile(r"<command-args>([^<]+)</command-args>")


@dataclass(frozen=True, order=True)
class TicketId:
    """Issue-tracker work item identifier such as `PROJ-123`."""

    project_key: str
    number: str

    def __str__(self) -> str:
        return f"{self.project_key}-{self.number}"

    @classmethod
    def parse(cls, text: str) -> TicketId:
        """Parse an exact `KEY-NUMBER` string (case-insensitive)."""
        match = _EXACT_TICKET_PATTERN.match(text.strip())
        if match is None:
            raise ValueError(f"Invalid ticket id: {text!r}.")
        return cls(project_key=match.group(1).upper(), number=match.group(2))


def correct_ticket(ticket: TicketId, corrections: Mapping[str, str] = TICKET_CORRECTIONS) -> TicketId:
    """Apply the typo-correction table to a ticket id."""
    replacement = corrections.get(str(ticket))
    if replacement is None:
        return ticket
    return TicketId.parse(replacement)


def extract_ticket_id(text: str | None, corrections: Mapping[str, str] = TICKET_CORRECTIONS) -> TicketId | None:
    """Return the first ticket id found in free text, after typo correction."""
    if not text:
        return None
    match = _TICKET_PATTERN.search(text)
    if match is None:
        return None
    ticket = TicketId(project_key=match.group(1).upper(), number=match.group(2))
    return correct_ticket(ticket, corrections)


def extract_workflow_ticket(
    content: str | list[Any] | None,
    corrections: Mapping[str, str] = TICKET_CORRECTIONS,
) -> TicketId | None:
    """Return the ticket named in an explicit `<command-args>` workflow invocation."""
    if not content:
        return None
    if isinstance(content, str):
        content_text = content
    elif isinstance(content, list):
        content_text = orjson.dumps(content).decode("utf-8")
    else:
        return None

    args_match = _COMMAND_ARGS_PATTERN.search(content_text)
    if args_match is None:
        return None
    return extract_ticket_id(args_match.group(1), corrections)


def merge_corrections(extra: Mapping[str, str] | None) -> dict[str, str]:
    """Return the built-in correction table extended with configured entries."""
    merged = dict(TICKET_CORRECTIONS)
    if extra:
        for source, target in extra.items():
            merged[str(TicketId.parse(source))] = str(TicketId.parse(target))
    return merged
