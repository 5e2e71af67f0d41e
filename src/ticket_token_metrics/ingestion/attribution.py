"""Ticket attribution state machine for one transcript file."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass

from .schemas import AttributedUsage, EventType, TranscriptEvent
from .tickets import TICKET_CORRECTIONS, TicketId, extract_ticket_id, extract_workflow_ticket


@dataclass
class AttributionState:
    """Mutable attribution context; lives for exactly one transcript file."""

    current_branch_ticket: TicketId | None = None
    current_workflow_ticket: TicketId | None = None

    def resolve(self) -> TicketId | None:
        """Return the ticket for the next token-bearing event (None means unattributed)."""
        if self.current_workflow_ticket is not None:
            return self.current_workflow_ticket
        return self.current_branch_ticket


class TicketAttributor:
    """Assign every assistant usage event in a transcript to one ticket.

    Precedence is workflow command, then git branch, then unattributed. A
    workflow ticket is sticky: later branch events update the branch ticket
    but do not clear the workflow ticket.
    """

    def __init__(self, corrections: Mapping[str, str] = TICKET_CORRECTIONS) -> None:
        self._corrections = corrections
        self.state = AttributionState()

    def observe(self, event: TranscriptEvent) -> AttributedUsage | None:
        """Update state from one event and return its attributed usage, if any."""
        if event.git_branch:
            branch_ticket = extract_ticket_id(event.git_branch, self._corrections)
            if branch_ticket is not None:
                self.state.current_branch_ticket = branch_ticket

        if event.message_content:
            workflow_ticket = extract_workflow_ticket(event.message_content, self._corrections)
            if workflow_ticket is not None:
                self.state.current_workflow_ticket = workflow_ticket

        ticket = self.state.resolve()

        if event.event_type is not EventType.ASSISTANT_MESSAGE or event.usage is None:
            return None
        return AttributedUsage(
            ticket=ticket,
            usage=event.usage,
            timestamp=event.timestamp,
            session_id=event.session_id,
        )


def attribute_events(
    events: Iterable[TranscriptEvent],
    corrections: Mapping[str, str] = TICKET_CORRECTIONS,
) -> Iterator[AttributedUsage]:
    """Yield attributed usage for one file's ordered event stream."""
    attributor = TicketAttributor(corrections)
    for event in events:
        attributed = attributor.observe(event)
        if attributed is not None:
            yield attributed
