"""Tests for ticket id parsing and extraction."""

from __future__ import annotations

import pytest

from ticket_token_metrics.ingestion.tickets import (
    TicketId,
    extract_ticket_id,
    extract_workflow_ticket,
    merge_corrections,
)


def test_extract_ticket_id_is_case_insensitive_and_upper_cases() -> None:
    assert extract_ticket_id("feature/vibe-123-add-search") == TicketId("VIBE", "123")
    assert str(extract_ticket_id("Fix VIBE-7: typo")) == "VIBE-7"


def test_extract_ticket_id_returns_none_without_ticket() -> None:
    assert extract_ticket_id("main") is None
    assert extract_ticket_id("") is None
    assert extract_ticket_id(None) is None


def test_known_typo_is_corrected_everywhere() -> None:
    """VIBE-516 is remapped to VIBE-216 in branches and workflow arguments."""
    assert extract_ticket_id("feature/VIBE-516-report") == TicketId("VIBE", "216")
    assert extract_workflow_ticket("<command-args>vibe-516</command-args>") == TicketId("VIBE", "216")


def test_extract_workflow_ticket_reads_command_args_in_text_and_blocks() -> None:
    """List content is serialised before the marker is searched."""
    blocks = [{"type": "text", "text": "<command-name>/start</command-name><command-args>VIBE-200</command-args>"}]

    assert extract_workflow_ticket(blocks) == TicketId("VIBE", "200")
    assert extract_workflow_ticket("please look at VIBE-200") is None
    assert extract_workflow_ticket("<command-args>no ticket here</command-args>") is None


def test_ticket_id_parse_rejects_partial_matches() -> None:
    assert TicketId.parse(" proj-9 ") == TicketId("PROJ", "9")
    with pytest.raises(ValueError):
        TicketId.parse("PROJ-9-extra")


def test_merge_corrections_extends_builtin_table() -> None:
    corrections = merge_corrections({"abc-1": "abc-2"})

    assert corrections["ABC-1"] == "ABC-2"
    assert corrections["VIBE-516"] == "VIBE-216"
    assert extract_ticket_id("ABC-1", corrections) == TicketId("ABC", "2")


def test_leading_zeros_are_kept_in_ticket_numbers() -> None:
    """VIBE-0216 and VIBE-216 are different work items and must not collapse."""
    ticket = extract_ticket_id("feature/VIBE-0216-import")

    assert ticket == TicketId("VIBE", "0216")
    assert str(ticket) == "VIBE-0216"
    assert str(TicketId.parse("vibe-007")) == "VIBE-007"
    assert extract_ticket_id("feature/VIBE-0216-import") != extract_ticket_id("feature/VIBE-216-import")
