"""Per-row schema detection and normalization for contributor exports."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .errors import RowParseError
from .schemas import EXPORT_COLUMNS, CostRecord, ExportKind, ExportRecord, SchemaVersion, SessionRecord

AGENT_ID_PATTERN = re.compile(r"^agent_[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class SchemaDetector:
    """Decide which column layout one row uses, independent of its file header."""

    legacy_width: int
    current_width: int

    def detect(self, values: Sequence[str]) -> SchemaVersion | None:
        """Return the row's schema version, or None when it fits neither layout."""
        if len(values) == self.current_width and AGENT_ID_PATTERN.match(values[1].strip()):
            return SchemaVersion.CURRENT
        if len(values) == self.legacy_width:
            return SchemaVersion.LEGACY
        return None


def detector_for(kind: ExportKind) -> SchemaDetector:
    """Build the detector for an export kind from its column definitions."""
    columns = EXPORT_COLUMNS[kind]
    return SchemaDetector(
        legacy_width=len(columns[SchemaVersion.LEGACY]),
        current_width=len(columns[SchemaVersion.CURRENT]),
    )


def normalize_legacy_session(values: Sequence[str]) -> SessionRecord:
    session_id, branch, started_at, ended_at, turn_count, total_cost_usd, interrupted_turns = values
    return _session_record(
        session_id, None, branch, started_at, ended_at, turn_count, total_cost_usd, interrupted_turns
    )


def normalize_current_session(values: Sequence[str]) -> SessionRecord:
    session_id, agent_id, branch, started_at, ended_at, turn_count, total_cost_usd, interrupted_turns = values
    return _session_record(
        session_id, agent_id, branch, started_at, ended_at, turn_count, total_cost_usd, interrupted_turns
    )


def normalize_legacy_cost(values: Sequence[str]) -> CostRecord:
    session_id, turn_number, message_id, total_tokens = values
    return _cost_record(session_id, None, turn_number, message_id, total_tokens)


def normalize_current_cost(values: Sequence[str]) -> CostRecord:
    session_id, agent_id, turn_number, message_id, total_tokens = values
    return _cost_record(session_id, agent_id, turn_number, message_id, total_tokens)


NORMALIZERS: dict[tuple[ExportKind, SchemaVersion], Callable[[Sequence[str]], ExportRecord]] = {
    (ExportKind.SESSION, SchemaVersion.LEGACY): normalize_legacy_session,
    (ExportKind.SESSION, SchemaVersion.CURRENT): normalize_current_session,
    (ExportKind.COST, SchemaVersion.LEGACY): normalize_legacy_cost,
    (ExportKind.COST, SchemaVersion.CURRENT): normalize_current_cost,
}


def normalize_row(kind: ExportKind, version: SchemaVersion, values: Sequence[str]) -> ExportRecord:
    """Convert one detected row into its canonical record."""
    return NORMALIZERS[(kind, version)](values)


def _session_record(
    session_id: str,
    agent_id: str | None,
    branch: str,
    started_at: str,
    ended_at: str,
    turn_count: str,
    total_cost_usd: str,
    interrupted_turns: str,
) -> SessionRecord:
    return SessionRecord(
        session_id=_required_text(session_id, "session_id"),
        agent_id=agent_id.strip() if agent_id is not None else None,
        branch=branch.strip(),
        started_at=started_at.strip(),
        ended_at=ended_at.strip(),
        turn_count=_parse_count(turn_count, "turn_count"),
        total_cost_usd=_parse_cost(total_cost_usd),
        interrupted_turns=_parse_count(interrupted_turns, "interrupted_turns"),
    )


def _cost_record(
    session_id: str,
    agent_id: str | None,
    turn_number: str,
    message_id: str,
    total_tokens: str,
) -> CostRecord:
    return CostRecord(
        session_id=_required_text(session_id, "session_id"),
        agent_id=agent_id.strip() if agent_id is not None else None,
        turn_number=_parse_count(turn_number, "turn_number"),
        message_id=message_id.strip(),
        total_tokens=_parse_count(total_tokens, "total_tokens"),
    )


def _required_text(value: str, field_name: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise RowParseError(f"Missing {field_name}.")
    return stripped


def _parse_count(value: str, field_name: str) -> int:
    """Parse a non-negative integer column; blank means zero."""
    stripped = value.strip()
    if not stripped:
        return 0
    try:
        parsed = int(stripped)
    except ValueError as exc:
        raise RowParseError(f"Invalid {field_name}: {value!r}.") from exc
    if parsed < 0:
        raise RowParseError(f"Negative {field_name}: {value!r}.")
    return parsed


def _parse_cost(value: str) -> float:
    stripped = value.strip()
    if not stripped:
        return 0.0
    try:
        parsed = float(stripped)
    except ValueError as exc:
        raise RowParseError(f"Invalid total_cost_usd: {value!r}.") from exc
    if parsed != parsed or parsed in (float("inf"), float("-inf")):
        raise RowParseError(f"Non-finite total_cost_usd: {value!r}.")
    return parsed
