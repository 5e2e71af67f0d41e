"""Tests for per-row export schema detection."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from ticket_token_metrics.exports.errors import RowParseError
from ticket_token_metrics.exports.schema_detector import detector_for, normalize_row
from ticket_token_metrics.exports.schemas import ExportKind, SchemaVersion, parse_export_timestamp


def test_detect_uses_width_and_agent_probe() -> None:
    detector = detector_for(ExportKind.COST)

    assert detector.detect(["S1", "agent_ab_9", "1", "m", "5"]) is SchemaVersion.CURRENT
    assert detector.detect(["S1", "1", "m", "5"]) is SchemaVersion.LEGACY
    assert detector.detect(["S1", "not-an-agent", "1", "m", "5"]) is None
    assert detector.detect(["S1", "1", "m"]) is None


def test_normalizers_converge_on_the_same_record_shape() -> None:
    legacy = normalize_row(ExportKind.SESSION, SchemaVersion.LEGACY, ["S1", "main", "1", "2", "3", "0.25", "1"])
    current = normalize_row(
        ExportKind.SESSION, SchemaVersion.CURRENT, ["S1", "agent_z", "main", "1", "2", "3", "0.25", "1"]
    )

    assert legacy.dedupe_key == current.dedupe_key
    assert legacy.agent_id is None
    assert current.agent_id == "agent_z"


@pytest.mark.parametrize(
    "values",
    [
        ["", "1", "m", "5"],
        ["S1", "-1", "m", "5"],
        ["S1", "1", "m", "1.5"],
    ],
)
def test_normalize_rejects_bad_cost_rows(values: list[str]) -> None:
    with pytest.raises(RowParseError):
        normalize_row(ExportKind.COST, SchemaVersion.LEGACY, values)


def test_normalize_rejects_non_finite_cost() -> None:
    with pytest.raises(RowParseError):
        normalize_row(ExportKind.SESSION, SchemaVersion.LEGACY, ["S1", "main", "1", "2", "3", "nan", "0"])


def test_parse_export_timestamp_accepts_epoch_seconds_millis_and_iso() -> None:
    expected = datetime(2025, 11, 10, 12, 0, tzinfo=UTC)

    assert parse_export_timestamp("1762776000") == expected
    assert parse_export_timestamp("1762776000000") == expected
    assert parse_export_timestamp("2025-11-10T12:00:00Z") == expected
    assert parse_export_timestamp("soon") is None
    assert parse_export_timestamp("") is None
