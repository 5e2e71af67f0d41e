"""Tests for contributor export merging and deduplication."""

from __future__ import annotations

import itertools
from pathlib import Path

from ticket_token_metrics.exports.dedupe import merge_sources, read_raw_table, write_deduplicated_csv
from ticket_token_metrics.exports.schemas import CostRecord, ExportKind, RawTable, SessionRecord

SESSION_LEGACY_HEADER = "session_id,branch,started_at,ended_at,turn_count,total_cost_usd,interrupted_turns"
SESSION_CURRENT_HEADER = "session_id,agent_id,branch,started_at,ended_at,turn_count,total_cost_usd,interrupted_turns"
COST_LEGACY_HEADER = "session_id,turn_number,message_id,total_tokens"
COST_CURRENT_HEADER = "session_id,agent_id,turn_number,message_id,total_tokens"


def test_shared_row_across_contributors_is_kept_once() -> None:
    """Two exports sharing one key plus one unique row each merge to three rows."""
    alice = RawTable(
        "alice.csv",
        [SESSION_LEGACY_HEADER, "S1,foo,100,200,4,0.50,1", "S2,bar,300,400,2,0.10,0"],
    )
    bob = RawTable(
        "bob.csv",
        [SESSION_LEGACY_HEADER, "S1,foo,100,200,4,0.50,1", "S3,baz,500,600,1,0.05,0"],
    )

    table = merge_sources([alice, bob], ExportKind.SESSION)

    assert [record.session_id for record in table.records] == ["S1", "S2", "S3"]
    assert table.duplicate_rows_skipped == 1
    assert table.failed_sources == []


def test_merge_is_order_independent_and_duplicate_insensitive() -> None:
    rows = [
        "S1,foo,100,200,4,0.5,1",
        "S2,bar,300,400,2,0.1,0",
        "S3,baz,500,600,1,0.05,0",
    ]
    expected = {record.dedupe_key for record in _merge_rows(rows).records}

    for permutation in itertools.permutations(rows + rows[:2]):
        merged = _merge_rows(list(permutation))
        assert {record.dedupe_key for record in merged.records} == expected
        assert len(merged.records) == 3

    assert _merge_rows(rows).records == merge_sources(
        [RawTable("a", [SESSION_LEGACY_HEADER, *rows]), RawTable("b", [SESSION_LEGACY_HEADER, *rows])],
        ExportKind.SESSION,
    ).records


def test_schema_is_detected_per_row_and_agent_id_is_not_part_of_key() -> None:
    """A current-schema row duplicates a legacy row with the same business key."""
    source = RawTable(
        "mixed.csv",
        [
            SESSION_CURRENT_HEADER,
            "S1,agent_abc-1,foo,100,200,4,0.5,1",
            "S1,foo,100,200,4,0.5,1",
            "S2,bar,300,400,2,0.1,0",
        ],
    )

    table = merge_sources([source], ExportKind.SESSION)
    report = table.source_reports[0]

    assert table.records == [
        SessionRecord("S1", "agent_abc-1", "foo", "100", "200", 4, 0.5, 1),
        SessionRecord("S2", None, "bar", "300", "400", 2, 0.1, 0),
    ]
    assert report.current_rows == 1
    assert report.legacy_rows == 2
    assert report.duplicate_rows_skipped == 1


def test_repeated_header_lines_are_skipped() -> None:
    source = RawTable(
        "cost.csv",
        [
            COST_LEGACY_HEADER,
            "S1,1,msg_1,100",
            COST_LEGACY_HEADER,
            "",
            COST_CURRENT_HEADER,
            "S1,agent_x,2,msg_2,50",
        ],
    )

    table = merge_sources([source], ExportKind.COST)

    assert table.records == [CostRecord("S1", None, 1, "msg_1", 100), CostRecord("S1", "agent_x", 2, "msg_2", 50)]
    assert table.header_rows_skipped == 2


def test_mismatched_header_skips_only_that_source() -> None:
    good = RawTable("good.csv", [COST_LEGACY_HEADER, "S1,1,msg_1,100"])
    bad = RawTable("bad.csv", ["session_id,message_id,turn_number,total_tokens", "S2,msg_2,1,10"])
    later = RawTable("later.csv", [COST_LEGACY_HEADER, "S3,1,msg_3,30"])

    table = merge_sources([good, bad, later], ExportKind.COST)

    assert [record.session_id for record in table.records] == ["S1", "S3"]
    assert [report.name for report in table.failed_sources] == ["bad.csv"]
    error = table.failed_sources[0].error
    assert error is not None
    assert error.actual == "session_id,message_id,turn_number,total_tokens"
    assert COST_LEGACY_HEADER in error.expected
    assert error.line_number == 1


def test_foreign_header_mid_file_stops_source_but_keeps_earlier_rows() -> None:
    source = RawTable(
        "drifted.csv",
        [
            COST_LEGACY_HEADER,
            "S1,1,msg_1,100",
            "session_id,turn,message,tokens,extra",
            "S1,2,msg_2,200",
        ],
    )

    table = merge_sources([source], ExportKind.COST)

    assert [record.message_id for record in table.records] == ["msg_1"]
    assert table.source_reports[0].error is not None
    assert table.source_reports[0].error.line_number == 3


def test_malformed_rows_are_counted_and_skipped() -> None:
    source = RawTable(
        "cost.csv",
        [
            COST_LEGACY_HEADER,
            "S1,1,msg_1",
            "S1,one,msg_1,100",
            "S1,agent_x,bad,msg_2,5",
            "S1,2,msg_2,",
        ],
    )

    table = merge_sources([source], ExportKind.COST)

    assert table.records == [CostRecord("S1", None, 2, "msg_2", 0)]
    assert table.malformed_rows_skipped == 3


def test_empty_source_is_reported_without_error() -> None:
    table = merge_sources([RawTable("empty.csv", ["", "  "])], ExportKind.SESSION)

    assert table.records == []
    assert table.source_reports[0].error is None


def test_read_and_write_round_trip_through_files(tmp_path: Path) -> None:
    """Merged output uses the current header with blank agent ids for legacy rows."""
    export = tmp_path / "alice.csv"
    export.write_text(f"\ufeff{SESSION_LEGACY_HEADER}\r\nS1,\"feature,odd\",100,200,4,0.5,1\r\n", encoding="utf-8")
    output = tmp_path / "out" / "merged.csv"

    table = merge_sources([read_raw_table(export)], ExportKind.SESSION)
    write_deduplicated_csv(table, output)

    assert output.read_text(encoding="utf-8").splitlines() == [
        SESSION_CURRENT_HEADER,
        'S1,,"feature,odd",100,200,4,0.5,1',
    ]


def _merge_rows(rows: list[str]):
    return merge_sources([RawTable("rows.csv", [SESSION_LEGACY_HEADER, *rows])], ExportKind.SESSION)
