"""Merge contributor exports into one table keyed by business keys."""

from __future__ import annotations

import csv
import logging
from collections.abc import Hashable, Iterable, Iterator
from pathlib import Path

from .errors import RowParseError, SchemaMismatchError
from .schema_detector import detector_for, normalize_row
from .schemas import (
    EXPORT_COLUMNS,
    DeduplicatedTable,
    ExportKind,
    RawTable,
    SchemaVersion,
    SourceReport,
    known_header_lines,
)

LOGGER = logging.getLogger(__name__)
HEADER_FIRST_CELL = "session_id"
UTF8_BOM = "\ufeff"


def merge_sources(sources: Iterable[RawTable], kind: ExportKind) -> DeduplicatedTable:
    """Merge raw export tables, dropping repeated headers and duplicate keys.

    Sources are consumed in order. A source whose header is not a known header
    for `kind` is reported and skipped entirely; a foreign header found later
    in a source stops that source, keeping the rows merged before it.
    """
    table = DeduplicatedTable(kind=kind)
    seen_keys: set[Hashable] = set()
    headers = known_header_lines(kind)
    detector = detector_for(kind)

    for source in sources:
        report = SourceReport(name=source.name)
        table.source_reports.append(report)

        data_lines = _non_blank_lines(source.lines)
        header = next(data_lines, None)
        if header is None:
            LOGGER.warning("Export source %s is empty.", source.name)
            continue
        header_line_number, header_text = header
        if header_text not in headers:
            report.error = SchemaMismatchError(
                source.name, sorted(headers), header_text, header_line_number
            )
            LOGGER.warning("%s", report.error)
            continue

        for line_number, line in data_lines:
            if line in headers:
                report.header_rows_skipped += 1
                continue
            values = _split_csv_line(line)
            if values and values[0].strip() == HEADER_FIRST_CELL:
                report.error = SchemaMismatchError(source.name, sorted(headers), line, line_number)
                LOGGER.warning("%s; remaining rows of this source skipped.", report.error)
                break

            report.rows_read += 1
            version = detector.detect(values)
            if version is None:
                report.malformed_rows_skipped += 1
                LOGGER.debug(
                    "Skipping row %d of %s: %d columns match no known layout.",
                    line_number,
                    source.name,
                    len(values),
                )
                continue
            try:
                record = normalize_row(kind, version, values)
            except RowParseError as exc:
                report.malformed_rows_skipped += 1
                LOGGER.debug("Skipping row %d of %s: %s", line_number, source.name, exc)
                continue

            if version is SchemaVersion.CURRENT:
                report.current_rows += 1
            else:
                report.legacy_rows += 1

            key = record.dedupe_key
            if key in seen_keys:
                report.duplicate_rows_skipped += 1
                continue
            seen_keys.add(key)
            table.records.append(record)
            report.rows_kept += 1

    return table


def read_raw_table(path: Path) -> RawTable:
    """Read an export file as raw lines, keeping the path as the source name."""
    with path.open("r", encoding="utf-8", newline="") as handle:
        return RawTable(name=str(path), lines=handle.read().splitlines())


def write_deduplicated_csv(table: DeduplicatedTable, output_path: Path) -> None:
    """Write merged records with the current-schema header."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, lineterminator="\n")
        writer.writerow(EXPORT_COLUMNS[table.kind][SchemaVersion.CURRENT])
        for record in table.records:
            writer.writerow(record.as_row())


def _non_blank_lines(lines: Iterable[str]) -> Iterator[tuple[int, str]]:
    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if line_number == 1:
            line = line.lstrip(UTF8_BOM)
        if line:
            yield line_number, line


def _split_csv_line(line: str) -> list[str]:
    return next(csv.reader([line]), [])
