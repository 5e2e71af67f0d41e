"""Service orchestration for contributor export merging."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from .dedupe import merge_sources, read_raw_table, write_deduplicated_csv
from .schemas import DeduplicatedTable, ExportKind, RawTable

LOGGER = logging.getLogger(__name__)


class ExportMergeService:
    """Reads export files, merges them and optionally writes the merged CSV."""

    def __init__(self, output_path: Path | None = None) -> None:
        self._output_path = output_path

    def merge_paths(self, paths: Sequence[Path], kind: ExportKind) -> DeduplicatedTable:
        """Merge export files in the given order; unreadable files are reported and skipped."""
        sources: list[RawTable] = []
        for path in paths:
            try:
                sources.append(read_raw_table(path))
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.error("Failed to read export %s: %s", path, exc)

        table = merge_sources(sources, kind)
        for report in table.source_reports:
            if report.error is not None:
                LOGGER.warning("Export %s excluded after line %d.", report.name, report.error.line_number)
            LOGGER.info(
                "Export %s: %d rows read, %d kept, %d duplicates, %d headers, %d malformed.",
                report.name,
                report.rows_read,
                report.rows_kept,
                report.duplicate_rows_skipped,
                report.header_rows_skipped,
                report.malformed_rows_skipped,
            )

        if self._output_path is not None:
            write_deduplicated_csv(table, self._output_path)
            LOGGER.info("Wrote %d %s rows to %s", len(table.records), kind.value, self._output_path)
        return table
