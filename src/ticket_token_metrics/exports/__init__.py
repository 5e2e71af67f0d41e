"""Merge and deduplicate contributor session/cost CSV exports."""

from .dedupe import merge_sources
from .schemas import DeduplicatedTable, ExportKind, RawTable

__all__ = ["DeduplicatedTable", "ExportKind", "RawTable", "merge_sources"]
