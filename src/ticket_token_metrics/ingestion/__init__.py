"""Transcript ingestion: parsing, ticket attribution and token aggregation."""

from .schemas import TokenTotals, TranscriptCounters, TranscriptIngestionResult
from .service import TranscriptIngestionService

__all__ = ["TokenTotals", "TranscriptCounters", "TranscriptIngestionResult", "TranscriptIngestionService"]
