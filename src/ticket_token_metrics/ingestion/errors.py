"""Custom exceptions for transcript ingestion failures."""


class IngestionError(Exception):
    """Base exception for transcript ingestion errors."""


class TranscriptDirectoryError(IngestionError):
    """Raised when a transcript directory is required but cannot be found."""
