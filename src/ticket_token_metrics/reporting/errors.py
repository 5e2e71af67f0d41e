"""Custom exceptions for weekly report building."""


class ReportError(Exception):
    """Base exception for report building errors."""


class WeekConfigError(ReportError):
    """Raised when configured week windows are inverted or overlap."""


class ReportRepositoryError(ReportError):
    """Raised when the report database cannot be written."""
