"""Custom exceptions for external data sources."""


class SourceError(Exception):
    """Base exception for source loading errors."""


class PullRequestSourceError(SourceError):
    """Raised when pull-request metadata cannot be loaded."""


class StoryPointSourceError(SourceError):
    """Raised when story points cannot be loaded."""


class BillingSourceError(SourceError):
    """Raised when a billing export cannot be read."""
