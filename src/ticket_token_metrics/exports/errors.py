"""Custom exceptions for contributor export merging."""


class ExportMergeError(Exception):
    """Base exception for session/cost export merge errors."""


class SchemaMismatchError(ExportMergeError):
    """Raised when a source's header does not match a known export header."""

    def __init__(self, source_name: str, expected: list[str], actual: str, line_number: int) -> None:
        self.source_name = source_name
        self.expected = expected
        self.actual = actual
        self.line_number = line_number
        expected_text = " | ".join(expected)
        super().__init__(
            f"Header mismatch in {source_name} at line {line_number}: expected one of [{expected_text}], got {actual!r}."
        )


class RowParseError(ExportMergeError):
    """Raised when one export row cannot be normalized."""
