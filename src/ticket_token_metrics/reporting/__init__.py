"""Week/ticket joining, derived metrics and report persistence."""
