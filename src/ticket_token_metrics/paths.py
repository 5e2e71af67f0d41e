"""Default filesystem locations for ticket-token-metrics."""

from __future__ import annotations

import os
from pathlib import Path

APP_DIR_NAME = "ticket-token-metrics"


def get_default_database_path() -> Path:
    """Return the report DuckDB path, honouring the env override and XDG data directory conventions."""
    override = os.environ.get("TICKET_METRICS_DATABASE_PATH")
    if override:
        return Path(override).expanduser()
    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    if xdg_data_home:
        base_data_dir = Path(xdg_data_home).expanduser()
    else:
        base_data_dir = Path("~/.local/share").expanduser()
    return base_data_dir / APP_DIR_NAME / "weekly_report.duckdb"


def get_default_transcripts_root() -> Path:
    """Return the directory the coding assistant writes per-project transcripts to."""
    return Path("~/.claude/projects").expanduser()
