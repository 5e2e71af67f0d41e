"""Tests for report configuration loading."""

from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from ticket_token_metrics.config import ConfigError, jira_settings_from_env, load_report_config, parse_report_config
from ticket_token_metrics.paths import get_default_database_path

WEEKS = [
    {"name": "Week 1", "start": "2025-10-07", "end": "2025-10-10", "label": "Oct 7-10"},
    {"name": "Week 2", "start": "2025-10-13", "end": "2025-10-17", "label": "Oct 13-17"},
]


def test_load_report_config_normalizes_tickets_and_corrections(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_bytes(
        orjson.dumps(
            {
                "weeks": WEEKS,
                "excluded_tickets": ["vibe-3"],
                "excluded_developers": ["contractor"],
                "ticket_corrections": {"vibe-999": "vibe-99"},
                "timezone": "America/Los_Angeles",
            }
        )
    )

    config = load_report_config(path)

    assert [week.name for week in config.weeks] == ["Week 1", "Week 2"]
    assert config.excluded_tickets == ["VIBE-3"]
    assert config.ticket_corrections == {"VIBE-516": "VIBE-216", "VIBE-999": "VIBE-99"}
    assert config.timezone == "America/Los_Angeles"
    assert config.story_points_field == "customfield_10004"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"weeks": []},
        {"weeks": [WEEKS[1], WEEKS[0]]},
        {"weeks": WEEKS, "excluded_tickets": ["not a ticket"]},
        {"weeks": WEEKS, "excluded_developers": "bob"},
        {"weeks": WEEKS, "ticket_corrections": {"VIBE-1": "oops"}},
    ],
)
def test_parse_report_config_rejects_invalid_payloads(payload: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        parse_report_config(payload)


def test_load_report_config_reports_unreadable_files(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_report_config(broken)
    with pytest.raises(ConfigError):
        load_report_config(tmp_path / "missing.json")


def test_jira_settings_require_both_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JIRA_BASE_URL", "https://jira.example.com")
    monkeypatch.delenv("JIRA_TOKEN", raising=False)
    assert jira_settings_from_env() is None

    monkeypatch.setenv("JIRA_TOKEN", "secret")
    settings = jira_settings_from_env("customfield_1")
    assert settings is not None
    assert settings.story_points_field == "customfield_1"


def test_default_database_path_prefers_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TICKET_METRICS_DATABASE_PATH", str(tmp_path / "custom.duckdb"))
    assert get_default_database_path() == tmp_path / "custom.duckdb"

    monkeypatch.delenv("TICKET_METRICS_DATABASE_PATH")
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    assert get_default_database_path() == tmp_path / "data" / "ticket-token-metrics" / "weekly_report.duckdb"
