"""Tests for the newsdesk CLI."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from click.testing import CliRunner
from conftest import CYCLE_DATE

from newsdesk.cli import cli
from newsdesk.models.content import CycleStatus
from newsdesk.models.outcome import CycleReport, StageReport


@pytest.fixture
def runner(tmp_path, monkeypatch):
    for var in ("OPENROUTER_API_KEY", "RSS_FEEDS", "SLACK_WEBHOOK_URL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "cli.db"))
    return CliRunner()


def test_cli_group_exists(runner):
    """Test that the CLI group is properly defined."""
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Newsdesk curation pipeline CLI." in result.output
    for command in ("run", "archive", "init-db", "feeds", "health", "config"):
        assert command in result.output


def test_init_db_seeds_feeds_and_criteria(runner, monkeypatch):
    monkeypatch.setenv("RSS_FEEDS", "https://a.example.com/rss,not-a-url")

    result = runner.invoke(cli, ["init-db"])

    assert result.exit_code == 0
    assert "Database ready" in result.output
    assert "Feeds: 1" in result.output
    assert "Criteria: 3" in result.output

    # Running it again changes nothing.
    again = runner.invoke(cli, ["init-db"])
    assert "Feeds: 1" in again.output
    assert "Criteria: 3" in again.output


def test_feeds_add_and_list(runner):
    result = runner.invoke(
        cli, ["feeds", "--add", "https://news.example.com/feed.xml", "--name", "Example"]
    )

    assert result.exit_code == 0
    assert "Feed 1: Example" in result.output
    assert "1. Example" in result.output


def test_feeds_add_rejects_invalid_url(runner):
    result = runner.invoke(cli, ["feeds", "--add", "not-a-url"])
    assert result.exit_code == 2
    assert "invalid feed URL" in result.output


def test_config_hides_secrets(runner, monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-secret-value")

    result = runner.invoke(cli, ["config"])

    assert result.exit_code == 0
    assert "Newsdesk Configuration" in result.output
    assert "OpenRouter: ✅ Configured" in result.output
    assert "Slack: ❌ Missing" in result.output
    assert "sk-secret-value" not in result.output


def test_run_requires_api_key(runner):
    result = runner.invoke(cli, ["run"])
    assert result.exit_code == 1


def test_run_rejects_bad_date(runner, monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "key")
    result = runner.invoke(cli, ["run", "--date", "2026-13-40"])
    assert result.exit_code == 2


def test_run_prints_report(runner, monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "key")
    report = CycleReport(
        cycle_date=CYCLE_DATE,
        cycle_id=1,
        status=CycleStatus.DRAFT,
        stages=[StageReport(stage="scoring")],
        active_articles=3,
        subject_line="Rockets and rivers",
    )
    orchestrator = Mock()
    orchestrator.run_cycle = AsyncMock(return_value=report)

    with patch(
        "newsdesk.core.orchestrator.CycleOrchestrator.from_settings",
        return_value=orchestrator,
    ):
        result = runner.invoke(cli, ["run", "--date", "2026-10-17"])

    assert result.exit_code == 0
    orchestrator.run_cycle.assert_awaited_once_with(CYCLE_DATE)
    assert "Cycle 2026-10-17 - draft" in result.output
    assert "scoring: 0 ok, 0 skipped, 0 failed" in result.output
    assert "Active articles: 3" in result.output
    assert "Subject: Rockets and rivers" in result.output


def test_run_failure_exits_nonzero(runner, monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "key")
    orchestrator = Mock()
    orchestrator.run_cycle = AsyncMock(side_effect=RuntimeError("boom"))

    with patch(
        "newsdesk.core.orchestrator.CycleOrchestrator.from_settings",
        return_value=orchestrator,
    ):
        result = runner.invoke(cli, ["run"])

    assert result.exit_code == 1


def test_archive_unknown_cycle_fails(runner):
    result = runner.invoke(cli, ["archive", "999"])
    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_archive_stats_on_empty_archive(runner):
    result = runner.invoke(cli, ["archive-stats"])
    assert result.exit_code == 0
    assert "Articles: 0" in result.output
