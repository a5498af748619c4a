"""Tests for settings and configuration."""

import pytest
from pydantic import ValidationError

from newsdesk.models.settings import Settings, split_csv


def test_settings_defaults(monkeypatch):
    """Test that settings have proper default values."""
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("RSS_FEEDS", raising=False)
    monkeypatch.delenv("MAX_ACTIVE_ARTICLES", raising=False)

    settings = Settings()
    assert settings.debug is False
    assert settings.log_level == "INFO"
    assert settings.openrouter_api_key is None
    assert settings.ingest_window_hours == 24
    assert settings.scoring_batch_size == 3
    assert settings.scoring_batch_delay == 2.0
    assert settings.generation_batch_size == 2
    assert settings.max_active_articles == 3
    assert settings.fact_check_threshold == 15.0
    assert settings.feed_urls == []


def test_settings_from_env(monkeypatch):
    """Test that settings are loaded from environment variables."""
    monkeypatch.setenv("OPENROUTER_API_KEY", "test_openrouter_key")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("MAX_ACTIVE_ARTICLES", "5")
    monkeypatch.setenv("RSS_FEEDS", "https://a.example.com/rss, https://b.example.com/atom")

    settings = Settings()
    assert settings.openrouter_api_key == "test_openrouter_key"
    assert settings.debug is True
    assert settings.max_active_articles == 5
    assert settings.feed_urls == [
        "https://a.example.com/rss",
        "https://b.example.com/atom",
    ]


def test_settings_case_insensitive(monkeypatch):
    """Test that environment variable names are case insensitive."""
    monkeypatch.setenv("openrouter_api_key", "lowercase_key")
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.example.com/T000")

    settings = Settings()
    assert settings.openrouter_api_key == "lowercase_key"
    assert settings.slack_webhook_url == "https://hooks.example.com/T000"


@pytest.mark.parametrize(
    "field,value",
    [
        ("scoring_batch_size", 0),
        ("ai_timeout", 1.0),
        ("ingest_window_hours", 0),
        ("max_active_articles", 0),
    ],
)
def test_settings_rejects_out_of_range(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


def test_fallback_models_parsed():
    settings = Settings(openrouter_fallback_models="a/model, b/model,,")
    assert settings.fallback_models == ["a/model", "b/model"]


def test_split_csv_handles_empty_values():
    assert split_csv(None) == []
    assert split_csv("") == []
    assert split_csv(" x , ,y ") == ["x", "y"]
