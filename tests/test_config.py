"""
Tests for `config.py`.
"""

from __future__ import annotations

import pytest

from lead_pipeline.config import Settings, load_settings

_VARIABLES = (
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "LEAD_PIPELINE_STORAGE_TIMEOUT",
    "LEAD_PIPELINE_ERROR_REPORT_LIMIT",
    "LEAD_PIPELINE_PROGRESS_INTERVAL",
    "LEAD_PIPELINE_SYNTHETIC_ID_ATTEMPTS",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    # setenv first so teardown also removes whatever load_dotenv exported.
    for name in _VARIABLES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return tmp_path / "missing.env"


def test_defaults(clean_env):
    settings = load_settings(clean_env)

    assert settings.supabase_url is None
    assert settings.storage_timeout_seconds == 10.0
    assert settings.error_report_limit == 10
    assert settings.progress_interval == 100


def test_values_from_env_file(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "SUPABASE_URL=https://example.supabase.co\n"
        "SUPABASE_KEY=service-key\n"
        "LEAD_PIPELINE_ERROR_REPORT_LIMIT=25\n",
        encoding="utf-8",
    )

    settings = load_settings(env_file)

    assert settings.require_credentials() == ("https://example.supabase.co", "service-key")
    assert settings.error_report_limit == 25


def test_invalid_number_is_rejected(clean_env, monkeypatch):
    monkeypatch.setenv("LEAD_PIPELINE_PROGRESS_INTERVAL", "often")
    with pytest.raises(RuntimeError, match="LEAD_PIPELINE_PROGRESS_INTERVAL"):
        load_settings(clean_env)


def test_missing_credentials_are_named():
    with pytest.raises(RuntimeError, match="SUPABASE_URL"):
        Settings(supabase_url=None, supabase_key="key").require_credentials()


@pytest.mark.parametrize(
    "overrides",
    [
        {"progress_interval": 0},
        {"error_report_limit": -1},
        {"synthetic_id_attempts": 0},
        {"storage_timeout_seconds": 0},
    ],
)
def test_non_positive_limits_are_rejected(overrides):
    with pytest.raises(ValueError):
        Settings(supabase_url=None, supabase_key=None, **overrides)
