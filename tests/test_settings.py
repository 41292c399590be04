from pathlib import Path

import pytest
from pydantic import ValidationError

from settings import Settings


def test_settings_loads_with_required_fields():
    s = Settings(openai_api_key="sk-test")
    assert s.openai_api_key == "sk-test"
    assert s.data_dir == Path("./data")
    assert s.model == "gpt-4o"
    assert s.token_batch_interval_ms == 500
    assert s.stage_timeout_seconds is None
    assert s.email_batch_size == 5
    assert s.max_email_leads == 10
    assert s.sender_name == "Bella"


def test_settings_derived_paths():
    s = Settings(openai_api_key="sk-test", data_dir=Path("/tmp/campaigns-data"))
    assert s.campaigns_dir == Path("/tmp/campaigns-data/campaigns")
    assert s.leads_file == Path("/tmp/campaigns-data/leads.json")


def test_intervals_in_seconds():
    s = Settings(openai_api_key="sk-test", token_batch_interval_ms=250)
    assert s.token_batch_interval == 0.25


def test_settings_missing_api_key_raises(monkeypatch):
    monkeypatch.delenv("CAMPAIGN_OPENAI_API_KEY", raising=False)
    with pytest.raises(ValidationError) as exc_info:
        Settings(_env_file=None)
    assert "openai_api_key" in str(exc_info.value)


@pytest.mark.parametrize("field", [
    "token_batch_interval_ms", "email_batch_size", "max_email_leads",
    "lead_preview_limit",
])
def test_counts_and_intervals_must_be_positive(field):
    with pytest.raises(ValidationError):
        Settings(openai_api_key="sk-test", **{field: 0})


def test_stage_timeout_must_be_positive_when_set():
    with pytest.raises(ValidationError):
        Settings(openai_api_key="sk-test", stage_timeout_seconds=0)
    assert Settings(openai_api_key="sk-test", stage_timeout_seconds=30).stage_timeout_seconds == 30


def test_settings_env_prefix(monkeypatch):
    monkeypatch.setenv("CAMPAIGN_OPENAI_API_KEY", "sk-from-env")
    monkeypatch.setenv("CAMPAIGN_EMAIL_BATCH_SIZE", "3")
    s = Settings()
    assert s.openai_api_key == "sk-from-env"
    assert s.email_batch_size == 3
