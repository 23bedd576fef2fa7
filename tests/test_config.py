from __future__ import annotations

import pytest
from pydantic import ValidationError

from dns_dashboard.config import Settings, load_settings, store_credentials


def test_defaults_come_from_config_yml() -> None:
    settings = Settings(_env_file=None)

    assert settings.log_source == "technitium"
    assert settings.enrich_batch_size == 20
    assert settings.new_entry_highlight_ms == 2000


def test_settings_are_frozen() -> None:
    settings = Settings(_env_file=None)
    with pytest.raises(ValidationError):
        settings.gemini_api_key = "changed"


def test_store_credentials_writes_env_file_and_reloads(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("DNS_DASHBOARD_DEFAULT_LIMIT=75\n")

    settings = store_credentials(env_file, technitium_token="tok-1", gemini_api_key="key-1")

    text = env_file.read_text()
    assert "DNS_DASHBOARD_TECHNITIUM_TOKEN=tok-1" in text
    assert "DNS_DASHBOARD_DEFAULT_LIMIT=75" in text
    assert settings.technitium_token == "tok-1"
    assert settings.gemini_api_key == "key-1"
    assert settings.default_limit == 75
    assert settings.classifier_configured


def test_store_credentials_replaces_existing_value(tmp_path) -> None:
    env_file = tmp_path / ".env"
    store_credentials(env_file, technitium_token="old")

    store_credentials(env_file, technitium_token="new")

    assert env_file.read_text().count("DNS_DASHBOARD_TECHNITIUM_TOKEN") == 1
    assert load_settings(env_file).technitium_token == "new"


def test_store_credentials_requires_a_value(tmp_path) -> None:
    with pytest.raises(ValueError, match="No settings provided"):
        store_credentials(tmp_path / ".env", technitium_token="", gemini_api_key=None)
    assert not (tmp_path / ".env").exists()
