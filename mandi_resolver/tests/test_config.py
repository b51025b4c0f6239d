from __future__ import annotations

import pytest

from mandi_resolver.config import Settings, get_settings
from mandi_resolver.exceptions import ConfigurationError


def test_defaults():
    settings = get_settings()

    assert settings.environment == "test"
    assert settings.record_store_path == ":memory:"
    assert settings.fuzzy_similarity_floor == 0.6
    assert settings.auto_correct_threshold == 0.92
    assert settings.max_lookback_days == 30
    assert settings.remote_enabled is False


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_remote_enabled_with_api_key(monkeypatch):
    monkeypatch.setenv("DATA_GOV_API_KEY", "secret")
    get_settings.cache_clear()

    assert get_settings().remote_enabled is True


def test_allowed_origin_list():
    settings = Settings(ALLOWED_ORIGINS=" http://a.test, ,http://b.test ")
    assert settings.allowed_origin_list == ["http://a.test", "http://b.test"]


def test_log_level_is_upper_cased(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    get_settings.cache_clear()

    assert get_settings().log_level == "DEBUG"


@pytest.mark.parametrize(
    "name,value",
    [
        ("FUZZY_SIMILARITY_FLOOR", "1.5"),
        ("FUZZY_SIMILARITY_FLOOR", "0.95"),
        ("MAX_LOOKBACK_DAYS", "0"),
        ("DATE_RANGE_DAYS", "45"),
    ],
)
def test_invalid_environment_raises_configuration_error(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    get_settings.cache_clear()

    with pytest.raises(ConfigurationError) as exc_info:
        get_settings()

    assert exc_info.value.code == "ConfigurationError"
    assert exc_info.value.details["errors"]
