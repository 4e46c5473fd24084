from requestweave.config import ClientSettings, get_settings


def test_defaults():
    settings = ClientSettings(_env_file=None)

    assert settings.base_url == "http://localhost:8000"
    assert settings.cache_ttl_seconds == 300.0
    assert settings.max_retries == 3
    assert settings.retry_initial_delay == 1.0
    assert settings.retry_max_delay == 10.0
    assert settings.retry_network_errors is False
    assert settings.dedup_stale_after_seconds == 60.0
    assert settings.default_headers["Content-Type"] == "application/json"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("REQUESTWEAVE_BASE_URL", "https://backend.internal")
    monkeypatch.setenv("REQUESTWEAVE_MAX_RETRIES", "5")
    monkeypatch.setenv("requestweave_cache_enabled", "false")
    monkeypatch.setenv("REQUESTWEAVE_CACHE_EXCLUDE_PATHS", '["/users"]')

    settings = ClientSettings(_env_file=None)

    assert settings.base_url == "https://backend.internal"
    assert settings.max_retries == 5
    assert settings.cache_enabled is False
    assert settings.cache_exclude_paths == ["/users"]


def test_get_settings_is_cached():
    get_settings.cache_clear()
    assert get_settings() is get_settings()
    get_settings.cache_clear()
