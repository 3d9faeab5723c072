import pytest

from analysis_engine.config import Settings, load_settings

ENV_VARS = (
    "DEMO_MODE", "ANTHROPIC_API_KEY", "REDIS_URL", "CACHE_BACKEND", "MAX_ATTEMPTS",
    "CACHE_TTL_HOURS", "ALLOWED_ORIGINS", "PORT", "DEMO_DELAY_MIN_MS", "DEMO_DELAY_MAX_MS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr("analysis_engine.config.load_dotenv", lambda *a, **k: False)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment():
    s = load_settings()
    assert s.demo_mode
    assert s.cache_backend == "none"
    assert s.max_attempts == 3
    assert s.cache_ttl_hours == 24
    assert s.strict_requests_per_minute == 5
    assert s.allowed_origins == ("http://localhost:5173",)
    assert s.port == 3001


def test_key_enables_live_mode_unless_forced(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    assert not load_settings().demo_mode
    monkeypatch.setenv("DEMO_MODE", "true")
    assert load_settings().demo_mode


def test_redis_url_selects_redis_backend(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    assert load_settings().cache_backend == "redis"
    monkeypatch.setenv("CACHE_BACKEND", "memory")
    assert load_settings().cache_backend == "memory"


def test_redis_backend_without_url_disables_cache(monkeypatch):
    monkeypatch.setenv("CACHE_BACKEND", "redis")
    assert load_settings().cache_backend == "none"


def test_bad_values_fall_back(monkeypatch):
    monkeypatch.setenv("CACHE_TTL_HOURS", "a day")
    monkeypatch.setenv("MAX_ATTEMPTS", "0")
    monkeypatch.setenv("CACHE_BACKEND", "mongo")
    s = load_settings()
    assert s.cache_ttl_hours == 24
    assert s.max_attempts == 1
    assert s.cache_backend == "none"


def test_origins_and_delays_are_parsed(monkeypatch):
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example ,")
    monkeypatch.setenv("DEMO_DELAY_MIN_MS", "0")
    monkeypatch.setenv("DEMO_DELAY_MAX_MS", "10")
    s = load_settings()
    assert s.allowed_origins == ("https://a.example", "https://b.example")
    assert s.demo_delay_ms == (0, 10)


def test_settings_are_frozen():
    with pytest.raises(Exception):
        Settings().port = 1
