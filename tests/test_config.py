import pytest

from lms_notification_agent import config as config_module
from lms_notification_agent.config import ConfigError, clamp_poll_interval, load_config

ENV_VARS = (
    "BACKEND_BASE_URL", "AUTH_TOKEN", "FETCH_TIMEOUT_SECONDS", "USER_ID", "USER_ROLE",
    "JWT_SECRET", "STORE_BACKEND", "DB_PATH", "DYNAMODB_TABLE_NOTIFICATION_STATE",
    "POLL_INTERVAL_SECONDS", "PREFERENCE_CHECK_SECONDS", "FEED_CAP", "FETCH_MAX_WORKERS",
    "FETCH_BUDGET_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "load_dotenv", lambda: None)


def test_defaults(monkeypatch):
    monkeypatch.setenv("AUTH_TOKEN", "tok")

    config = load_config()

    assert config.backend.base_url == "http://localhost:8080/api"
    assert config.store.backend == "sqlite"
    assert config.poll.interval_seconds is None
    assert config.poll.feed_cap == 40
    assert config.identity.role is None


def test_missing_token_is_an_error():
    with pytest.raises(ConfigError, match="AUTH_TOKEN"):
        load_config()


def test_overrides_and_interval_clamping(monkeypatch):
    monkeypatch.setenv("AUTH_TOKEN", "tok")
    monkeypatch.setenv("BACKEND_BASE_URL", "https://lms.example/api/")
    monkeypatch.setenv("USER_ROLE", "teacher")
    monkeypatch.setenv("STORE_BACKEND", "Memory")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "1000")

    config = load_config()

    assert config.backend.base_url == "https://lms.example/api"
    assert config.identity.role == "teacher"
    assert config.store.backend == "memory"
    assert config.poll.interval_seconds == 300


@pytest.mark.parametrize("name,value", [
    ("USER_ROLE", "parent"),
    ("STORE_BACKEND", "redis"),
    ("FEED_CAP", "0"),
])
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv("AUTH_TOKEN", "tok")
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigError):
        load_config()


def test_clamp_poll_interval():
    assert clamp_poll_interval(1) == 5
    assert clamp_poll_interval("60") == 60
    assert clamp_poll_interval("soon") == 30
