import pytest

from src.core.config import get_settings


def _set_minimum_production_env(monkeypatch) -> None:
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg2://app:password@db:5432/chefsocial")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setenv("APP_PUBLIC_BASE_URL", "https://app.chef-social.com")
    monkeypatch.setenv("AI_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-prod")
    monkeypatch.setenv("MESSAGING_PROVIDER", "twilio")
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC-prod")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "twilio-token")
    monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+15557654321")


def test_loads_environment_values(monkeypatch) -> None:
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./data/chefsocial_test.sqlite")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/9")
    monkeypatch.setenv("SUBMISSION_DEADLINE_SECONDS", "12.5")
    monkeypatch.setenv("WORKFLOW_TTL_HOURS", "48")
    get_settings.cache_clear()

    settings = get_settings()
    assert settings.env == "development"
    assert settings.database_url.endswith("chefsocial_test.sqlite")
    assert settings.redis_url.endswith("/9")
    assert settings.submission_deadline_seconds == 12.5
    assert settings.workflow_ttl_hours == 48

    get_settings.cache_clear()


def test_production_settings_validate(monkeypatch) -> None:
    _set_minimum_production_env(monkeypatch)
    get_settings.cache_clear()

    settings = get_settings()
    assert settings.env == "production"

    get_settings.cache_clear()


def test_requires_all_mandatory_production_secrets(monkeypatch) -> None:
    _set_minimum_production_env(monkeypatch)
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="TWILIO_AUTH_TOKEN"):
        get_settings()

    get_settings.cache_clear()


def test_rejects_development_adapters_in_production(monkeypatch) -> None:
    _set_minimum_production_env(monkeypatch)
    monkeypatch.setenv("AI_PROVIDER", "mock")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="AI_PROVIDER=mock"):
        get_settings()

    monkeypatch.setenv("AI_PROVIDER", "openai")
    monkeypatch.setenv("MESSAGING_PROVIDER", "log")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="MESSAGING_PROVIDER=log"):
        get_settings()

    get_settings.cache_clear()


def test_rejects_invalid_observability_limits(monkeypatch) -> None:
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "1.2")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="SENTRY_TRACES_SAMPLE_RATE"):
        get_settings()

    get_settings.cache_clear()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("SUBMISSION_DEADLINE_SECONDS", "0"),
        ("WORKFLOW_TTL_HOURS", "0"),
        ("CLEANUP_INTERVAL_SECONDS", "0"),
        ("CLEANUP_LOCK_TTL_SECONDS", "-1"),
        ("SUGGESTION_COUNT", "6"),
        ("AI_PROVIDER", "anthropic"),
        ("MESSAGING_PROVIDER", "email"),
    ],
)
def test_rejects_out_of_range_values(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    get_settings.cache_clear()

    with pytest.raises(ValueError, match=name):
        get_settings()

    get_settings.cache_clear()
