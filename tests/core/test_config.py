from __future__ import annotations

import pytest

from lms.core.config import AppEnv, Settings, load_settings

_ENV_VARS = (
    "APP_ENV",
    "LOG_LEVEL",
    "LOG_JSON",
    "PORT",
    "DATABASE_URL",
    "REDIS_URL",
    "JWT_ACCESS_SECRET",
    "JWT_REFRESH_SECRET",
    "PAYMENT_WEBHOOK_SECRET",
    "PAYMENT_DEFAULT_CURRENCY",
    "PAYMENT_GATEWAY_TIMEOUT_SECONDS",
    "FLW_SECRET_KEY",
    "FLW_PUBLIC_KEY",
    "CORS_ORIGINS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _set_prod_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JWT_ACCESS_SECRET", "a" * 40)
    monkeypatch.setenv("JWT_REFRESH_SECRET", "r" * 40)
    monkeypatch.setenv("PAYMENT_WEBHOOK_SECRET", "w" * 40)


# ---- defaults and parsing ----


def test_defaults() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.port == 8000
    assert settings.database_url is None
    assert settings.redis_url is None
    assert settings.default_currency == "USD"
    assert settings.live_gateway_configured is False


def test_normalizes_case_and_whitespace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  TEST ")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("PAYMENT_DEFAULT_CURRENCY", "ghs")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "debug"
    assert settings.default_currency == "GHS"


def test_log_json_truthy_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_JSON", "yes")
    assert load_settings().log_json is True


def test_cors_origins_split(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")
    assert load_settings().cors_origins == ("https://a.example", "https://b.example")


def test_live_gateway_needs_both_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLW_SECRET_KEY", "sk")
    assert load_settings().live_gateway_configured is False
    monkeypatch.setenv("FLW_PUBLIC_KEY", "pk")
    assert load_settings().live_gateway_configured is True


# ---- validation ----


def test_rejects_invalid_app_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_rejects_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be"):
        load_settings()


def test_rejects_non_integer_port(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "eighty")
    with pytest.raises(ValueError, match="PORT must be an integer"):
        load_settings()


def test_rejects_bad_currency(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAYMENT_DEFAULT_CURRENCY", "DOLLARS")
    with pytest.raises(ValueError, match="3-letter code"):
        load_settings()


def test_rejects_non_positive_gateway_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "0")
    with pytest.raises(ValueError, match="must be positive"):
        load_settings()


def test_prod_requires_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    with pytest.raises(ValueError, match="must be set when APP_ENV=prod"):
        load_settings()


def test_prod_with_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    _set_prod_secrets(monkeypatch)
    settings = load_settings()
    assert settings.is_prod is True
    assert settings.webhook_secret == "w" * 40


# ---- Settings ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
    )


@pytest.mark.parametrize("env", ["dev", "test", "prod"])
def test_env_properties(env: AppEnv) -> None:
    s = _make_settings(env)
    assert (s.is_dev, s.is_test, s.is_prod) == (env == "dev", env == "test", env == "prod")


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]
