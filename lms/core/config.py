from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_DEV_ACCESS_SECRET = "dev-access-secret-change-me-before-deploying"
_DEV_REFRESH_SECRET = "dev-refresh-secret-change-me-before-deploying"
_DEV_WEBHOOK_SECRET = "dev_webhook_secret"


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name, str(default))
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {raw!r})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    jwt_access_secret: str = _DEV_ACCESS_SECRET
    jwt_refresh_secret: str = _DEV_REFRESH_SECRET
    jwt_access_ttl_minutes: int = 15
    jwt_refresh_ttl_days: int = 7
    webhook_secret: str = _DEV_WEBHOOK_SECRET
    default_currency: str = "USD"
    flw_secret_key: str | None = None
    flw_public_key: str | None = None
    payment_return_url: str = "http://localhost:3000"
    gateway_timeout_seconds: float = 10.0
    cors_origins: tuple[str, ...] = ("http://localhost:5173",)

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def live_gateway_configured(self) -> bool:
        return bool(self.flw_secret_key and self.flw_public_key)


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getenv_int("PORT", 8000)
    access_ttl = _getenv_int("JWT_ACCESS_TTL_MINUTES", 15)
    refresh_ttl = _getenv_int("JWT_REFRESH_TTL_DAYS", 7)
    if access_ttl <= 0 or refresh_ttl <= 0:
        raise ValueError("JWT token lifetimes must be positive")

    access_secret = _getenv("JWT_ACCESS_SECRET", "")
    refresh_secret = _getenv("JWT_REFRESH_SECRET", "")
    webhook_secret = _getenv("PAYMENT_WEBHOOK_SECRET", "")
    if app_env_raw == "prod" and not (access_secret and refresh_secret and webhook_secret):
        raise ValueError(
            "JWT_ACCESS_SECRET, JWT_REFRESH_SECRET and PAYMENT_WEBHOOK_SECRET "
            "must be set when APP_ENV=prod"
        )

    currency = _getenv("PAYMENT_DEFAULT_CURRENCY", "USD").upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ValueError(
            f"PAYMENT_DEFAULT_CURRENCY must be a 3-letter code (got {currency!r})"
        )

    cors_raw = _getenv("CORS_ORIGINS", "http://localhost:5173")
    cors_origins = tuple(o.strip() for o in cors_raw.split(",") if o.strip())

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json_raw in ("1", "true", "yes"),
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        jwt_access_secret=access_secret or _DEV_ACCESS_SECRET,
        jwt_refresh_secret=refresh_secret or _DEV_REFRESH_SECRET,
        jwt_access_ttl_minutes=access_ttl,
        jwt_refresh_ttl_days=refresh_ttl,
        webhook_secret=webhook_secret or _DEV_WEBHOOK_SECRET,
        default_currency=currency,
        flw_secret_key=_getenv("FLW_SECRET_KEY", "") or None,
        flw_public_key=_getenv("FLW_PUBLIC_KEY", "") or None,
        payment_return_url=_getenv("PAYMENT_RETURN_URL", "http://localhost:3000"),
        gateway_timeout_seconds=_getenv_float("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10.0),
        cors_origins=cors_origins,
    )
