from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    certificate_renderer_url: str | None
    certificate_base_url: str
    jwt_public_key_pem: str | None
    reconcile_batch_size: int
    reconcile_interval_seconds: int

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")
    batch_raw = _getenv("RECONCILE_BATCH_SIZE", "50")
    interval_raw = _getenv("RECONCILE_INTERVAL_SECONDS", "300")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        reconcile_batch_size = int(batch_raw)
    except ValueError:
        raise ValueError(
            f"RECONCILE_BATCH_SIZE must be an integer (got {batch_raw!r})"
        ) from None
    if reconcile_batch_size < 1:
        raise ValueError(
            f"RECONCILE_BATCH_SIZE must be positive (got {reconcile_batch_size})"
        )

    try:
        reconcile_interval_seconds = int(interval_raw)
    except ValueError:
        raise ValueError(
            f"RECONCILE_INTERVAL_SECONDS must be an integer (got {interval_raw!r})"
        ) from None
    if reconcile_interval_seconds < 1:
        raise ValueError(
            f"RECONCILE_INTERVAL_SECONDS must be positive (got {reconcile_interval_seconds})"
        )

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None
    renderer_url = _getenv("CERTIFICATE_RENDERER_URL", "") or None
    jwt_public_key_pem = _getenv("JWT_PUBLIC_KEY_PEM", "") or None
    certificate_base_url = _getenv(
        "CERTIFICATE_BASE_URL", "/v1/certificates"
    ).rstrip("/")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        certificate_renderer_url=renderer_url,
        certificate_base_url=certificate_base_url,
        jwt_public_key_pem=jwt_public_key_pem,
        reconcile_batch_size=reconcile_batch_size,
        reconcile_interval_seconds=reconcile_interval_seconds,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
