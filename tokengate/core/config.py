"""
Configuration helpers for the tokengate backend.

Exposes a frozen Settings object read from environment variables (public base
URL, SMTP, database URL, token TTLs, etc.) so that routers/services do not
fetch os.environ directly.
"""

from dataclasses import dataclass
from functools import lru_cache
import os

MIN_TOKEN_BYTES = 16


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    public_base_url: str
    database_url: str
    store_timeout_seconds: float
    token_bytes: int
    password_reset_ttl: int
    email_verification_ttl_seconds: int
    delivery_attempts: int
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from: str
    request_rate_limit: int
    request_rate_window_seconds: int
    log_level: str

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.smtp_from and self.smtp_port)


def _int(value: str | None, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: str | None, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./tokengate.db"),
        store_timeout_seconds=max(0.1, _float(os.getenv("STORE_TIMEOUT_SECONDS"), 5.0)),
        # Nunca abaixo de 128 bits de entropia.
        token_bytes=max(MIN_TOKEN_BYTES, _int(os.getenv("TOKEN_BYTES"), 32)),
        password_reset_ttl=_int(os.getenv("PASSWORD_RESET_TTL", "3600"), 3600),
        email_verification_ttl_seconds=_int(os.getenv("EMAIL_VERIFICATION_TTL_SECONDS", "86400"), 86400),
        delivery_attempts=max(1, _int(os.getenv("DELIVERY_ATTEMPTS"), 2)),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=_int(os.getenv("SMTP_PORT", "465"), 465),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_from=os.getenv("SMTP_FROM", os.getenv("SMTP_USER", "")),
        request_rate_limit=_int(os.getenv("REQUEST_RATE_LIMIT", "5"), 5),
        request_rate_window_seconds=_int(os.getenv("REQUEST_RATE_WINDOW_SECONDS", "300"), 300),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )
