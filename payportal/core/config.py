"""Application configuration."""

from decimal import Decimal
from os import getenv

from pydantic import BaseModel

from payportal.services.errors import ConfigurationError


class Settings(BaseModel):
    """Runtime settings for the application."""

    app_name: str = "payportal API"
    app_env: str = getenv("APP_ENV", "dev")
    debug: bool = getenv("DEBUG", "0") == "1"
    database_url: str = getenv("DATABASE_URL", "sqlite:///./payportal.db")

    jwt_secret_key: str = getenv("JWT_SECRET_KEY", "")
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = getenv("JWT_ISSUER", "payportal")
    jwt_audience: str = getenv("JWT_AUDIENCE", "payment-portal")

    session_idle_timeout_seconds: int = int(getenv("SESSION_IDLE_TIMEOUT_SECONDS", "600"))
    session_absolute_timeout_seconds: int = int(getenv("SESSION_ABSOLUTE_TIMEOUT_SECONDS", "1800"))
    session_renewal_threshold_seconds: int = int(getenv("SESSION_RENEWAL_THRESHOLD_SECONDS", "120"))
    session_cookie_secure: bool = getenv("SESSION_COOKIE_SECURE", "1") == "1"

    reauth_window_seconds: int = int(getenv("REAUTH_WINDOW_SECONDS", "300"))
    max_reauth_failures: int = int(getenv("MAX_REAUTH_FAILURES", "5"))
    payment_step_up_threshold: Decimal = Decimal(getenv("PAYMENT_STEP_UP_THRESHOLD", "10000"))
    payment_amount_ceiling: Decimal = Decimal(getenv("PAYMENT_AMOUNT_CEILING", "999999.99"))

    audit_sink_path: str = getenv("AUDIT_SINK_PATH", "logs/audit.log")
    audit_sign_key: str = getenv("AUDIT_SIGN_KEY", "")
    field_enc_key: str = getenv("FIELD_ENC_KEY", "")

    rate_limit_auth_requests: int = int(getenv("RATE_LIMIT_AUTH_REQUESTS", "10"))
    rate_limit_auth_window_seconds: int = int(getenv("RATE_LIMIT_AUTH_WINDOW_SECONDS", "900"))
    rate_limit_payments_requests: int = int(getenv("RATE_LIMIT_PAYMENTS_REQUESTS", "20"))
    rate_limit_payments_window_seconds: int = int(getenv("RATE_LIMIT_PAYMENTS_WINDOW_SECONDS", "3600"))
    rate_limit_general_requests: int = int(getenv("RATE_LIMIT_GENERAL_REQUESTS", "100"))
    rate_limit_general_window_seconds: int = int(getenv("RATE_LIMIT_GENERAL_WINDOW_SECONDS", "900"))


settings: Settings = Settings()


def validate_settings(current: Settings) -> None:
    """Abort startup on settings that would make every request fail."""
    if not current.jwt_secret_key:
        raise ConfigurationError("JWT_SECRET_KEY must be set")
    if current.session_idle_timeout_seconds > current.session_absolute_timeout_seconds:
        raise ConfigurationError("Idle timeout cannot exceed the absolute session timeout")
    if current.session_renewal_threshold_seconds >= current.session_idle_timeout_seconds:
        raise ConfigurationError("Renewal threshold must be shorter than the idle timeout")
    field_key = current.field_enc_key.strip()
    if not field_key:
        if current.app_env == "production":
            raise ConfigurationError("FIELD_ENC_KEY must be set in production")
        return
    try:
        key_bytes = bytes.fromhex(field_key)
    except ValueError as exc:
        raise ConfigurationError("FIELD_ENC_KEY must be hex encoded") from exc
    if len(key_bytes) != 32:
        raise ConfigurationError("FIELD_ENC_KEY must decode to 32 bytes")
