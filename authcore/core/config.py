"""Application configuration loaded from environment variables.

Settings for the database, password and email rules, token expiry windows,
and outbound email. Uses pydantic-settings for validation and .env file
support. Components receive a Settings instance at construction; the
module-level ``settings`` is only the default.
"""

from datetime import timedelta

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_settings() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "authcore_dev_password"  # nosec B105

_MIN_TOKEN_BYTES = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "authcore"
    database_user: str = "authcore_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    # Full SQLAlchemy URL; wins over the assembled PostgreSQL URL when set
    # (e.g. "sqlite+aiosqlite:///./authcore.db" for single-node installs).
    database_url_override: str = ""

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Passwords
    # Argon2id cost: iterations, memory in KiB, lanes
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536
    argon2_parallelism: int = 4
    password_min_length: int = 12
    password_max_length: int = 72

    # Emails
    email_max_length: int = 160

    # Tokens
    token_bytes: int = _MIN_TOKEN_BYTES
    session_token_max_age_days: int = 14
    login_token_max_age_minutes: int = 15
    change_email_token_max_age_days: int = 7
    sudo_window_minutes: int = 20

    # Outbound email (Resend)
    email_from: str = "noreply@authcore.local"
    email_from_name: str = "Authcore"
    resend_api_key: SecretStr = SecretStr("")
    resend_api_url: str = "https://api.resend.com/emails"
    email_timeout_seconds: float = 10.0

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        if self.database_url_override:
            return self.database_url_override.replace("+aiosqlite", "").replace(
                "+asyncpg", ""
            )
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def session_token_max_age(self) -> timedelta:
        """How long a browser session token stays valid."""
        return timedelta(days=self.session_token_max_age_days)

    @property
    def login_token_max_age(self) -> timedelta:
        """How long a magic link stays valid."""
        return timedelta(minutes=self.login_token_max_age_minutes)

    @property
    def change_email_token_max_age(self) -> timedelta:
        """How long an email-change confirmation link stays valid."""
        return timedelta(days=self.change_email_token_max_age_days)

    @model_validator(mode="after")
    def check_settings(self) -> "Settings":
        """Validate invariants and production security requirements.

        Checks:
        - Argon2 parameters are within the ranges Argon2 accepts
        - password length bounds are ordered
        - tokens carry at least 256 bits of entropy
        - every expiry window is positive
        - production does not run with the default database password
        - production has an email provider key
        """
        if self.argon2_time_cost < 1 or self.argon2_parallelism < 1:
            msg = (
                "ARGON2_TIME_COST and ARGON2_PARALLELISM must be at least 1. "
                f"Got: {self.argon2_time_cost}, {self.argon2_parallelism}"
            )
            raise ValueError(msg)

        if self.argon2_memory_cost < 8 * self.argon2_parallelism:
            msg = (
                "ARGON2_MEMORY_COST must be at least 8 KiB per lane. "
                f"Got: {self.argon2_memory_cost}"
            )
            raise ValueError(msg)

        if self.password_min_length > self.password_max_length:
            msg = (
                "PASSWORD_MIN_LENGTH must not exceed PASSWORD_MAX_LENGTH. "
                f"Got: {self.password_min_length} > {self.password_max_length}"
            )
            raise ValueError(msg)

        if self.token_bytes < _MIN_TOKEN_BYTES:
            msg = f"TOKEN_BYTES must be at least {_MIN_TOKEN_BYTES}."
            raise ValueError(msg)

        windows = {
            "SESSION_TOKEN_MAX_AGE_DAYS": self.session_token_max_age_days,
            "LOGIN_TOKEN_MAX_AGE_MINUTES": self.login_token_max_age_minutes,
            "CHANGE_EMAIL_TOKEN_MAX_AGE_DAYS": self.change_email_token_max_age_days,
            "SUDO_WINDOW_MINUTES": self.sudo_window_minutes,
        }
        for name, value in windows.items():
            if value <= 0:
                msg = f"{name} must be positive. Got: {value}"
                raise ValueError(msg)

        if self.environment == "production":
            if (
                not self.database_url_override
                and self.database_password == _INSECURE_DEFAULT_PASSWORD
            ):
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            if not self.resend_api_key.get_secret_value():
                msg = "RESEND_API_KEY must be set in production."
                raise ValueError(msg)

        return self


settings = Settings()
