# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the
student provisioning engine. Settings are loaded from environment
variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational storage configuration.

    The storage must support multi-statement transactions, SAVEPOINTs and
    INSERT ... ON CONFLICT ... RETURNING (PostgreSQL in production).

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        url_override: Full async URL; takes precedence over the components.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        echo: Log every SQL statement.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
        populate_by_name=True,
    )

    user: str = "provisioning"
    password: SecretStr = SecretStr("provisioning_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "provisioning"
    url_override: str | None = Field(default=None, validation_alias="DATABASE_URL")
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.url_override:
            return self.url_override
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured URL targets SQLite."""
        return self.url.startswith("sqlite")


class ProvisioningSettings(BaseSettings):
    """Account provisioning configuration.

    Attributes:
        login_email_base_domain: Suffix appended to the establishment slug
            when no explicit login domain is configured.
        guardian_domain_suffix: Locale-specific suffix forced on guardian
            login domains (e.g. ".dz"). None keeps the domain as is.
        email_suffix_max_attempts: Upper bound for the numeric login suffix.
        code_padding: Width of the zero-padded sequence in human codes.
        default_rollover_month: Academic year rollover month used when an
            establishment does not define one.
        temporary_password_length: Length of generated one-time passwords.
        bcrypt_rounds: Cost factor for password hashing.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROVISIONING_",
        extra="ignore",
    )

    login_email_base_domain: str = "school.local"
    guardian_domain_suffix: str | None = None
    email_suffix_max_attempts: int = Field(default=1000, ge=2)
    code_padding: int = Field(default=5, ge=1)
    default_rollover_month: int = Field(default=9, ge=1, le=12)
    temporary_password_length: int = Field(default=12, ge=8)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)


class StudentImportSettings(BaseSettings):
    """Bulk import ceilings.

    Attributes:
        max_rows: Maximum number of data rows accepted in one payload.
        max_bytes: Maximum raw payload size in bytes.
    """

    model_config = SettingsConfigDict(
        env_prefix="STUDENT_IMPORT_",
        extra="ignore",
    )

    max_rows: int = 500
    max_bytes: int = 1_572_864


class InvitationSettings(BaseSettings):
    """Account invitation configuration.

    Attributes:
        activation_base_url: Frontend page that consumes activation tokens.
        token_ttl_hours: Lifetime of an activation token.
    """

    model_config = SettingsConfigDict(
        env_prefix="INVITATION_",
        extra="ignore",
    )

    activation_base_url: str = "http://localhost:3000/first-login"
    token_ttl_hours: int = 72


class SMTPSettings(BaseSettings):
    """SMTP configuration for the email invitation channel.

    Attributes:
        host: SMTP server hostname. Email is disabled when unset.
        port: SMTP server port.
        username: SMTP authentication username.
        password: SMTP authentication password.
        use_tls: Use STARTTLS.
        from_email: Sender email address.
        from_name: Sender display name.
    """

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        extra="ignore",
    )

    host: str | None = None
    port: int = 587
    username: str | None = None
    password: SecretStr | None = None
    use_tls: bool = True
    from_email: str | None = None
    from_name: str = "School Administration"

    @property
    def is_configured(self) -> bool:
        """Check that every value required to send mail is present."""
        return all([self.host, self.username, self.password, self.from_email])


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        db: Database settings.
        provisioning: Account provisioning settings.
        student_import: Bulk import settings.
        invitation: Invitation settings.
        smtp: SMTP settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    provisioning: ProvisioningSettings = Field(default_factory=ProvisioningSettings)
    student_import: StudentImportSettings = Field(default_factory=StudentImportSettings)
    invitation: InvitationSettings = Field(default_factory=InvitationSettings)
    smtp: SMTPSettings = Field(default_factory=SMTPSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with development defaults.
        """
        if self.environment == "production":
            if self.db.is_sqlite:
                raise ValueError(
                    "SQLite cannot be used in production. Set DATABASE_URL "
                    "to a PostgreSQL URL."
                )
            if "localhost" in self.invitation.activation_base_url:
                raise ValueError(
                    "Invitation activation URL points to localhost. "
                    "Set INVITATION_ACTIVATION_BASE_URL."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing or when environment variables change.
    """
    get_settings.cache_clear()
