"""
Custody configuration management using pydantic-settings.

Settings are read from CUSTODY_* environment variables or a .env file.
"""

import logging
import warnings

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CUSTODY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Ledger store
    ledger_backend: str = Field(
        default="memory",
        description="Ledger store backend: 'memory' or 'sql'",
    )
    database_url: str = Field(
        default="sqlite:///./custody_ledger.db",
        description="SQLAlchemy URL used by the 'sql' ledger backend",
    )
    database_echo: bool = Field(
        default=False, description="Echo SQL statements (debugging only)"
    )

    # Evidence records
    custody_namespace: str = Field(
        default="custody_transfer",
        description="Composite-key namespace for custody transfer records",
    )
    max_field_length: int = Field(
        default=1024,
        gt=0,
        description="Maximum length of caller-supplied string fields",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the logging level name."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("ledger_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        backend = v.lower()
        if backend not in ("memory", "sql"):
            raise ValueError("LEDGER_BACKEND must be 'memory' or 'sql'")
        return backend

    @field_validator("custody_namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        if not v or "\x00" in v:
            raise ValueError("CUSTODY_NAMESPACE must be non-empty and free of NUL")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Ensure critical settings are configured in production."""
        if self.environment == "production":
            if self.database_echo:
                raise ValueError("DATABASE_ECHO must be False in production")
            if self.ledger_backend != "sql":
                raise ValueError("LEDGER_BACKEND must be 'sql' in production")
            if self.database_url.startswith("sqlite"):
                warnings.warn(
                    "DATABASE_URL points at SQLite in production",
                    UserWarning,
                    stacklevel=2,
                )
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


# Global settings instance
settings = Settings()
