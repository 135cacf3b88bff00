"""
DAO Governance Configuration Management

Centralized configuration using Pydantic Settings for type-safe environment
variable loading with validation.

SECURITY NOTE: The JWT secret should be loaded from a secure secrets manager
in production. Set SECRETS_BACKEND environment variable accordingly.
"""

import logging
import os
import warnings
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class SecurityWarning(UserWarning):
    """Warning for security-related issues (insecure configurations, etc.)."""

    pass


# Minimum delay between queueing a passed proposal and executing it.
MIN_EXECUTION_TIMELOCK_HOURS = 24


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ═══════════════════════════════════════════════════════════════
    # APPLICATION
    # ═══════════════════════════════════════════════════════════════
    app_name: str = Field(default="daogov", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    app_env: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API port")
    api_workers: int = Field(default=4, ge=1, description="Number of workers")
    api_prefix: str = Field(default="/api/v1", description="Route prefix for the API")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated CORS origins",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into list."""
        origins = [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
        # Never allow wildcard with credentials in production
        if self.app_env == "production" and "*" in origins:
            raise ValueError("Wildcard CORS origin not allowed in production")
        return origins

    # ═══════════════════════════════════════════════════════════════
    # NEO4J DATABASE
    # ═══════════════════════════════════════════════════════════════
    neo4j_uri: str = Field(description="Neo4j connection URI")
    neo4j_user: str = Field(default="neo4j", description="Neo4j username")
    neo4j_password: str = Field(description="Neo4j password")
    neo4j_database: str = Field(default="neo4j", description="Neo4j database name")

    # Connection Pool
    neo4j_max_connection_lifetime: int = Field(
        default=3600, description="Max connection lifetime in seconds"
    )
    neo4j_max_connection_pool_size: int = Field(
        default=50, ge=1, description="Max connection pool size"
    )
    neo4j_connection_timeout: int = Field(
        default=30, ge=1, description="Connection timeout in seconds"
    )
    neo4j_setup_schema_on_startup: bool = Field(
        default=True, description="Create constraints and indexes at startup"
    )

    # ═══════════════════════════════════════════════════════════════
    # SECURITY
    # ═══════════════════════════════════════════════════════════════
    jwt_secret_key: str = Field(description="JWT secret key")
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    jwt_access_token_expire_minutes: int = Field(
        default=30, ge=1, le=60, description="Access token expiry (max 60 min)"
    )

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        if len(v) < 32:
            raise ValueError("JWT secret key must be at least 32 characters")
        unique_chars = len(set(v))
        if unique_chars < 10:
            raise ValueError("JWT secret key must have at least 10 unique characters for sufficient entropy")
        if v == v[0] * len(v):
            raise ValueError("JWT secret key cannot be a repeated character")

        environment = os.environ.get("APP_ENV", "development")
        secrets_backend = os.environ.get("SECRETS_BACKEND", "environment")

        if environment == "production" and secrets_backend == "environment":
            logger.critical(
                "SECURITY CRITICAL: JWT secret loaded from environment variable in production!"
            )
            warnings.warn(
                "JWT secret loaded from environment variable in production. "
                "Use a secrets manager (set SECRETS_BACKEND).",
                SecurityWarning,
                stacklevel=2,
            )
        return v

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        if v not in ("HS256", "HS384", "HS512"):
            raise ValueError(f"Unsupported JWT algorithm: {v}")
        return v

    # ═══════════════════════════════════════════════════════════════
    # MONITORING
    # ═══════════════════════════════════════════════════════════════
    sentry_dsn: str | None = Field(default=None, description="Sentry DSN")
    sentry_traces_sample_rate: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Sentry traces sample rate"
    )

    # ═══════════════════════════════════════════════════════════════
    # SCHEDULER
    # ═══════════════════════════════════════════════════════════════
    scheduler_enabled: bool = Field(
        default=True, description="Enable background scheduler"
    )
    execution_poll_interval_seconds: int = Field(
        default=60, ge=1, description="Interval between execution queue passes"
    )
    execution_batch_size: int = Field(
        default=50, ge=1, le=500, description="Max due executions claimed per pass"
    )
    execution_lease_seconds: int = Field(
        default=600,
        ge=60,
        description="EXECUTING tasks untouched for this long are claimed again",
    )

    # ═══════════════════════════════════════════════════════════════
    # GOVERNANCE
    # ═══════════════════════════════════════════════════════════════
    execution_timelock_hours: int = Field(
        default=MIN_EXECUTION_TIMELOCK_HOURS,
        ge=MIN_EXECUTION_TIMELOCK_HOURS,
        description="Delay between queueing and executing a passed proposal",
    )
    execution_max_retries: int = Field(
        default=3, ge=1, le=10, description="Attempts before an execution is failed"
    )
    execution_retry_delay_seconds: int = Field(
        default=60, ge=1, description="Delay before retrying a failed execution"
    )
    default_approval_threshold: float = Field(
        default=60.0, gt=0, le=100, description="Default FOR percentage to pass"
    )
    default_voting_period_days: int = Field(
        default=7, ge=1, le=365, description="Voting period when a DAO sets none"
    )
    quorum_mode: Literal["percent_of_power", "absolute"] = Field(
        default="percent_of_power",
        description="How a proposal's quorum value is interpreted",
    )
    treasury_default_token: str = Field(
        default="USDC", description="Token used for proposal disbursements"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Singleton settings instance
settings = get_settings()
