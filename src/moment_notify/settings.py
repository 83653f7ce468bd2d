"""Application configuration using Pydantic Settings.

This module centralizes runtime configuration for the notification core. Values
can be provided via environment variables (preferred) or fall back to the
defaults below. A ``Settings`` instance is intended to be retrieved via
``get_settings`` which caches the object for reuse across the process.

Environment variable prefix: ``MOMENT_NOTIFY_`` (e.g. ``MOMENT_NOTIFY_EVENT_BUS_ADAPTER``).
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Only accepted while ``environment`` is ``development``
DEVELOPMENT_JWT_SECRET = "development_jwt_secret_at_least_32_chars_long"
MIN_JWT_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Runtime application settings.

    Attributes map directly to environment variables using the ``MOMENT_NOTIFY_``
    prefix (case-insensitive). For example, ``kafka_brokers`` <- ``MOMENT_NOTIFY_KAFKA_BROKERS``.
    """

    # Server settings
    host: str = Field(
        default="0.0.0.0",
        description="Host interface to bind the server",
    )  # fmt: skip
    port: int = Field(
        default=8080,
        description="Server port",
    )  # fmt: skip
    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Application log level",
    )
    reload: bool = Field(
        default=False,
        description="Enable auto-reload in development",
    )  # fmt: skip
    sql_log: bool = Field(
        default=False,
        description="Enable SQL query logging",
    )  # fmt: skip
    log_json: bool = Field(
        default=False,
        description="Write logs as JSON lines for log shippers",
    )  # fmt: skip
    database_url: str | None = Field(
        default=None,
        description="Database connection string",
    )  # fmt: skip

    environment: Literal["development", "production"] = Field(
        default="development",
        description="Deployment environment; production refuses the development JWT secret",
    )  # fmt: skip

    # Authentication
    jwt_secret: str = Field(
        default=DEVELOPMENT_JWT_SECRET,
        description="Secret used to verify bearer tokens on sockets and HTTP",
    )  # fmt: skip
    jwt_algorithm: str = Field(
        default="HS256",
        description="Algorithm used to verify bearer tokens",
    )  # fmt: skip

    # Event bus
    event_bus_adapter: Literal["memory", "kafka"] = Field(
        default="memory",
        description="Event bus backend: in-process 'memory' or broker-backed 'kafka'",
    )  # fmt: skip
    kafka_brokers: str = Field(
        default="localhost:9092",
        description="Comma-separated list of Kafka bootstrap servers",
    )  # fmt: skip
    kafka_client_id: str = Field(
        default="moment-app",
        description="Kafka client id",
    )  # fmt: skip
    kafka_group_id: str = Field(
        default="moment-consumers",
        description="Kafka consumer group",
    )  # fmt: skip
    kafka_namespace: str = Field(
        default="moment",
        description="Topic namespace: topics are {namespace}.{aggregateType}.{category}",
    )  # fmt: skip
    kafka_security_protocol: Literal["PLAINTEXT", "SSL", "SASL_PLAINTEXT", "SASL_SSL"] = Field(
        default="PLAINTEXT",
        description="Kafka security protocol",
    )  # fmt: skip
    kafka_sasl_mechanism: str | None = Field(
        default=None,
        description="SASL mechanism (PLAIN, SCRAM-SHA-256, SCRAM-SHA-512)",
    )  # fmt: skip
    kafka_sasl_username: str | None = Field(default=None, description="SASL username")
    kafka_sasl_password: str | None = Field(default=None, description="SASL password")
    kafka_connect_attempts: int = Field(
        default=5,
        description="Connection attempts before the Kafka adapter gives up",
    )  # fmt: skip

    # Push delivery
    push_enabled: bool = Field(
        default=True,
        description="Send mobile push notifications through the provider",
    )  # fmt: skip
    expo_base_url: str = Field(
        default="https://exp.host",
        description="Base URL of the Expo push service",
    )  # fmt: skip
    expo_access_token: str | None = Field(
        default=None,
        description="Optional Expo access token for enhanced push security",
    )  # fmt: skip
    push_request_timeout: float = Field(
        default=10.0,
        description="Timeout in seconds for push provider requests",
    )  # fmt: skip

    # Background jobs
    scheduler_enabled: bool = Field(
        default=True,
        description="Run the maintenance scheduler in this process (one designated instance)",
    )  # fmt: skip
    sweep_interval_seconds: int = Field(
        default=60,
        description="Interval between scheduled event sweeps",
    )  # fmt: skip
    receipt_check_interval_seconds: int = Field(
        default=300,
        description="Interval between push receipt reconciliation runs",
    )  # fmt: skip
    revalidation_interval_seconds: int = Field(
        default=3600,
        description="Interval between suspected token revalidation sweeps",
    )  # fmt: skip

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | None) -> str:
        """Normalize and validate log level."""
        if v is None:
            return "INFO"

        v_upper = str(v).upper()

        allowed = {"TRACE", "DEBUG", "INFO", "WARNING", "ERROR"}
        if v_upper not in allowed:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {', '.join(sorted(allowed))}")

        return v_upper

    @model_validator(mode="after")
    def require_jwt_secret_outside_development(self) -> "Settings":
        """Outside development the JWT secret must be set explicitly and be at least 32 characters."""
        if self.environment == "development":
            return self
        if self.jwt_secret == DEVELOPMENT_JWT_SECRET:
            raise ValueError("MOMENT_NOTIFY_JWT_SECRET must be set outside development")
        if len(self.jwt_secret) < MIN_JWT_SECRET_LENGTH:
            raise ValueError(f"MOMENT_NOTIFY_JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters")
        return self

    @property
    def kafka_broker_list(self) -> list[str]:
        """Kafka bootstrap servers as a list."""
        return [broker.strip() for broker in self.kafka_brokers.split(",") if broker.strip()]

    model_config = SettingsConfigDict(
        env_prefix="MOMENT_NOTIFY_",  # Prefix for env vars
        case_sensitive=False,
        extra="ignore",  # Ignore unexpected env vars
        env_file=".env",  # Optional .env loading (if present)
        env_file_encoding="utf-8",
    )


@lru_cache
def get_settings() -> Settings:
    """Return the cached ``Settings`` instance.

    The first invocation reads environment variables / .env file; subsequent
    calls reuse the same object to ensure consistent config.
    """

    return Settings()


__all__ = ["Settings", "get_settings"]
