from typing import Any

from pydantic import AliasChoices, Field, ValidationError, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_BODY_LIMIT_BYTES,
    DEFAULT_BROKER_CHANNEL,
    DEFAULT_PORT,
    MIN_SECRET_KEY_LENGTH,
)


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid configuration: " + "; ".join(problems))


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env files.

    The snapshot is immutable: build it once at process entry and pass it to
    the components that need it.
    """

    # Server configuration
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("environment", "node_env"),
        description="Deployment environment (development, production, ...)",
    )
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(
        default=DEFAULT_PORT,
        ge=0,
        le=65535,
        description="Server port, 0 for any free port",
    )

    # Backing services
    database_url: str = Field(description="Database connection URL")
    redis_host: str = Field(description="Pub/sub broker URL, e.g. redis://localhost")
    broker_channel: str = Field(
        default=DEFAULT_BROKER_CHANNEL, description="Broker channel for fan-out"
    )
    broker_connect_timeout: float = Field(
        default=10.0, gt=0, description="Seconds to wait for broker connections"
    )

    # HTTP policy
    client_url: str = Field(description="The only origin allowed by CORS")
    body_limit_bytes: int = Field(
        default=DEFAULT_BODY_LIMIT_BYTES,
        gt=0,
        description="Request bodies at or above this size are rejected",
    )

    # Security configuration
    secret_key_one: str = Field(
        min_length=MIN_SECRET_KEY_LENGTH,
        description="Current session signing secret",
    )
    secret_key_two: str = Field(
        min_length=MIN_SECRET_KEY_LENGTH,
        description="Previous session signing secret, still accepted",
    )

    # Database resilience
    db_connect_timeout: float = Field(default=10.0, gt=0)
    db_health_check_interval: float = Field(default=5.0, gt=0)
    db_reconnect_base_delay: float = Field(default=0.5, gt=0)
    db_reconnect_max_delay: float = Field(default=30.0, gt=0)
    db_reconnect_max_attempts: int = Field(default=10, ge=1)
    db_circuit_reset_seconds: float = Field(default=60.0, gt=0)

    # Logging / observability
    log_level: str | None = Field(default=None, description="Override log level")
    log_to_file: bool = Field(
        default=False, description="Force logging to file even in development"
    )
    enable_telemetry: bool = Field(
        default=False, description="Enable OpenTelemetry tracing and metrics"
    )
    metrics_port: int = Field(
        default=8080, ge=1, le=65535, description="Prometheus scrape port"
    )

    # Pydantic Settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def cookie_secure(self) -> bool:
        """Session cookies are HTTPS-only everywhere except development."""
        return not self.is_development

    @computed_field  # type: ignore[prop-decorator]
    @property
    def session_keys(self) -> list[str]:
        """Signing keys, newest first."""
        return [self.secret_key_one, self.secret_key_two]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def async_database_url(self) -> str:
        """Database URL with an async driver selected."""
        url = self.database_url
        if url.startswith("sqlite:///"):
            return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url


def load_settings(**overrides: Any) -> Settings:
    """Build and validate the settings snapshot.

    Raises:
        ConfigurationError: listing every missing or invalid setting
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = []
        for error in exc.errors():
            name = ".".join(str(loc) for loc in error["loc"]).upper()
            if error["type"] == "missing":
                problems.append(f"{name} is required")
            else:
                problems.append(f"{name}: {error['msg']}")
        raise ConfigurationError(problems) from exc
