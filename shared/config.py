"""
Shared configuration management for the tenant admission layer.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigError


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ADMISSION_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Validation authority
    api_base: str
    validate_path: str = "/validate"
    bind_device_path: str = "/bind-device"
    http_timeout_ms: int = Field(default=3000, gt=0)

    # Validation cache TTLs
    valid_ttl_s: int = Field(default=43200, gt=0)
    negative_ttl_s: int = Field(default=3600, gt=0)

    # Device limit policy
    device_session_ttl_s: int = Field(default=60, gt=0)
    max_devices_per_tenant: int = Field(default=1, ge=1)
    block_duration_s: int = Field(default=1800, gt=0)

    # Cache backend
    cache_host: str = Field(
        validation_alias=AliasChoices("cache_host", "ADMISSION_CACHE_HOST", "VALKEY_HOST"),
    )
    cache_port: int = 6379
    cache_password: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("cache_password", "ADMISSION_CACHE_PASSWORD", "VALKEY_PASSWORD"),
    )
    cache_timeout_ms: int = Field(default=1000, gt=0)
    cache_max_idle_connections: int = Field(default=8, ge=0)

    @property
    def http_timeout(self) -> float:
        """HTTP timeout in seconds."""
        return self.http_timeout_ms / 1000

    @property
    def cache_timeout(self) -> float:
        """Cache timeout in seconds."""
        return self.cache_timeout_ms / 1000


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)


def load_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Load configuration, turning missing or invalid options into ConfigError."""
    try:
        return get_config(service_name, port, **overrides)
    except PydanticValidationError as e:
        fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise ConfigError(
            f"Invalid configuration for {service_name}",
            details={"fields": fields, "errors": str(e)}
        ) from e
