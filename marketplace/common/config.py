from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_APP_NAME = "marketplace-service"


class ServiceSettings(BaseSettings):
    """Settings shared by the marketplace FastAPI services."""

    app_name: str = Field(default=DEFAULT_APP_NAME)
    environment: Literal["local", "dev", "staging", "prod"] = Field(default="local")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    service_host: str = Field(default="0.0.0.0")
    service_port: int = Field(default=8000)
    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=False)
    tracing_endpoint: str | None = Field(default=None)
    tracing_protocol: Literal["http/protobuf", "grpc"] = Field(default="http/protobuf")
    tracing_insecure: bool = Field(default=True)
    tracing_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    database_url: str | None = Field(default=None)
    auto_create_schema: bool = Field(default=False)
    redis_url: str | None = Field(default=None)
    order_service_url: str | None = Field(default=None)
    order_lookup_timeout_seconds: float = Field(default=5.0, gt=0.0)
    pricing_currency: str = Field(default="IRR", min_length=3, max_length=3)
    price_cache_ttl_seconds: int = Field(default=300, ge=0)
    competitor_sample_size: int = Field(default=10, ge=1, le=100)
    competitor_price_band_percent: float = Field(default=50.0, gt=0.0)

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"), env_prefix="MARKETPLACE_", extra="ignore"
    )


@lru_cache
def get_settings() -> ServiceSettings:
    """Return cached service settings."""

    return ServiceSettings()
