from __future__ import annotations

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = "Bulk Shipment Pipeline"
    environment: str = "local"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_origins: list[str] = Field(default_factory=list, alias="CORS_ORIGINS")

    redis_url: str = Field(default="redis://redis:6379/0", alias="REDIS_URL")
    balance_cache_ttl_seconds: int = 300
    template_key_prefix: str = "templates"

    pricing_api_base: str = Field(default="http://pricing:5000/api", alias="PRICING_API_BASE")
    insurance_api_base: str = Field(default="http://pricing:5000/api", alias="INSURANCE_API_BASE")
    ddp_api_base: str = Field(default="http://duties:5000/api", alias="DDP_API_BASE")
    balance_api_base: str = Field(default="http://billing:5000/api", alias="BALANCE_API_BASE")
    orders_api_base: str = Field(default="http://orders:5000/api", alias="ORDERS_API_BASE")
    service_api_key: str | None = Field(default=None, alias="SERVICE_API_KEY")

    http_timeout_seconds: float = 10.0
    http_retry_attempts: int = 3
    pricing_concurrency: int = 5

    default_length_cm: float = 15.0
    default_width_cm: float = 10.0
    default_height_cm: float = 1.0
    default_weight_kg: float = 0.5
    volumetric_divisor: int = 5000

    insurance_rate: str = "0.01"
    insurance_minimum_fallback: int = 100


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
