"""
Shared configuration management for bucketgate.
"""

from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="LIMITER_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    log_level: Literal["debug", "info", "warning", "error", "critical"] = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    socket_timeout: Optional[float] = Field(default=5.0, gt=0)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value):
        return value.lower() if isinstance(value, str) else value


class LimiterConfig(BaseConfig):
    """Token bucket settings shared by every cooperating process."""

    bucket_key: Optional[str] = Field(default=None, min_length=1)
    max_tokens: int = Field(default=10, ge=1)
    ttl_seconds: int = Field(default=60, ge=1)
    use_delay: bool = Field(default=True)
    min_delay_seconds: float = Field(default=0.0, ge=0)
    max_delay_seconds: float = Field(default=0.5, ge=0)

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "LimiterConfig":
        if self.min_delay_seconds > self.max_delay_seconds:
            raise ValueError("min_delay_seconds must not exceed max_delay_seconds")
        return self


def get_config(**overrides) -> LimiterConfig:
    """Get limiter configuration from the environment, with explicit overrides."""
    return LimiterConfig(**overrides)
