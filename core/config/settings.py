# Complete settings for the position lifecycle core
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator
from enum import Enum
from typing import Dict, Optional


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class RedisSettings(BaseModel):
    url: str = "redis://localhost:6379/0"
    namespace: str = "lifecycle"


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_format: bool = True
    console_enabled: bool = True

    # Multi-channel logging
    multi_channel_enabled: bool = True
    database_level: str = "WARNING"

    # Redaction
    redact_keys: list[str] = [
        "authorization", "access_token", "refresh_token", "api_key",
        "api_secret", "password", "secret", "token",
    ]


class LifecycleSettings(BaseModel):
    """Position reconciliation configuration"""
    staleness_threshold_hours: float = Field(
        default=24.0,
        description="Hours a position may sit in a stale-able state before it expires"
    )

    @field_validator('staleness_threshold_hours')
    @classmethod
    def validate_threshold(cls, v):
        if v <= 0:
            raise ValueError("staleness_threshold_hours must be positive")
        return v


class PerformanceSettings(BaseModel):
    """Performance aggregation configuration"""
    # period name -> collection name; missing periods use "{period}_performance"
    collections: Dict[str, str] = Field(default_factory=dict)
    # IANA zone used for calendar keys; None uses the host local calendar
    timezone: Optional[str] = None
    deduplicate_liquidations: bool = Field(
        default=False,
        description="Skip liquidations whose position id was already folded into a record"
    )
    cas_max_attempts: int = 5

    @field_validator('collections')
    @classmethod
    def validate_collections(cls, v):
        allowed = {"daily", "weekly", "monthly", "yearly", "overall"}
        unknown = set(v) - allowed
        if unknown:
            raise ValueError(f"Unknown performance periods: {sorted(unknown)}")
        return v

    @field_validator('cas_max_attempts')
    @classmethod
    def validate_attempts(cls, v):
        if v < 1:
            raise ValueError("cas_max_attempts must be at least 1")
        return v


class Settings(BaseSettings):
    """Main application settings, loaded from environment variables"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    app_name: str = "Position Lifecycle"
    version: str = "1.0.0"
    environment: Environment = Environment.DEVELOPMENT

    redis: RedisSettings = RedisSettings()
    logging: LoggingSettings = LoggingSettings()
    lifecycle: LifecycleSettings = LifecycleSettings()
    performance: PerformanceSettings = PerformanceSettings()


# No global settings instance - use dependency injection instead
