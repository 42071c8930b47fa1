from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevelType = Literal["ERROR", "WARNING", "INFO", "DEBUG", "CRITICAL"]


class ArmClientSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ARM_CLIENT__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: LogLevelType = "INFO"
    polling_interval: float = Field(
        default=30.0, ge=0, description="Seconds between polls without Retry-After"
    )
    max_retry_after: float = Field(
        default=60.0, gt=0, description="Upper bound applied to server Retry-After hints"
    )
    min_polling_interval: float = Field(
        default=1.0, ge=0, description="Lower bound applied to server Retry-After hints"
    )
    not_found_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive 404/410 polls after which an operation is failed",
    )
    request_timeout: float = Field(default=60.0, gt=0)
    retry_max_attempts: int = Field(default=10, ge=0)


@lru_cache
def get_settings() -> ArmClientSettings:
    return ArmClientSettings()
