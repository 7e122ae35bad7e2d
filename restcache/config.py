"""
Configuration management for restcache.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Settings shared by the read/write engines and reference adapters."""

    model_config = SettingsConfigDict(
        env_prefix="RESTCACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Transport
    base_url: str = Field(default="")
    request_timeout: float = Field(default=10.0, gt=0)
    default_headers: Dict[str, str] = Field(default_factory=dict)

    # Reads
    stale_time: float = Field(default=60.0, ge=0)
    gc_time: float = Field(default=300.0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)
    retry_jitter: bool = Field(default=True)

    # Registry loading
    exclude_prefix: Optional[str] = Field(default="_deprecated")

    # Logging
    log_level: str = Field(default="info")
    log_format: Literal["json", "console"] = Field(default="json")


def get_settings(**overrides: Any) -> EngineSettings:
    """Build settings from the environment, applying explicit overrides."""
    return EngineSettings(**overrides)
