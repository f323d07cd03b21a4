"""Configuration management for ShardKeeper."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """ShardKeeper configuration settings."""

    # General settings
    app_name: str = "ShardKeeper"
    debug: bool = False
    log_level: str = "INFO"
    log_file: Path | None = None

    # Pool settings
    standbys_per_pool: int = Field(default=2, ge=0)
    default_replica_weight: int = Field(default=100, gt=0)
    max_promotion_lag_seconds: float = Field(default=30.0, ge=0)

    # Shard settings
    shard_name_prefix: str = "shard"

    # Fan-out settings
    max_concurrency: int = Field(default=10, ge=1)

    # Application config output (reference inventory only)
    config_path: Path | None = None

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = {
        "env_prefix": "SHARDKEEPER_",
        "env_file": ".env",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
