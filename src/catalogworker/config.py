"""
Configuration for CatalogWorker.

Uses Pydantic for validation and environment loading.
"""

import os
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .harvester.config import HarvesterConfig


class WorkerConfig(BaseSettings):
    """Master configuration for CatalogWorker.

    Loads from environment variables (exact names, no prefix) and ``.env``.
    """

    model_config = SettingsConfigDict(
        env_prefix="",  # No prefix, use exact names
        env_file=".env",
        extra="ignore",
    )

    # Service identity
    service_name: str = Field(default="catalogworker")
    service_version: str = Field(default="0.1.0")
    log_level: str = Field(default="INFO")

    # Temporal (for harvest workflows)
    temporal_host: str = Field(default="localhost:7233")
    task_queue: str = Field(default="harvest-tasks")

    # Harvester
    harvester: HarvesterConfig = Field(default_factory=HarvesterConfig)

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        """Load configuration from environment variables."""
        return cls(
            service_name=os.getenv("SERVICE_NAME", "catalogworker"),
            service_version=os.getenv("SERVICE_VERSION", "0.1.0"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            temporal_host=os.getenv("TEMPORAL_HOST", "localhost:7233"),
            task_queue=os.getenv("HARVEST_TASK_QUEUE", "harvest-tasks"),
            harvester=HarvesterConfig.from_env(),
        )


@lru_cache(maxsize=1)
def get_config() -> WorkerConfig:
    """Get the process-wide configuration (loaded once)."""
    return WorkerConfig.from_env()
