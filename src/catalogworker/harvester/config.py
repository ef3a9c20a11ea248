"""
Harvester configuration.

Contains settings for:
- Catalog database (PostgreSQL) and reindex notifications
- Harvest source definitions directory
- Per-run concurrency
- Interval scheduler
"""

from typing import Optional
from pydantic import BaseModel, Field


class SchedulerConfig(BaseModel):
    """Configuration for the interval scheduler."""

    enabled: bool = Field(default=True, description="Schedule sources with `every` set")
    default_every: Optional[int] = Field(
        default=None, description="Interval for sources without `every`, None=skip"
    )
    misfire_grace_time: int = Field(
        default=300, description="Seconds a late run may still start"
    )


class HarvesterConfig(BaseModel):
    """Master configuration for Harvester module."""

    # Database
    database_url: str = Field(default="", description="PostgreSQL URL for the catalog")
    reindex_channel: str = Field(
        default="catalog_reindex", description="NOTIFY channel for the search indexer"
    )
    database_pool_size: int = Field(default=5, ge=1, description="Maximum pooled connections")
    database_timeout: float = Field(
        default=30.0, gt=0, description="Seconds to wait for a pooled connection"
    )

    # Harvest sources
    sources_dir: str = Field(default="", description="Path to harvest source TOML files")

    # Run tuning
    max_concurrency: int = Field(
        default=1, ge=1, description="Files reconciled concurrently per run"
    )

    # Sub-configs
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    @classmethod
    def from_env(cls) -> "HarvesterConfig":
        """Load from environment variables."""
        import os

        default_every = os.getenv("HARVEST_DEFAULT_EVERY_SEC")

        return cls(
            database_url=os.getenv("HARVEST_DATABASE_URL", "")
            or os.getenv("DATABASE_URL", ""),
            reindex_channel=os.getenv("HARVEST_REINDEX_CHANNEL", "catalog_reindex"),
            database_pool_size=int(os.getenv("HARVEST_DATABASE_POOL_SIZE", "5")),
            database_timeout=float(os.getenv("HARVEST_DATABASE_TIMEOUT_SEC", "30")),
            sources_dir=os.getenv("HARVEST_SOURCES_DIR", ""),
            max_concurrency=int(os.getenv("HARVEST_MAX_CONCURRENCY", "1")),
            scheduler=SchedulerConfig(
                enabled=os.getenv("HARVEST_SCHEDULER_ENABLED", "true").lower() == "true",
                default_every=int(default_every) if default_every else None,
                misfire_grace_time=int(os.getenv("HARVEST_MISFIRE_GRACE_SEC", "300")),
            ),
        )
