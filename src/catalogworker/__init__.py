"""
CatalogWorker - filesystem harvesting for a metadata catalog.

Keeps a catalog in step with a directory tree: new files are inserted,
changed files replace their record, and records whose file disappeared are
removed (unless the source says ``nodelete``).

Usage:
    from catalogworker import HarvestOrchestrator, load_source_config
    from catalogworker.harvester import InMemoryCatalogStore

    orchestrator = HarvestOrchestrator(store=InMemoryCatalogStore())
    result = await orchestrator.run(load_source_config("national-datasets"))
"""

__version__ = "0.1.0"

from .config import WorkerConfig, get_config
from .harvester import (
    HarvestOrchestrator,
    HarvestResult,
    HarvestSource,
    LocalFilesystemHarvester,
    load_source_config,
    load_all_sources,
)
from .registry import BaseHarvester, get_harvester, list_harvesters, register

__all__ = [
    "__version__",
    # Config
    "WorkerConfig",
    "get_config",
    # Harvesting
    "HarvestOrchestrator",
    "HarvestResult",
    "HarvestSource",
    "LocalFilesystemHarvester",
    "load_source_config",
    "load_all_sources",
    # Registry
    "BaseHarvester",
    "get_harvester",
    "list_harvesters",
    "register",
]
