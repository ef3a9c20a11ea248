"""
Harvester module for filesystem metadata harvesting.

Components:
- walker: lazy directory traversal (flat or recursive)
- classifier: schema detection, identity and timestamp extraction
- reconcile: insert / update / unchanged decision per document
- privileges: wholesale privilege and category replacement
- sweep: removal of records whose files disappeared
- localfs: the filesystem harvester wiring the above together
- orchestrator / scheduler: running configured sources
- sources: harvest source config loading
"""

from .config import HarvesterConfig
from .errors import HarvestAbortedError, HarvestError
from .models import HarvestResult, Outcome, OutcomeKind
from .sources import HarvestSource, load_source_config, load_all_sources
from .store import CatalogStore, InMemoryCatalogStore
from .localfs import LocalFilesystemHarvester
from .orchestrator import HarvestOrchestrator, run_harvest, run_all_harvests
from .scheduler import HarvesterScheduler

__all__ = [
    "HarvesterConfig",
    "HarvestAbortedError",
    "HarvestError",
    "HarvestResult",
    "Outcome",
    "OutcomeKind",
    "HarvestSource",
    "load_source_config",
    "load_all_sources",
    "CatalogStore",
    "InMemoryCatalogStore",
    "LocalFilesystemHarvester",
    "HarvestOrchestrator",
    "run_harvest",
    "run_all_harvests",
    "HarvesterScheduler",
]
