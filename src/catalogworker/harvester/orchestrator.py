"""
Harvest Orchestrator for Worker.

Resolves harvest sources, builds the harvester for each, and guarantees that
a given source never has two runs in flight in this process. Run-level
failures propagate as HarvestAbortedError; per-file problems are only visible
in the returned HarvestResult counters.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Set

from ..registry import get_harvester
from .config import HarvesterConfig
from .errors import HarvestAbortedError, HarvestAlreadyRunningError
from .models import HarvestResult
from .sources import HarvestSource, load_all_sources, load_source_config
from .store import CatalogStore

logger = logging.getLogger(__name__)


class HarvestOrchestrator:
    """
    Runs configured harvest sources against one catalog store.

    - Sources are immutable snapshots; each run reads the one it was given
    - At most one in-flight run per source uuid
    - Store lifecycle: a lazily created PostgreSQL store is closed by close()
    """

    def __init__(
        self,
        store: Optional[CatalogStore] = None,
        config: Optional[HarvesterConfig] = None,
        harvester_type: str = "localfilesystem",
    ):
        self.config = config or HarvesterConfig()
        self.harvester_type = harvester_type
        self._store = store
        self._owns_store = store is None
        self._running: Set[str] = set()

    def _get_store(self) -> CatalogStore:
        """Lazy PostgreSQL store when none was injected."""
        if self._store is None:
            from .postgres import PostgresCatalogStore

            self._store = PostgresCatalogStore(
                self.config.database_url,
                reindex_channel=self.config.reindex_channel,
                pool_size=self.config.database_pool_size,
                timeout=self.config.database_timeout,
            )
        return self._store

    def is_running(self, source_uuid: str) -> bool:
        return source_uuid in self._running

    async def run(
        self,
        source: HarvestSource,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> HarvestResult:
        """Run one harvest of ``source``.

        Raises:
            HarvestAlreadyRunningError: the source is already being harvested.
            HarvestAbortedError: any other run-level failure.
        """
        if source.uuid in self._running:
            raise HarvestAlreadyRunningError(
                f"Harvest of {source.name} ({source.uuid}) is already running"
            )

        self._running.add(source.uuid)
        try:
            harvester_cls = get_harvester(self.harvester_type)
            harvester = harvester_cls(
                self._get_store(),
                source,
                max_concurrency=self.config.max_concurrency,
            )
            logger.info(f"Starting harvest for {source.name}")
            return await harvester.run(cancel_event=cancel_event)
        finally:
            self._running.discard(source.uuid)

    async def run_named(self, name: str) -> HarvestResult:
        """Load ``<sources_dir>/<name>.toml`` and harvest it."""
        return await self.run(load_source_config(name, self.sources_dir()))

    async def run_all(self) -> Dict[str, Any]:
        """Run every configured source in turn.

        A fatal failure of one source is recorded and does not stop the others.
        """
        sources = load_all_sources(self.sources_dir())
        results: Dict[str, Any] = {
            "total_sources": len(sources),
            "started_at": datetime.now(timezone.utc).isoformat(),
            "sources": {},
        }

        for name, source in sources.items():
            try:
                result = await self.run(source)
                results["sources"][name] = result.to_dict()
            except HarvestAbortedError as e:
                logger.error(f"Harvest of {name} aborted: {e}")
                results["sources"][name] = {"error": str(e)}

        results["finished_at"] = datetime.now(timezone.utc).isoformat()
        return results

    def sources_dir(self) -> Optional[Path]:
        return Path(self.config.sources_dir) if self.config.sources_dir else None

    async def close(self):
        """Close the store if this orchestrator created it."""
        if self._owns_store and self._store is not None:
            await self._store.close()
            self._store = None


async def run_harvest(
    name: str,
    config: Optional[HarvesterConfig] = None,
    store: Optional[CatalogStore] = None,
) -> HarvestResult:
    """Run harvest for a single named source.

    CLI entry point.
    """
    orchestrator = HarvestOrchestrator(store=store, config=config or HarvesterConfig.from_env())
    try:
        return await orchestrator.run_named(name)
    finally:
        await orchestrator.close()


async def run_all_harvests(
    config: Optional[HarvesterConfig] = None,
    store: Optional[CatalogStore] = None,
) -> Dict[str, Any]:
    """Run harvest for all configured sources."""
    orchestrator = HarvestOrchestrator(store=store, config=config or HarvesterConfig.from_env())
    try:
        result = await orchestrator.run_all()
        return result.get("sources", {})
    finally:
        await orchestrator.close()
