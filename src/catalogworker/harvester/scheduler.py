"""
Scheduler for filesystem harvests.

Uses APScheduler to run each configured source periodically. Every source is
its own job with ``max_instances=1``, so a run that outlasts its interval is
never overlapped by the next one (the deletion sweep relies on a single
in-flight run per source).
"""

import asyncio
import logging
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import HarvesterConfig
from .errors import HarvestAbortedError
from .orchestrator import HarvestOrchestrator
from .sources import HarvestSource, load_all_sources

logger = logging.getLogger(__name__)


class HarvesterScheduler:
    """Scheduler for periodic harvest runs."""

    def __init__(
        self,
        config: HarvesterConfig,
        orchestrator: Optional[HarvestOrchestrator] = None,
    ):
        self.config = config
        self.orchestrator = orchestrator or HarvestOrchestrator(config=config)
        self.scheduler = AsyncIOScheduler()
        self.history: Dict[str, dict] = {}

    @staticmethod
    def job_id(source: HarvestSource) -> str:
        return f"harvest:{source.uuid}"

    def interval_for(self, source: HarvestSource) -> Optional[int]:
        return source.every or self.config.scheduler.default_every

    def schedule(self, source: HarvestSource) -> bool:
        """Add (or replace) the job for ``source``. False if it has no interval."""
        every = self.interval_for(source)
        if not every:
            logger.debug(f"Source {source.name} has no interval, not scheduled")
            return False

        self.scheduler.add_job(
            self.run_source,
            trigger=IntervalTrigger(seconds=every),
            args=[source],
            id=self.job_id(source),
            name=f"Harvest {source.name}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.config.scheduler.misfire_grace_time,
        )
        logger.info(f"Scheduled harvest of {source.name} every {every}s")
        return True

    def start(self, sources: Optional[Dict[str, HarvestSource]] = None):
        """Schedule every source and start the scheduler."""
        if sources is None:
            sources = load_all_sources(self.orchestrator.sources_dir())

        scheduled = sum(1 for source in sources.values() if self.schedule(source))

        self.scheduler.start()
        logger.info(f"Harvester scheduler started with {scheduled} source(s)")

    async def stop(self):
        """Stop the scheduler."""
        self.scheduler.shutdown()
        await self.orchestrator.close()
        logger.info("Harvester scheduler stopped")

    async def run_source(self, source: HarvestSource) -> None:
        """Job body: run one harvest and keep its outcome in ``history``."""
        try:
            result = await self.orchestrator.run(source)
            self.history[source.uuid] = result.to_dict()
            logger.info(f"Harvest of {source.name} finished: {result.to_dict()}")
        except HarvestAbortedError as e:
            self.history[source.uuid] = {"error": str(e)}
            logger.error(f"Harvest of {source.name} aborted: {e}")
        except Exception as e:
            self.history[source.uuid] = {"error": str(e)}
            logger.exception(f"Harvest of {source.name} failed: {e}")


# CLI entry point
async def run_scheduler(config: Optional[HarvesterConfig] = None):
    """Run scheduler until interrupted."""
    config = config or HarvesterConfig.from_env()
    if not config.scheduler.enabled:
        logger.info("Harvester scheduler disabled")
        return

    scheduler = HarvesterScheduler(config)

    try:
        scheduler.start()
        # Keep running
        while True:
            await asyncio.sleep(3600)
    except (KeyboardInterrupt, asyncio.CancelledError):
        await scheduler.stop()


if __name__ == "__main__":
    asyncio.run(run_scheduler())
