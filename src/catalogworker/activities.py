"""Temporal activities for CatalogWorker.

Activities are the building blocks of workflows - they represent
individual units of work that can be retried and monitored.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from temporalio import activity
from temporalio.exceptions import ApplicationError

from .config import get_config
from .harvester.errors import HarvestAbortedError, HarvestAlreadyRunningError
from .harvester.orchestrator import HarvestOrchestrator

logger = logging.getLogger(__name__)

# One per worker process, so overlapping runs of a source are refused here.
# Across workers the per-source workflow id keeps runs apart.
_orchestrator: Optional[HarvestOrchestrator] = None


def get_orchestrator() -> HarvestOrchestrator:
    """Get the worker's shared orchestrator (created on first use)."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = HarvestOrchestrator(config=get_config().harvester)
    return _orchestrator


async def close_orchestrator() -> None:
    """Release the shared orchestrator and its catalog store."""
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.close()
        _orchestrator = None


@activity.defn
async def harvest_source(source_name: str) -> dict[str, Any]:
    """Activity to harvest one configured filesystem source.

    Args:
        source_name: Name of the source definition (``<name>.toml``)

    Returns:
        HarvestResult counters as a dictionary

    Raises:
        ApplicationError: the run aborted. Non-retryable when another run of
            the same source is already in flight.
    """
    logger.info(f"Harvesting source {source_name}")
    try:
        result = await get_orchestrator().run_named(source_name)
    except HarvestAlreadyRunningError as e:
        raise ApplicationError(str(e), type="HarvestAlreadyRunning", non_retryable=True)
    except HarvestAbortedError as e:
        raise ApplicationError(str(e), type=type(e).__name__) from e

    return result.to_dict()
