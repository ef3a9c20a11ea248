"""Temporal worker and client helpers for CatalogWorker.

Serves FilesystemHarvestWorkflow / harvest_source on the configured task
queue, and starts harvest workflows on demand.
"""

from __future__ import annotations

import logging
from typing import Optional

from temporalio.client import Client, WorkflowHandle
from temporalio.worker import Worker

from .activities import close_orchestrator, harvest_source
from .config import get_config
from .workflows import FilesystemHarvestWorkflow

logger = logging.getLogger(__name__)


async def get_temporal_client(host: Optional[str] = None) -> Client:
    """Get Temporal client connection (host from config if not provided)."""
    if host is None:
        host = get_config().temporal_host
    return await Client.connect(host)


def harvest_workflow_id(source_name: str) -> str:
    """One workflow id per source: Temporal rejects a second concurrent run."""
    return f"harvest-{source_name}"


async def create_worker(client: Client, task_queue: Optional[str] = None) -> Worker:
    """Create a Temporal worker serving the harvest workflow."""
    return Worker(
        client,
        task_queue=task_queue or get_config().task_queue,
        workflows=[FilesystemHarvestWorkflow],
        activities=[harvest_source],
    )


async def start_harvest(
    source_name: str,
    client: Optional[Client] = None,
) -> WorkflowHandle:
    """Start a harvest workflow for ``source_name``."""
    if client is None:
        client = await get_temporal_client()

    handle = await client.start_workflow(
        FilesystemHarvestWorkflow.run,
        source_name,
        id=harvest_workflow_id(source_name),
        task_queue=get_config().task_queue,
    )
    logger.info(f"Started harvest workflow {handle.id}")
    return handle


async def run_worker(temporal_host: Optional[str] = None) -> None:
    """Connect to Temporal and process harvest tasks until cancelled."""
    client = await get_temporal_client(temporal_host)
    worker = await create_worker(client)

    logger.info(f"--- Harvest worker starting on queue {get_config().task_queue} ---")
    try:
        await worker.run()
    finally:
        await close_orchestrator()
