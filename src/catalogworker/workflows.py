"""Temporal workflows for CatalogWorker.

Workflows orchestrate activities and provide durability, retries,
and state management for long-running business processes.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from .activities import harvest_source


@workflow.defn
class FilesystemHarvestWorkflow:
    """Workflow for harvesting one filesystem source into the catalog.

    Workflow ids are derived from the source name by the caller, so Temporal
    itself refuses a second concurrent run of the same source.
    """

    @workflow.run
    async def run(self, source_name: str) -> dict[str, Any]:
        """Execute the harvest.

        Args:
            source_name: Harvest source definition name

        Returns:
            HarvestResult counters
        """
        return await workflow.execute_activity(
            harvest_source,
            source_name,
            start_to_close_timeout=timedelta(hours=2),
            retry_policy=RetryPolicy(maximum_attempts=3),
        )
