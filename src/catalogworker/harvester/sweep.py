"""Deletion sweep: remove records whose source files are gone.

Runs once per harvest, after traversal and every reconciliation finished.
Only records owned by the harvested source are considered. A failed delete is
counted and the sweep moves on to the next orphan.
"""

from __future__ import annotations

import logging
from typing import AbstractSet, List

from .errors import SweepError
from .models import HarvestResult
from .sources import HarvestSource
from .store import CatalogStore

logger = logging.getLogger(__name__)


async def sweep(
    store: CatalogStore,
    source: HarvestSource,
    touched: AbstractSet[int],
    result: HarvestResult,
) -> List[int]:
    """Delete records owned by ``source`` that were not touched in this run.

    Returns:
        Ids of the records actually removed.
    """
    if source.nodelete:
        logger.debug(f"Deletion disabled for {source.name}, skipping sweep")
        return []

    try:
        owned = await store.find_by_owner(source.uuid)
    except Exception as e:
        error = SweepError(f"Could not list records of {source.name}, sweep skipped: {e}")
        logger.error(str(error))
        result.record_error(error)
        return []

    removed: List[int] = []

    for record in owned:
        if record.harvest_uuid != source.uuid or record.id in touched:
            continue

        logger.debug(f"  Removing: {record.id} ({record.uuid})")
        try:
            await store.delete(record.id)
        except Exception as e:
            error = SweepError(
                f"Could not delete orphan record {record.id}: {e}", record_id=record.id
            )
            logger.error(str(error))
            result.record_error(error)
            continue

        result.record_removed()
        removed.append(record.id)

    return removed
