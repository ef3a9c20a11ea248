"""
Catalog store interface.

The harvester treats the catalog as an external collaborator: records are
handed over as opaque content tagged with a schema id and owned by a harvest
source. ``InMemoryCatalogStore`` backs tests and dry runs; see
``postgres.PostgresCatalogStore`` for the persistent store.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple

from .models import CatalogRecord, OperationGrant

logger = logging.getLogger(__name__)


class CatalogStore(Protocol):
    """Operations the harvester needs from the catalog."""

    async def ping(self) -> None: ...

    async def find_by_owner(self, harvest_uuid: str) -> List[CatalogRecord]: ...

    async def find_by_owner_and_identity(
        self, harvest_uuid: str, uuid: str
    ) -> Optional[CatalogRecord]: ...

    async def insert(
        self,
        harvest_uuid: str,
        schema_id: str,
        data: bytes,
        uuid: str,
        created_at: datetime,
        owner_id: Optional[str] = None,
    ) -> int: ...

    async def replace_content(
        self, record_id: int, data: bytes, changed_at: datetime
    ) -> None: ...

    async def replace_allowed_operations(
        self, record_id: int, grants: Iterable[OperationGrant]
    ) -> None: ...

    async def replace_categories(
        self, record_id: int, categories: Iterable[str]
    ) -> None: ...

    async def delete(self, record_id: int) -> None: ...

    async def reindex(self, record_id: int) -> None: ...


class InMemoryCatalogStore:
    """Dictionary-backed catalog store.

    Enforces (harvest_uuid, uuid) uniqueness like the persistent store, and
    keeps a log of reindexed record ids.
    """

    def __init__(self):
        self._records: Dict[int, CatalogRecord] = {}
        self._by_identity: Dict[Tuple[str, str], int] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()
        self.reindexed: List[int] = []
        self.index: Set[int] = set()

    async def ping(self) -> None:
        return None

    async def find_by_owner(self, harvest_uuid: str) -> List[CatalogRecord]:
        return [r for r in self._records.values() if r.harvest_uuid == harvest_uuid]

    async def find_by_owner_and_identity(
        self, harvest_uuid: str, uuid: str
    ) -> Optional[CatalogRecord]:
        record_id = self._by_identity.get((harvest_uuid, uuid))
        return self._records.get(record_id) if record_id is not None else None

    async def insert(
        self,
        harvest_uuid: str,
        schema_id: str,
        data: bytes,
        uuid: str,
        created_at: datetime,
        owner_id: Optional[str] = None,
    ) -> int:
        async with self._lock:
            key = (harvest_uuid, uuid)
            if key in self._by_identity:
                raise ValueError(f"Duplicate record {uuid} for source {harvest_uuid}")

            record_id = self._next_id
            self._next_id += 1
            self._records[record_id] = CatalogRecord(
                id=record_id,
                uuid=uuid,
                schema_id=schema_id,
                harvest_uuid=harvest_uuid,
                data=data,
                created_at=created_at,
                changed_at=created_at,
                owner_id=owner_id,
            )
            self._by_identity[key] = record_id
            return record_id

    def _get(self, record_id: int) -> CatalogRecord:
        try:
            return self._records[record_id]
        except KeyError:
            raise LookupError(f"No catalog record with id {record_id}") from None

    async def replace_content(
        self, record_id: int, data: bytes, changed_at: datetime
    ) -> None:
        record = self._get(record_id)
        self._records[record_id] = replace(record, data=data, changed_at=changed_at)

    async def replace_allowed_operations(
        self, record_id: int, grants: Iterable[OperationGrant]
    ) -> None:
        # Single assignment: readers see either the old or the new set.
        record = self._get(record_id)
        self._records[record_id] = replace(record, operations=frozenset(grants))

    async def replace_categories(
        self, record_id: int, categories: Iterable[str]
    ) -> None:
        record = self._get(record_id)
        self._records[record_id] = replace(record, categories=frozenset(categories))

    async def delete(self, record_id: int) -> None:
        record = self._get(record_id)
        del self._records[record_id]
        del self._by_identity[(record.harvest_uuid, record.uuid)]
        self.index.discard(record_id)

    async def reindex(self, record_id: int) -> None:
        self._get(record_id)
        self.reindexed.append(record_id)
        self.index.add(record_id)

    # Inspection helpers

    def get(self, record_id: int) -> Optional[CatalogRecord]:
        return self._records.get(record_id)

    def count(self, harvest_uuid: Optional[str] = None) -> int:
        if harvest_uuid is None:
            return len(self._records)
        return sum(1 for r in self._records.values() if r.harvest_uuid == harvest_uuid)


__all__ = ["CatalogStore", "InMemoryCatalogStore"]
