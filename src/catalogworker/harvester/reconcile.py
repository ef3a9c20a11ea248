"""
Reconciliation engine.

Decides, for one classified document, whether the catalog needs an INSERT,
an UPDATE (full content replace, never a merge), or nothing at all (the
optional last-modified fast path). Every committed content write is followed
by privilege/category re-application and a reindex request; the reindex is
requested even when re-application fails.

``reconcile`` never raises for per-file failures; they come back as REJECTED
outcomes.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from .errors import PrivilegeApplyError, StoreLookupError, StoreWriteError
from .models import (
    CatalogRecord,
    ClassifiedDocument,
    Outcome,
    OutcomeKind,
    utcnow,
)
from .privileges import KeyedLock, PrivilegeApplier
from .sources import HarvestSource, TimestampSource
from .store import CatalogStore

logger = logging.getLogger(__name__)


def authoritative_timestamp(
    source: HarvestSource,
    doc: ClassifiedDocument,
    file_modified: Optional[datetime],
) -> Optional[datetime]:
    """Timestamp used for change detection, per ``source.timestamp_source``."""
    if source.timestamp_source is TimestampSource.DOCUMENT:
        return doc.modified
    return file_modified


def is_unchanged(record: CatalogRecord, timestamp: Optional[datetime]) -> bool:
    """True when ``timestamp`` is not newer than the record's change date.

    A missing timestamp never counts as unchanged.
    """
    return timestamp is not None and timestamp <= record.changed_at


class Reconciler:
    """Applies one classified document to the catalog."""

    def __init__(self, store: CatalogStore, applier: Optional[PrivilegeApplier] = None):
        self.store = store
        self.applier = applier or PrivilegeApplier(store)
        self._identity_locks = KeyedLock()

    async def reconcile(
        self,
        source: HarvestSource,
        doc: ClassifiedDocument,
        file_modified: Optional[datetime] = None,
        path: Optional[Path] = None,
    ) -> Outcome:
        """Insert, update or skip ``doc`` for ``source``."""
        # Two files declaring the same identity must not both insert.
        async with self._identity_locks.hold((source.uuid, doc.uuid)):
            try:
                return await self._reconcile(source, doc, file_modified, path)
            except PrivilegeApplyError as e:
                e.path = path
                logger.warning(f"Privileges not applied for {path}: {e}")
                return Outcome.rejected(e, record_id=e.record_id)

    async def _reconcile(
        self,
        source: HarvestSource,
        doc: ClassifiedDocument,
        file_modified: Optional[datetime],
        path: Optional[Path],
    ) -> Outcome:
        timestamp = authoritative_timestamp(source, doc, file_modified)

        try:
            existing = await self.store.find_by_owner_and_identity(source.uuid, doc.uuid)
        except Exception as e:
            error = StoreLookupError(f"Lookup of {doc.uuid} failed: {e}", path=path)
            logger.warning(str(error))
            return Outcome.rejected(error)

        if existing is None:
            return await self._insert(source, doc, timestamp, path)

        if source.check_last_modified and is_unchanged(existing, timestamp):
            logger.debug(f"  - Unchanged: {doc.uuid} (record {existing.id})")
            return Outcome(OutcomeKind.UNCHANGED, path, existing.id)

        return await self._update(source, doc, existing, timestamp, path)

    async def _insert(
        self,
        source: HarvestSource,
        doc: ClassifiedDocument,
        timestamp: Optional[datetime],
        path: Optional[Path],
    ) -> Outcome:
        logger.debug(f"  - Adding metadata with uuid: {doc.uuid}")

        try:
            record_id = await self.store.insert(
                source.uuid,
                doc.schema_id,
                doc.data,
                doc.uuid,
                timestamp or utcnow(),
                owner_id=source.owner_id,
            )
        except Exception as e:
            error = StoreWriteError(f"Insert of {doc.uuid} failed: {e}", path=path)
            logger.warning(str(error))
            return Outcome.rejected(error)

        try:
            await self.applier.apply(record_id, source.operation_grants(), source.categories)
        finally:
            await self._reindex(record_id)
        return Outcome(OutcomeKind.INSERTED, path, record_id)

    async def _update(
        self,
        source: HarvestSource,
        doc: ClassifiedDocument,
        existing: CatalogRecord,
        timestamp: Optional[datetime],
        path: Optional[Path],
    ) -> Outcome:
        logger.debug(f"  - Updating metadata with id: {existing.id}")

        changed_at = timestamp or utcnow()
        if changed_at <= existing.changed_at:
            # Keep changed_at monotonic when the fast path is off.
            changed_at = utcnow()

        try:
            await self.store.replace_content(existing.id, doc.data, changed_at)
        except Exception as e:
            error = StoreWriteError(
                f"Update of record {existing.id} failed: {e}", path=path
            )
            logger.warning(str(error))
            # The record is still owned and its file still exists.
            return Outcome.rejected(error, record_id=existing.id)

        try:
            await self.applier.apply(existing.id, source.operation_grants(), source.categories)
        finally:
            await self._reindex(existing.id)
        return Outcome(OutcomeKind.UPDATED, path, existing.id)

    async def _reindex(self, record_id: int) -> None:
        try:
            await self.store.reindex(record_id)
        except Exception as e:
            # Content is committed; the index catches up on the next write.
            logger.error(f"Reindex of record {record_id} failed: {e}")
