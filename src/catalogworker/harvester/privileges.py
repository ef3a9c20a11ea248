"""Privilege & category re-application for harvested records."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, Iterable

from .errors import PrivilegeApplyError
from .models import OperationGrant
from .store import CatalogStore

logger = logging.getLogger(__name__)


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or awaits it."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


class PrivilegeApplier:
    """Replaces a record's allowed operations and categories wholesale.

    Both sets are replaced, never merged. The store performs the
    allowed-operations delete+insert in one transaction; applications to the
    same record id are serialized here.
    """

    def __init__(self, store: CatalogStore):
        self.store = store
        self._locks = KeyedLock()

    async def apply(
        self,
        record_id: int,
        grants: Iterable[OperationGrant],
        categories: Iterable[str],
    ) -> None:
        """Apply privileges and categories to ``record_id``.

        Raises:
            PrivilegeApplyError: the store failed either replacement.
        """
        grants = frozenset(grants)
        categories = frozenset(categories)

        async with self._locks.hold(record_id):
            try:
                await self.store.replace_allowed_operations(record_id, grants)
                await self.store.replace_categories(record_id, categories)
            except Exception as e:
                raise PrivilegeApplyError(
                    f"Could not apply privileges/categories to record {record_id}: {e}",
                    record_id=record_id,
                ) from e

        logger.debug(
            f"  - Applied {len(grants)} grants, {len(categories)} categories "
            f"to record {record_id}"
        )
