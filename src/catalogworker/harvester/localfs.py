"""
Local filesystem harvester.

Walks the source directory, classifies each file, reconciles it with the
catalog and finally removes records whose files disappeared (unless the
source is configured with ``nodelete``).

Files are not diffed field by field: a changed file replaces the stored
record's content entirely.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Set

from ..registry import BaseHarvester, register
from .classifier import classify
from .errors import (
    EntryAccessError,
    FileHarvestError,
    HarvestCancelledError,
    StoreLookupError,
    StoreUnavailableError,
)
from .models import CandidateFile, HarvestResult, Outcome
from .privileges import PrivilegeApplier
from .reconcile import Reconciler
from .sources import HarvestSource
from .store import CatalogStore
from .sweep import sweep
from .walker import walk

logger = logging.getLogger(__name__)


class _RunState:
    """Counters and touched ids owned by one run; only the run loop folds."""

    def __init__(self):
        self.result = HarvestResult()
        self.touched: Set[int] = set()

    def fold(self, outcome: Outcome) -> None:
        self.result.record(outcome)
        if outcome.touched:
            self.touched.add(outcome.record_id)
        if isinstance(outcome.error, StoreLookupError):
            # The file may back a live record we could not identify.
            self.result.sweep_skipped = True


@register("localfilesystem")
class LocalFilesystemHarvester(BaseHarvester):
    """Harvester for a local directory tree."""

    def __init__(
        self,
        store: CatalogStore,
        source: Optional[HarvestSource] = None,
        max_concurrency: int = 1,
    ):
        super().__init__(store, source)
        self.max_concurrency = max(1, max_concurrency)
        self.reconciler = Reconciler(store, PrivilegeApplier(store))

    async def run(self, cancel_event: Optional[asyncio.Event] = None) -> HarvestResult:
        """Harvest the configured source once.

        Raises:
            RootUnreadableError: the source directory cannot be listed.
            StoreUnavailableError: the catalog cannot be reached.
            HarvestCancelledError: ``cancel_event`` was set before traversal
                completed. Nothing is swept in that case.
        """
        if self.source is None:
            raise ValueError("Harvester has no source configured")

        # One snapshot for the whole run.
        source = self.source
        logger.info(
            f"Harvest of {source.name}: top directory is {source.directory}, "
            f"recurse is {source.recurse}"
        )

        try:
            await self.store.ping()
        except StoreUnavailableError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Catalog store unreachable: {e}") from e

        state = _RunState()
        await self._align(source, state, cancel_event)

        if state.result.sweep_skipped:
            logger.warning(
                f"Catalog lookups failed during harvest of {source.name}, "
                "orphaned records are kept until the next run"
            )
        else:
            await sweep(self.store, source, state.touched, state.result)

        result = state.result.finish()
        logger.info(f"End of alignment for {source.name}: {result.to_dict()}")
        return result

    async def _align(
        self,
        source: HarvestSource,
        state: _RunState,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        """Traverse and reconcile every candidate file."""
        walk_errors: List[EntryAccessError] = []

        def _on_error(error: EntryAccessError) -> None:
            logger.warning(f"Skipping unreadable entry: {error}")
            walk_errors.append(error)

        candidates: Iterator[CandidateFile] = walk(
            source.directory,
            source.recurse,
            on_error=_on_error,
            patterns=source.file_patterns,
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        pending: Set[asyncio.Task] = set()

        def _drain_walk_errors() -> None:
            while walk_errors:
                state.fold(Outcome.rejected(walk_errors.pop(0)))

        def _collect(done) -> None:
            for task in done:
                pending.discard(task)
                state.fold(task.result())

        async def _bounded(candidate: CandidateFile) -> Outcome:
            async with semaphore:
                return await self.process_file(source, candidate)

        try:
            while True:
                # Directory listing and stat run off the event loop.
                # RootUnreadableError surfaces on the first next().
                candidate = await asyncio.to_thread(next, candidates, None)
                if candidate is None:
                    break

                _drain_walk_errors()
                if cancel_event is not None and cancel_event.is_set():
                    raise HarvestCancelledError(
                        f"Harvest of {source.name} cancelled before traversal completed"
                    )

                if self.max_concurrency == 1:
                    state.fold(await self.process_file(source, candidate))
                    continue

                pending.add(asyncio.create_task(_bounded(candidate)))
                if len(pending) >= self.max_concurrency * 2:
                    done, _ = await asyncio.wait(
                        pending, return_when=asyncio.FIRST_COMPLETED
                    )
                    _collect(done)

            if pending:
                done, _ = await asyncio.wait(pending)
                _collect(done)
            _drain_walk_errors()
        finally:
            # Let in-flight reconciliations commit before leaving.
            if pending:
                await asyncio.wait(pending)

    async def process_file(self, source: HarvestSource, candidate: CandidateFile) -> Outcome:
        """Read, classify and reconcile one candidate; never raises per-file errors."""
        path = candidate.path
        logger.debug(f"Processing {path}")

        try:
            data = await asyncio.to_thread(Path(path).read_bytes)
        except OSError as e:
            error = EntryAccessError(f"Cannot read {path}: {e}", path=path)
            logger.warning(str(error))
            return Outcome.rejected(error)

        try:
            doc = classify(data)
        except FileHarvestError as e:
            e.path = path
            logger.warning(f"Skipping {path}: {e}")
            return Outcome.rejected(e)

        return await self.reconciler.reconcile(source, doc, candidate.modified, path)

    def describe(self):
        description = super().describe()
        description["max_concurrency"] = self.max_concurrency
        return description
