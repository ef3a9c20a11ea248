"""Data types shared by the harvest pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional
from xml.etree.ElementTree import Element

from .errors import (
    EntryAccessError,
    FileHarvestError,
    InvalidContentError,
    MissingIdentityError,
    StoreLookupError,
    StoreWriteError,
    SweepError,
    UnsupportedSchemaError,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Operation(str, Enum):
    """Operations a group can be granted on a catalog record."""

    VIEW = "view"
    DOWNLOAD = "download"
    EDITING = "editing"
    NOTIFY = "notify"
    DYNAMIC = "dynamic"
    FEATURED = "featured"


@dataclass(frozen=True)
class OperationGrant:
    """One allowed-operations entry: group may perform operation."""

    group: str
    operation: Operation


@dataclass(frozen=True)
class CandidateFile:
    """A regular file discovered by the walker."""

    path: Path
    modified: datetime
    size: int


@dataclass(frozen=True)
class ClassifiedDocument:
    """A parsed document recognized as one of the supported schemas."""

    schema_id: str
    uuid: str
    root: Element
    data: bytes
    modified: Optional[datetime] = None


@dataclass
class CatalogRecord:
    """A persisted catalog record, as returned by the store."""

    id: int
    uuid: str
    schema_id: str
    harvest_uuid: str
    data: bytes
    created_at: datetime
    changed_at: datetime
    owner_id: Optional[str] = None
    categories: FrozenSet[str] = frozenset()
    operations: FrozenSet[OperationGrant] = frozenset()


class OutcomeKind(str, Enum):
    """Terminal outcome of processing one file."""

    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Outcome:
    """Result of reconciling one file.

    ``record_id`` is set whenever the file resolved to a catalog record,
    including REJECTED outcomes where the record exists but a later write
    failed. Such records still count as touched.
    """

    kind: OutcomeKind
    path: Optional[Path] = None
    record_id: Optional[int] = None
    error: Optional[FileHarvestError] = None

    @classmethod
    def rejected(
        cls, error: FileHarvestError, record_id: Optional[int] = None
    ) -> "Outcome":
        return cls(OutcomeKind.REJECTED, error.path, record_id, error)

    @property
    def touched(self) -> bool:
        return self.record_id is not None


@dataclass
class HarvestResult:
    """Counters for one harvest run."""

    added: int = 0
    updated: int = 0
    unchanged: int = 0
    locally_removed: int = 0
    errors: int = 0

    # Breakdown of errors by cause
    total_metadata: int = 0
    bad_format: int = 0
    unknown_schema: int = 0
    could_not_insert: int = 0
    unreadable: int = 0
    could_not_delete: int = 0

    # Set when a failed lookup made the touched set unreliable
    sweep_skipped: bool = False

    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    def record(self, outcome: Outcome) -> None:
        """Fold one terminal outcome into the counters."""
        if outcome.kind is OutcomeKind.INSERTED:
            self.added += 1
        elif outcome.kind is OutcomeKind.UPDATED:
            self.updated += 1
        elif outcome.kind is OutcomeKind.UNCHANGED:
            self.unchanged += 1
        else:
            self.record_error(outcome.error)
            if isinstance(outcome.error, EntryAccessError):
                return
        self.total_metadata += 1

    def record_error(self, error: Optional[FileHarvestError]) -> None:
        self.errors += 1
        if isinstance(error, UnsupportedSchemaError):
            self.unknown_schema += 1
        elif isinstance(error, (InvalidContentError, MissingIdentityError)):
            self.bad_format += 1
        elif isinstance(error, (StoreWriteError, StoreLookupError)):
            self.could_not_insert += 1
        elif isinstance(error, EntryAccessError):
            self.unreadable += 1
        elif isinstance(error, SweepError):
            self.could_not_delete += 1

    def record_removed(self) -> None:
        self.locally_removed += 1

    def finish(self) -> "HarvestResult":
        self.finished_at = utcnow()
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "added": self.added,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "locally_removed": self.locally_removed,
            "errors": self.errors,
            "total_metadata": self.total_metadata,
            "bad_format": self.bad_format,
            "unknown_schema": self.unknown_schema,
            "could_not_insert": self.could_not_insert,
            "unreadable": self.unreadable,
            "could_not_delete": self.could_not_delete,
            "sweep_skipped": self.sweep_skipped,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
