"""Exception hierarchy for filesystem harvesting.

Two families:
- FileHarvestError: one file (or one orphan) could not be processed. The
  harvester skips it, counts it and moves on.
- HarvestAbortedError: the run itself cannot continue. Propagates to the
  trigger; no deletion sweep runs and no HarvestResult is returned.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

__all__ = [
    "HarvestError",
    "FileHarvestError",
    "EntryAccessError",
    "RejectedDocument",
    "InvalidContentError",
    "UnsupportedSchemaError",
    "MissingIdentityError",
    "StoreWriteError",
    "StoreLookupError",
    "PrivilegeApplyError",
    "SweepError",
    "HarvestAbortedError",
    "RootUnreadableError",
    "StoreUnavailableError",
    "HarvestCancelledError",
    "HarvestAlreadyRunningError",
]


class HarvestError(RuntimeError):
    """Base exception for harvest failures."""


# ── Per-file ─────────────────────────────────────────────────


class FileHarvestError(HarvestError):
    """A single file or record failed; the run continues."""

    reason: str = "error"

    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class EntryAccessError(FileHarvestError):
    """A filesystem entry could not be stat'd, listed or read."""

    reason = "unreadable"


class RejectedDocument(FileHarvestError):
    """File content is not a usable catalog document."""


class InvalidContentError(RejectedDocument):
    """Content does not parse as XML."""

    reason = "invalid-content"


class UnsupportedSchemaError(RejectedDocument):
    """Parsed document matches none of the supported schemas."""

    reason = "unsupported-schema"


class MissingIdentityError(RejectedDocument):
    """Document does not declare its own identifier."""

    reason = "missing-identity"


class StoreWriteError(FileHarvestError):
    """The catalog store rejected or failed a write."""

    reason = "store-write"


class StoreLookupError(FileHarvestError):
    """The catalog could not say whether a document is already stored.

    The record may exist and still be live, so a run that saw this error must
    not sweep.
    """

    reason = "store-lookup"


class PrivilegeApplyError(StoreWriteError):
    """Content was written but privileges/categories could not be replaced."""

    reason = "privileges"

    def __init__(self, message: str, *, record_id: int, path: Optional[Path] = None) -> None:
        super().__init__(message, path=path)
        self.record_id = record_id


class SweepError(FileHarvestError):
    """Orphaned records could not be listed, or one could not be deleted."""

    reason = "sweep"

    def __init__(self, message: str, *, record_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.record_id = record_id


# ── Run-level ────────────────────────────────────────────────


class HarvestAbortedError(HarvestError):
    """The run was aborted before traversal completed."""


class RootUnreadableError(HarvestAbortedError):
    """The traversal root does not exist or cannot be listed."""

    def __init__(self, root: Path, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(f"Harvest root not readable: {root}{detail}")
        self.root = root


class StoreUnavailableError(HarvestAbortedError):
    """The catalog store could not be reached at session start."""


class HarvestCancelledError(HarvestAbortedError):
    """The run was cancelled between files."""


class HarvestAlreadyRunningError(HarvestAbortedError):
    """Another run of the same source is in flight."""
