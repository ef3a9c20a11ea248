"""
Directory walker for filesystem harvesting.

Yields candidate files lazily, one CandidateFile per regular file. Problems
with individual entries are reported through ``on_error`` and never stop the
walk; a root that cannot be listed raises RootUnreadableError before the
first item.

Visit order is whatever the filesystem returns.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from .errors import EntryAccessError, RootUnreadableError
from .models import CandidateFile

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[EntryAccessError], None]


def _ignore(error: EntryAccessError) -> None:
    logger.debug(f"Ignoring unreadable entry: {error}")


def _matches(name: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)


def _candidate(path: Path, on_error: ErrorHandler) -> Optional[CandidateFile]:
    """Stat ``path`` (following file symlinks); None if not a regular file."""
    try:
        st = os.stat(path)
    except OSError as e:
        on_error(EntryAccessError(f"Cannot stat {path}: {e}", path=path))
        return None

    if not stat.S_ISREG(st.st_mode):
        return None

    return CandidateFile(
        path=path,
        modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        size=st.st_size,
    )


def check_root(root: Path) -> Path:
    """Raise RootUnreadableError unless ``root`` is a listable directory."""
    try:
        with os.scandir(root):
            pass
    except OSError as e:
        raise RootUnreadableError(root, e) from e
    return root


def _walk_flat(
    root: Path, patterns: Iterable[str], on_error: ErrorHandler
) -> Iterator[CandidateFile]:
    try:
        entries = os.scandir(root)
    except OSError as e:
        raise RootUnreadableError(root, e) from e

    with entries:
        for entry in entries:
            if not _matches(entry.name, patterns):
                continue
            candidate = _candidate(Path(entry.path), on_error)
            if candidate is not None:
                yield candidate


def _walk_recursive(
    root: Path, patterns: Iterable[str], on_error: ErrorHandler
) -> Iterator[CandidateFile]:
    check_root(root)

    def _onerror(exc: OSError) -> None:
        failed = Path(exc.filename) if exc.filename else root
        on_error(EntryAccessError(f"Cannot list {failed}: {exc}", path=failed))

    for directory_path, _directory_names, file_names in os.walk(
        root, topdown=True, onerror=_onerror, followlinks=False
    ):
        current_directory = Path(directory_path)
        for file_name in file_names:
            if not _matches(file_name, patterns):
                continue
            candidate = _candidate(current_directory / file_name, on_error)
            if candidate is not None:
                yield candidate


def walk(
    root: Path | str,
    recursive: bool,
    on_error: Optional[ErrorHandler] = None,
    patterns: Iterable[str] = ("*",),
) -> Iterator[CandidateFile]:
    """Enumerate candidate files under ``root``.

    Args:
        root: Directory to harvest.
        recursive: Descend into subdirectories (pre-order) when True,
            otherwise only immediate children are considered.
        on_error: Called with an EntryAccessError for every entry that
            could not be inspected.
        patterns: Glob patterns matched against file names.

    Raises:
        RootUnreadableError: ``root`` is missing or cannot be listed. Raised
            on the first ``next()``, since the walk is lazy.
    """
    root = Path(root)
    patterns = tuple(patterns)
    handler = on_error or _ignore

    if recursive:
        return _walk_recursive(root, patterns, handler)
    return _walk_flat(root, patterns, handler)
