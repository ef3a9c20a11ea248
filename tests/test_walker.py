"""
Tests for the directory walker.
"""

import os
from datetime import timezone

import pytest

from catalogworker.harvester.errors import EntryAccessError, RootUnreadableError
from catalogworker.harvester.walker import walk

from conftest import BASE_MTIME, write_file


@pytest.fixture
def nested(tmp_path):
    root = tmp_path / "root"
    write_file(root / "a.xml", "<a/>")
    write_file(root / "b.txt", "b")
    write_file(root / "sub" / "c.xml", "<c/>")
    write_file(root / "sub" / "deeper" / "d.xml", "<d/>")
    return root


def names(candidates):
    return sorted(c.path.name for c in candidates)


class TestFlatWalk:
    """Non-recursive traversal."""

    def test_only_immediate_files(self, nested):
        assert names(walk(nested, recursive=False)) == ["a.xml", "b.txt"]

    def test_candidate_attributes(self, nested):
        [candidate] = [c for c in walk(nested, recursive=False) if c.path.name == "a.xml"]

        assert candidate.path == nested / "a.xml"
        assert candidate.size == len("<a/>")
        assert candidate.modified.tzinfo == timezone.utc
        assert candidate.modified.timestamp() == BASE_MTIME

    def test_patterns_filter_names(self, nested):
        assert names(walk(nested, recursive=False, patterns=["*.xml"])) == ["a.xml"]

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(RootUnreadableError):
            list(walk(tmp_path / "missing", recursive=False))

    def test_file_as_root_raises(self, nested):
        with pytest.raises(RootUnreadableError):
            list(walk(nested / "a.xml", recursive=False))

    def test_is_lazy(self, tmp_path):
        # Nothing touches the filesystem until iteration starts.
        iterator = walk(tmp_path / "missing", recursive=False)
        with pytest.raises(RootUnreadableError):
            next(iterator)


class TestRecursiveWalk:
    """Full subtree traversal."""

    def test_visits_every_file(self, nested):
        assert names(walk(nested, recursive=True)) == ["a.xml", "b.txt", "c.xml", "d.xml"]

    def test_patterns_apply_in_subdirectories(self, nested):
        assert names(walk(nested, recursive=True, patterns=["*.xml"])) == [
            "a.xml",
            "c.xml",
            "d.xml",
        ]

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(RootUnreadableError):
            list(walk(tmp_path / "missing", recursive=True))

    def test_directory_symlinks_not_followed(self, nested, tmp_path):
        outside = tmp_path / "outside"
        write_file(outside / "e.xml", "<e/>")
        os.symlink(outside, nested / "link")

        assert "e.xml" not in names(walk(nested, recursive=True))


class TestEntryErrors:
    """Per-entry failures are reported and skipped."""

    @pytest.mark.parametrize("recursive", [False, True])
    def test_broken_symlink_reported(self, nested, recursive):
        os.symlink(nested / "does-not-exist.xml", nested / "broken.xml")
        errors = []

        found = names(walk(nested, recursive=recursive, on_error=errors.append))

        assert "broken.xml" not in found
        assert "a.xml" in found
        assert len(errors) == 1
        assert isinstance(errors[0], EntryAccessError)
        assert errors[0].path == nested / "broken.xml"

    def test_errors_ignored_without_handler(self, nested):
        os.symlink(nested / "nope", nested / "broken.xml")
        assert "a.xml" in names(walk(nested, recursive=False))

    @pytest.mark.skipif(
        not hasattr(os, "geteuid") or os.geteuid() == 0,
        reason="root ignores directory permissions",
    )
    def test_unreadable_subdirectory_reported(self, nested):
        locked = nested / "sub"
        locked.chmod(0)
        errors = []
        try:
            found = names(walk(nested, recursive=True, on_error=errors.append))
        finally:
            locked.chmod(0o755)

        assert found == ["a.xml", "b.txt"]
        assert [e.path for e in errors] == [locked]
