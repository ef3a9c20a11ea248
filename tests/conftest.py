"""
Shared fixtures: metadata documents on disk, harvest sources, catalog store.
"""

import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from catalogworker.harvester.sources import HarvestSource, PrivilegeMapping
from catalogworker.harvester.store import InMemoryCatalogStore

ISO19139 = """<?xml version="1.0" encoding="UTF-8"?>
<gmd:MD_Metadata xmlns:gmd="http://www.isotc211.org/2005/gmd"
                 xmlns:gco="http://www.isotc211.org/2005/gco">
  <gmd:fileIdentifier><gco:CharacterString>{uuid}</gco:CharacterString></gmd:fileIdentifier>
  <gmd:dateStamp><gco:DateTime>{date}</gco:DateTime></gmd:dateStamp>
  <gmd:title>{title}</gmd:title>
</gmd:MD_Metadata>
"""

DUBLIN_CORE = """<?xml version="1.0" encoding="UTF-8"?>
<simpledc xmlns:dc="http://purl.org/dc/elements/1.1/"
          xmlns:dct="http://purl.org/dc/terms/">
  <dc:identifier>{uuid}</dc:identifier>
  <dc:title>{title}</dc:title>
  <dct:modified>{date}</dct:modified>
</simpledc>
"""

UNKNOWN_SCHEMA = """<?xml version="1.0"?>
<inventory><item id="1">not a metadata record</item></inventory>
"""

BASE_MTIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc).timestamp()


def iso_doc(uuid: str, title: str = "Title", date: str = "2024-01-01T00:00:00Z") -> str:
    return ISO19139.format(uuid=uuid, title=title, date=date)


def dc_doc(uuid: str, title: str = "Title", date: str = "2024-01-01") -> str:
    return DUBLIN_CORE.format(uuid=uuid, title=title, date=date)


def write_file(path: Path, content: str, mtime: float = BASE_MTIME) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    os.utime(path, (mtime, mtime))
    return path


def make_source(directory: Path, **overrides) -> HarvestSource:
    values = dict(
        uuid="source-a",
        name="Source A",
        directory=directory,
        privileges=(
            PrivilegeMapping(group="all", operations=("view", "download")),
            PrivilegeMapping(group="editors", operations=("editing",)),
        ),
        categories=frozenset({"datasets"}),
    )
    values.update(overrides)
    return HarvestSource(**values)


@pytest.fixture
def store() -> InMemoryCatalogStore:
    return InMemoryCatalogStore()


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """Directory with three valid ISO 19139 documents."""
    root = tmp_path / "harvest"
    root.mkdir()
    for n in range(1, 4):
        write_file(root / f"record-{n}.xml", iso_doc(f"uuid-{n}", title=f"Record {n}"))
    return root


@pytest.fixture
def source(tree: Path) -> HarvestSource:
    return make_source(tree)
