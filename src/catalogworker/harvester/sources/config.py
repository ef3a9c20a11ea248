"""
Harvest source configuration loader.

Loads sources from HARVEST_SOURCES_DIR (or PROJECT_DIR/harvester/sources).
Each ``<name>.toml`` holds one ``[source]`` table. A loaded HarvestSource is
frozen: configuration changes produce a new instance, and a running harvest
keeps reading the snapshot it was started with.
"""

import logging
import os
import tomllib
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models import Operation, OperationGrant

logger = logging.getLogger(__name__)


class TimestampSource(str, Enum):
    """Which timestamp is authoritative for change detection."""

    FILE = "file"  # filesystem modification time
    DOCUMENT = "document"  # last-modified value embedded in the document


class PrivilegeMapping(BaseModel):
    """Operations granted to one group on every harvested record."""

    model_config = ConfigDict(frozen=True)

    group: str
    operations: tuple[Operation, ...] = ()


class HarvestSource(BaseModel):
    """Configuration of a local filesystem harvest job."""

    model_config = ConfigDict(frozen=True)

    uuid: str
    name: str
    directory: Path
    recurse: bool = False
    nodelete: bool = False
    check_last_modified: bool = False
    timestamp_source: TimestampSource = TimestampSource.FILE
    icon: str = "default.gif"
    owner_id: Optional[str] = None
    privileges: tuple[PrivilegeMapping, ...] = ()
    categories: frozenset[str] = frozenset()
    file_patterns: tuple[str, ...] = ("*",)
    every: Optional[int] = Field(
        default=None, description="Seconds between scheduled runs, None=manual"
    )

    @field_validator("uuid", "name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("every")
    @classmethod
    def _positive_interval(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("must be a positive number of seconds")
        return value

    def operation_grants(self) -> frozenset[OperationGrant]:
        """Flatten the privilege mapping into (group, operation) grants."""
        return frozenset(
            OperationGrant(group=mapping.group, operation=op)
            for mapping in self.privileges
            for op in mapping.operations
        )


def get_project_dir() -> Path:
    """Get project directory from environment.

    Uses PROJECT_DIR env var, falling back to current directory.
    """
    project_dir = os.getenv("PROJECT_DIR")
    if project_dir:
        return Path(project_dir)

    return Path.cwd()


def find_sources_dir() -> Path:
    """Find the harvest sources directory.

    Looks in order:
    1. HARVEST_SOURCES_DIR env var
    2. {PROJECT_DIR}/harvester/sources
    """
    if env_dir := os.getenv("HARVEST_SOURCES_DIR"):
        p = Path(env_dir)
        if p.exists():
            return p

    sources_dir = get_project_dir() / "harvester" / "sources"
    if sources_dir.exists():
        return sources_dir

    raise FileNotFoundError(
        "Harvest sources directory not found. "
        "Set PROJECT_DIR or HARVEST_SOURCES_DIR"
    )


def parse_source(data: dict, default_name: str) -> HarvestSource:
    """Build a HarvestSource from a parsed ``[source]`` table."""
    privileges = [
        PrivilegeMapping(group=str(group), operations=tuple(ops))
        for group, ops in data.get("privileges", {}).items()
    ]

    return HarvestSource(
        uuid=data.get("uuid", ""),
        name=data.get("name", default_name),
        directory=Path(data.get("directory", "")),
        recurse=data.get("recurse", False),
        nodelete=data.get("nodelete", False),
        check_last_modified=data.get("check_last_modified", False),
        timestamp_source=data.get("timestamp_source", TimestampSource.FILE),
        icon=data.get("icon", "default.gif"),
        owner_id=data.get("owner_id"),
        privileges=tuple(privileges),
        categories=frozenset(data.get("categories", [])),
        file_patterns=tuple(data.get("file_patterns", ["*"])),
        every=data.get("every"),
    )


def load_source_config(name: str, sources_dir: Path | None = None) -> HarvestSource:
    """Load configuration for a specific harvest source."""
    if sources_dir is None:
        sources_dir = find_sources_dir()

    source_file = sources_dir / f"{name}.toml"
    if not source_file.exists():
        raise FileNotFoundError(f"Harvest source config not found: {source_file}")

    with open(source_file, "rb") as f:
        data = tomllib.load(f)

    return parse_source(data.get("source", {}), default_name=name)


def load_all_sources(sources_dir: Path | None = None) -> dict[str, HarvestSource]:
    """Load all harvest source configurations, keyed by file stem."""
    if sources_dir is None:
        sources_dir = find_sources_dir()

    sources = {}
    for toml_file in sorted(sources_dir.glob("*.toml")):
        name = toml_file.stem
        try:
            sources[name] = load_source_config(name, sources_dir)
        except Exception as e:
            logger.warning(f"Failed to load harvest source {name}: {e}")

    return sources
