"""
Harvest source management.

Loads source definitions from HARVEST_SOURCES_DIR.
"""

from .config import (
    load_source_config,
    load_all_sources,
    parse_source,
    find_sources_dir,
    get_project_dir,
    HarvestSource,
    PrivilegeMapping,
    TimestampSource,
)

__all__ = [
    "load_source_config",
    "load_all_sources",
    "parse_source",
    "find_sources_dir",
    "get_project_dir",
    "HarvestSource",
    "PrivilegeMapping",
    "TimestampSource",
]
