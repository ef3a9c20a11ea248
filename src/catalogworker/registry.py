"""
Harvester Registry for CatalogWorker.

All harvester types must be registered here to be discoverable.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Type
import logging

logger = logging.getLogger(__name__)

# Registry storage
_harvesters: Dict[str, Type["BaseHarvester"]] = {}


def register(name: str):
    """Decorator to register a harvester class."""

    def decorator(cls):
        _harvesters[name] = cls
        cls.type_name = name
        logger.debug(f"Registered harvester: {name}")
        return cls

    return decorator


def get_harvester(name: str) -> Type["BaseHarvester"]:
    """Get harvester class by type name."""
    if name not in _harvesters:
        raise ValueError(
            f"Unknown harvester: {name}. Available: {list(_harvesters.keys())}"
        )
    return _harvesters[name]


def list_harvesters() -> List[str]:
    """List all registered harvester type names."""
    return list(_harvesters.keys())


class BaseHarvester:
    """
    Base class for all harvester types.

    Subclasses must implement:
    - run() - one harvest of the configured source

    A harvester holds one immutable source snapshot at a time. ``configure``
    swaps it wholesale; a run in progress keeps the snapshot it started with.
    """

    type_name: str = "base"

    def __init__(self, store, source=None):
        self.store = store
        self.source = source

    def configure(self, source) -> None:
        """Replace the source snapshot used by subsequent runs."""
        self.source = source
        logger.info(f"Configured {self.type_name} harvester: {source.name}")

    async def run(self, cancel_event: Optional[asyncio.Event] = None):
        """Run one harvest - override in subclass."""
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        """Describe this harvester and its configured source."""
        return {
            "type": self.type_name,
            "source": self.source.model_dump(mode="json") if self.source else None,
        }


# Import harvesters to trigger registration
# These imports are at the bottom to avoid circular imports
def _load_harvesters():
    from .harvester import localfs  # noqa: F401


_load_harvesters()
