"""
Harvester CLI - Run a filesystem harvest.

Usage:
    python -m catalogworker.harvester.run --source national-datasets
    python -m catalogworker.harvester.run            # all sources
    python -m catalogworker.harvester.run --source demo --dry-run

Environment Variables:
    HARVEST_SOURCES_DIR - Directory holding <source>.toml files
    PROJECT_DIR - Fallback: sources are read from PROJECT_DIR/harvester/sources
    HARVEST_DATABASE_URL - Catalog PostgreSQL URL
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from .config import HarvesterConfig
from .errors import HarvestAbortedError
from .orchestrator import run_all_harvests, run_harvest
from .store import InMemoryCatalogStore

# Load worker .env first
load_dotenv()

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Run a filesystem harvest into the metadata catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--source", "-s", help="Harvest source name (default: all sources)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Harvest into an empty in-memory catalog instead of PostgreSQL",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )

    args = parser.parse_args()

    # Setup logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    config = HarvesterConfig.from_env()
    store = InMemoryCatalogStore() if args.dry_run else None

    try:
        if args.source:
            result = asyncio.run(run_harvest(args.source, config=config, store=store))
            output = result.to_dict()
        else:
            output = asyncio.run(run_all_harvests(config=config, store=store))
        print(json.dumps(output, indent=2))
    except KeyboardInterrupt:
        logger.info("Harvest interrupted")
        sys.exit(1)
    except (HarvestAbortedError, FileNotFoundError) as e:
        logger.error(f"Harvest failed: {e}")
        sys.exit(2)
    except Exception as e:
        logger.exception(f"Harvest failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
