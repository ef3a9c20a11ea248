"""CatalogWorker - unified entry point.

Harvest one source, or all configured sources:
    python -m catalogworker run --source national-datasets
    python -m catalogworker run

Run the interval scheduler:
    python -m catalogworker schedule

Start the Temporal worker, or trigger a harvest workflow:
    python -m catalogworker worker
    python -m catalogworker start --source national-datasets

List registered harvester types:
    python -m catalogworker types
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CatalogWorker - filesystem harvesting into the metadata catalog"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL env or INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Harvest now")
    run_parser.add_argument("--source", "-s", help="Source name (default: all)")

    subparsers.add_parser("schedule", help="Run the interval scheduler")

    worker_parser = subparsers.add_parser("worker", help="Start Temporal worker")
    worker_parser.add_argument(
        "--temporal-host",
        default=None,
        help="Temporal server address (default: TEMPORAL_HOST env or localhost:7233)",
    )

    start_parser = subparsers.add_parser("start", help="Start a harvest workflow")
    start_parser.add_argument("--source", "-s", required=True, help="Source name")

    subparsers.add_parser("types", help="List registered harvester types")
    return parser


def main(argv=None):
    """CLI entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    from .config import get_config

    config = get_config()
    setup_logging(args.log_level or config.log_level)
    logger = logging.getLogger(__name__)

    if args.command == "run":
        from .harvester.errors import HarvestAbortedError
        from .harvester.orchestrator import run_all_harvests, run_harvest

        try:
            if args.source:
                result = asyncio.run(run_harvest(args.source, config=config.harvester))
                output = result.to_dict()
            else:
                output = asyncio.run(run_all_harvests(config=config.harvester))
        except HarvestAbortedError as e:
            logger.error(f"Harvest aborted: {e}")
            sys.exit(2)
        print(json.dumps(output, indent=2))

    elif args.command == "schedule":
        from .harvester.scheduler import run_scheduler

        try:
            asyncio.run(run_scheduler(config.harvester))
        except KeyboardInterrupt:
            logger.info("Shutting down...")

    elif args.command == "worker":
        from .worker import run_worker

        try:
            asyncio.run(run_worker(args.temporal_host))
        except KeyboardInterrupt:
            logger.info("Shutting down...")
            sys.exit(0)

    elif args.command == "start":
        from .worker import start_harvest

        handle = asyncio.run(start_harvest(args.source))
        print(handle.id)

    elif args.command == "types":
        from .registry import list_harvesters

        for name in list_harvesters():
            print(name)


if __name__ == "__main__":
    main()
