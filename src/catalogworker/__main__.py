"""CatalogWorker entry point.

Start the engine (all owners' export and import jobs):
    python -m catalogworker

Override the entry directory / log level:
    python -m catalogworker --config-dir ./config --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def serve() -> None:
    """Run the engine until SIGINT/SIGTERM."""
    from .config import get_config
    from .engine import Engine

    engine = Engine(get_config())
    await engine.start()

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _shutdown_handler():
        logger.info("Shutdown signal received, stopping CatalogWorker...")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown_handler)

    await stop_event.wait()
    await engine.stop()
    logger.info("CatalogWorker stopped.")


def main():
    """CLI entry point."""
    load_dotenv()

    parser = argparse.ArgumentParser(description="CatalogWorker: recurring catalog export/import")
    parser.add_argument(
        "--config-dir",
        default=None,
        help="Directory with per-owner entry files (default: CATALOGWORKER_CONFIG_DIR or ./config)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL env or INFO)",
    )
    args = parser.parse_args()

    if args.config_dir:
        os.environ["CATALOGWORKER_CONFIG_DIR"] = args.config_dir
    setup_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"))

    asyncio.run(serve())


if __name__ == "__main__":
    main()
