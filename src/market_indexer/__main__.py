"""
Market indexer CLI entry point.

Follow the token and market contracts, persist every event, and keep the
token and order projections current.

Usage::

    python -m market_indexer --config indexer.yaml
    python -m market_indexer --config indexer.yaml --stream OrderBid --stream OrderFilled
    RPC_HTTP_URL=... RPC_WS_URL=... TOKEN_CONTRACT=0x... MARKET_CONTRACT=0x... \\
        python -m market_indexer --db /var/lib/indexer/indexer.db

Options:
    --config      YAML configuration file (environment variables override it)
    --db          SQLite database path (overrides INDEXER_DB_PATH)
    --stream      Stream to follow (can be repeated, default: all)
    --api-port    Port of the status/metrics API (default: 8080)
    --no-api      Do not start the API server
    --no-drift    Do not run the drift monitor
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

import yaml

from market_indexer.api import ApiServerConfig
from market_indexer.chain import StreamKind
from market_indexer.config import IndexerConfig
from market_indexer.node import Indexer

logger = logging.getLogger(__name__)


class ColoredFormatter(logging.Formatter):
    """Logging formatter with ANSI colors for better readability."""

    # ANSI color codes
    GREY = "\x1b[38;5;244m"
    BLUE = "\x1b[38;5;39m"
    GREEN = "\x1b[38;5;40m"
    YELLOW = "\x1b[38;5;220m"
    RED = "\x1b[38;5;196m"
    BOLD_RED = "\x1b[38;5;196;1m"
    CYAN = "\x1b[38;5;51m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)

        timestamp = f"{self.CYAN}{self.formatTime(record, self.datefmt)}{self.RESET}"
        levelname = f"{color}{record.levelname:8}{self.RESET}"
        name = f"{self.BLUE}{record.name}{self.RESET}"

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{timestamp} {levelname} {name}: {message}"


def setup_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Configure logging for the indexer with optional colors."""
    level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    handler.setLevel(level)

    if no_color:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = ColoredFormatter(datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

    # Request-level chatter from the HTTP stack drowns the sync logs.
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def load_config(args: argparse.Namespace) -> IndexerConfig:
    """
    Resolve the configuration from the YAML file, the environment and the flags.

    Raises:
        ValueError: If the configuration is incomplete or invalid.
    """
    config = IndexerConfig.load(args.config)
    if args.db is not None:
        config = config.model_copy(update={"database_path": str(args.db)})
    return config


async def run_indexer(
    config: IndexerConfig,
    streams: list[StreamKind] | None = None,
    api_config: ApiServerConfig | None = None,
    drift_check: bool = True,
) -> bool:
    """
    Run the indexer until interrupted or until every stream has ended.

    Args:
        config: Resolved configuration.
        streams: Streams to follow. All of them when None.
        api_config: API server settings. No API server when None.
        drift_check: Whether to run the drift monitor.

    Returns:
        True if no stream failed.
    """
    indexer = Indexer.from_config(
        config, streams=streams, api_config=api_config, drift_check=drift_check
    )

    logger.info("Starting indexer...")
    await indexer.run()

    failed = indexer.failed_streams
    if failed:
        logger.error(f"Streams halted on errors: {', '.join(str(s) for s in failed)}")
    return not failed


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        description="Market event indexer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML configuration file",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database path (overrides the configuration)",
    )
    parser.add_argument(
        "--stream",
        action="append",
        choices=[kind.value for kind in StreamKind],
        default=None,
        dest="streams",
        help="Stream to follow (can be repeated, default: all)",
    )
    parser.add_argument(
        "--api-port",
        type=int,
        default=8080,
        help="Port of the status and metrics API (default: 8080)",
    )
    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Do not start the API server",
    )
    parser.add_argument(
        "--no-drift",
        action="store_true",
        help="Do not run the drift monitor",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored logging output",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose, args.no_color)

    try:
        config = load_config(args)
    except (ValueError, OSError, yaml.YAMLError) as exc:
        logger.error(f"Invalid configuration: {exc}")
        return 2

    streams = [StreamKind(name) for name in args.streams] if args.streams else None
    api_config = None if args.no_api else ApiServerConfig(port=args.api_port)

    # asyncio.run cancels every task on interrupt and closes the loop.
    try:
        ok = asyncio.run(
            run_indexer(config, streams, api_config, drift_check=not args.no_drift)
        )
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return 0

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
