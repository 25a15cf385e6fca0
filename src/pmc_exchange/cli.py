"""Command-line interface for pmc-exchange.

This module provides the main entry point for the CLI application. Records go
to standard output; logs go to standard error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import NoReturn

import structlog

from pmc_exchange import __version__
from pmc_exchange.agent.extraction_agent import ExtractionAgent, QueryMode
from pmc_exchange.config import DEFAULT_CONFIG_PATH, Settings, get_settings
from pmc_exchange.exceptions import ArgumentParsingError
from pmc_exchange.exchange.client import ExchangeClient

logger = structlog.get_logger()


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        raise ArgumentParsingError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="pmc-exchange",
        description="Emit unread and flagged Exchange messages as JSON lines",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Display details of what the program is doing.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Specify the configuration file to use (default: config.json).",
    )
    parser.add_argument(
        "--query",
        choices=[mode.value for mode in QueryMode],
        default=QueryMode.ALL.value,
        help="Which messages to emit: unread, flagged, or all (deduplicated). Default: all",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(level: str, *, verbose: bool = False) -> None:
    """Send structlog output to stderr at the requested level."""
    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(resolved),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


async def _run(settings: Settings, mode: QueryMode) -> int:
    client = ExchangeClient(settings)
    await client.authenticate()
    try:
        agent = ExtractionAgent(client, settings)
        await agent.run(mode)
    finally:
        await client.close()
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the pmc-exchange CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for a completed run, 1 for invalid arguments).
    """
    if args is None:
        args = sys.argv[1:]

    parser = _build_parser()
    try:
        parsed = parser.parse_args(args)
    except ArgumentParsingError as exc:
        print(f"{parser.prog}: error: {exc}", file=sys.stderr)
        return 1

    settings = get_settings(parsed.config)
    configure_logging(settings.log_level, verbose=parsed.verbose)

    logger.info("pmc_exchange_started", version=__version__, config=str(parsed.config))

    return asyncio.run(_run(settings, QueryMode(parsed.query)))


if __name__ == "__main__":
    sys.exit(main())
