"""
MusicDirect - Entry Point

Run with: python -m musicdirect
"""

import argparse
import asyncio
import logging
import sys

from musicdirect import __version__
from musicdirect.config import ConfigError, ServerConfig, load_config
from musicdirect.server import MusicDirectServer


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="musicdirect",
        description="MusicDirect - shared room playlists with real-time control",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="TOML config file merged over the defaults",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (default from config: 0.0.0.0)",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="HTTP/WebSocket port (default from config: 8080)",
    )

    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="SQLite database path (default from config: musicdirect.db)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Load the config file and apply command line overrides."""
    config = load_config(args.config)
    return config.with_overrides(host=args.host, port=args.port, db_path=args.db)


async def run_server(config: ServerConfig) -> None:
    """Start and run the MusicDirect server."""
    server = MusicDirectServer(config)
    await server.run()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 2

    logger.info("Starting MusicDirect...")

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
