"""
Remote Listener - Entry Point

Run with: python -m remotelistener [serve|ping]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from remotelistener.client import RemoteClient
from remotelistener.config import DEFAULT_PORT, ConfigError, ConfigProvider, load_config
from remotelistener.server import RemoteListenerServer


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
    logging.getLogger("PIL").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="remotelistener",
        description="Remote Listener - remote control for a media player over TCP",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the listener (default)")
    _add_common_arguments(serve)
    serve.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="TOML configuration file",
    )
    serve.add_argument("--library-db", type=Path, default=None, help="Library database path")
    serve.add_argument("--cover-dir", type=Path, default=None, help="Cover image directory")
    serve.add_argument("--cache-db", type=Path, default=None, help="Reduced database copy path")
    serve.add_argument("--music-root", type=Path, default=None, help="Music folder to scan")
    serve.add_argument(
        "--scan",
        action="store_true",
        help="Scan the music folder before accepting connections",
    )

    ping = subparsers.add_parser("ping", help="Send a Test request to a running listener")
    _add_common_arguments(ping)

    return parser


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help=f"Listener port (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind or connect to",
    )
    parser.add_argument(
        "--token",
        type=int,
        default=None,
        help="Auth token (0-65535)",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments; `serve` is the default command."""
    parser = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in ("serve", "ping", "-h", "--help", "--version"):
        argv.insert(0, "serve")
    return parser.parse_args(argv)


def config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {
        "port": args.port,
        "host": args.host,
        "auth_token": args.token,
    }
    if args.command == "serve":
        overrides.update(
            library_db=args.library_db,
            cover_dir=args.cover_dir,
            cache_db=args.cache_db,
            music_root=args.music_root,
        )
    return {key: value for key, value in overrides.items() if value is not None}


async def run_server(provider: ConfigProvider, scan: bool) -> None:
    """Start and run the listener until a shutdown signal."""
    server = RemoteListenerServer(provider, scan_on_start=scan)
    await server.run()


async def run_ping(host: str, port: int, token: int) -> bool:
    client = RemoteClient(host, port, token)
    return await client.test()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)
    overrides = config_overrides(args)
    config_path = getattr(args, "config", None)

    try:
        config = load_config(config_path, overrides=overrides)
    except (ConfigError, OSError) as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    if args.command == "ping":
        host = "127.0.0.1" if config.host in ("0.0.0.0", "") else config.host
        try:
            accepted = asyncio.run(run_ping(host, config.port, config.auth_token))
        except (OSError, asyncio.TimeoutError) as e:
            print(f"{host}:{config.port} unreachable: {e}")
            return 1
        print(f"{host}:{config.port} {'accepted' if accepted else 'rejected'} the token")
        return 0 if accepted else 1

    provider = ConfigProvider(config, config_path=config_path, overrides=overrides)
    logger.info("Starting Remote Listener...")

    try:
        asyncio.run(run_server(provider, scan=args.scan))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Listener stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
