"""Command-line interface for the current user service."""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

import httpx

from userservice.config import Settings, load_settings

logger = logging.getLogger("userservice.main")

_DEFAULT_SERVICE_URL = "http://localhost:3000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Current user service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument(
        "--host",
        default=None,
        help="Bind address for the API (default: 0.0.0.0)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (default: 3000)",
    )
    serve_parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file",
    )

    init_parser = subparsers.add_parser(
        "init-db", help="Connect to the database and create the default user if missing"
    )
    init_parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file",
    )

    health_parser = subparsers.add_parser(
        "healthcheck", help="Query the health endpoint of a running service"
    )
    health_parser.add_argument(
        "--url",
        default=_DEFAULT_SERVICE_URL,
        help=f"Base URL of the running service (default: {_DEFAULT_SERVICE_URL})",
    )
    health_parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Request timeout in seconds",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "healthcheck"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings(config: str | None) -> Settings:
    config_path = Path(config).expanduser() if config else None
    try:
        return load_settings(config_path)
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc


def _serve(settings: Settings) -> int:
    from userservice.lifecycle import run_service

    return asyncio.run(run_service(settings))


def _initialise_database(settings: Settings) -> int:
    from userservice.database import MongoConnector

    async def _run() -> None:
        connector = MongoConnector(settings)
        try:
            await connector.start()
        finally:
            await connector.close()

    asyncio.run(_run())
    logger.info("Database %s is initialised", settings.database_name)
    return 0


def _check_health(base_url: str, timeout: float) -> int:
    endpoint = base_url.rstrip("/") + "/health"

    try:
        response = httpx.get(endpoint, timeout=timeout)
    except httpx.HTTPError as exc:
        print(f"Failed to contact service: {exc}")
        return 1

    try:
        payload = response.json()
    except ValueError:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return 1

    state = payload.get("status", "unknown") if isinstance(payload, dict) else "unknown"
    print(f"{endpoint}: {state} ({response.status_code})")
    if response.status_code == 200 and state == "healthy":
        return 0
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)

    if args.command == "healthcheck":
        logging.basicConfig(level=logging.WARNING, format="%(asctime)s [%(levelname)s] %(message)s")
        return _check_health(args.url, args.timeout)

    settings = _load_settings(getattr(args, "config", None))
    if args.command == "serve":
        try:
            settings = settings.with_overrides(host=args.host, port=args.port)
        except ValueError as exc:
            raise SystemExit(f"Invalid configuration: {exc}") from exc

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    if args.command == "init-db":
        return _initialise_database(settings)
    return _serve(settings)


if __name__ == "__main__":
    sys.exit(main())
