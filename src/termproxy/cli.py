"""Command-line interface for termproxy.

Provides the main entry point for running the proxy server, checking
the configured targets, and querying a running proxy.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_STATUS_URL = "http://localhost:3001"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="termproxy",
        description="WebSocket to SSH terminal proxy",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/termproxy.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the proxy server")
    serve_parser.add_argument("--host", type=str, default=None, help="Override listen address")
    serve_parser.add_argument("--port", type=int, default=None, help="Override listen port")

    subparsers.add_parser("targets", help="List configured targets and configuration warnings")

    status_parser = subparsers.add_parser("status", help="Query a running proxy")
    status_parser.add_argument(
        "--url", type=str, default=DEFAULT_STATUS_URL,
        help=f"Base URL of the proxy (default: {DEFAULT_STATUS_URL})",
    )

    return parser.parse_args(argv)


def _print_targets(settings) -> int:
    """Print the target table and validation warnings."""
    from termproxy.targets.registry import TargetRegistry

    targets = TargetRegistry.from_settings(settings)
    print(f"Configured targets ({len(targets)}):")
    for identifier in targets.list_identifiers():
        t = targets.lookup(identifier)
        key = t.credential_path or "(no key)"
        print(f"  {identifier:<12} {t.username}@{t.host}:{t.port}  key={key}  [{t.label}]")

    warnings = targets.validate_all()
    if warnings:
        print("\nConfiguration warnings:")
        for warning in warnings:
            print(f"  - {warning}")
        return 1
    print("\nAll targets look configured.")
    return 0


async def _status(url: str) -> int:
    """Fetch /health and /connections from a running proxy."""
    import httpx

    try:
        async with httpx.AsyncClient(base_url=url.rstrip("/"), timeout=5.0) as client:
            health = (await client.get("/health")).raise_for_status().json()
            conns = (await client.get("/connections")).raise_for_status().json()
    except httpx.HTTPError as e:
        print(f"Could not reach proxy at {url}: {e}")
        return 1

    print(f"Status:  {health['status']}")
    print(f"Uptime:  {health['uptime']:.0f}s")
    print(f"Targets: {', '.join(health['availableTargets']) or '(none)'}")
    for warning in health["targetValidation"]["warnings"]:
        print(f"  warning: {warning}")
    print(f"\nActive sessions: {conns['count']}")
    for conn in conns["connections"]:
        marker = "*" if conn["isActive"] else " "
        print(
            f"  {marker} {conn['sessionId']:<24} {conn['targetIdentifier']:<10} "
            f"{conn['state']:<11} since {conn['startTime']}"
        )
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the termproxy CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from termproxy.config.settings import load_settings
    from termproxy.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        if args.host:
            settings.server.host = args.host
        if args.port:
            settings.server.port = args.port
        logger.info("Starting proxy on %s:%d", settings.server.host, settings.server.port)
        from termproxy.endpoint.server import main as serve
        serve(settings)

    elif args.command == "targets":
        sys.exit(_print_targets(settings))

    elif args.command == "status":
        sys.exit(asyncio.run(_status(args.url)))


if __name__ == "__main__":
    main()
