"""Command-line interface for the swivel relay.

Provides the main entry point for serving the relay and for checking
which terminal backend the host supports.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="swivel",
        description="Realtime terminal-session relay",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/swivel.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the relay server")
    serve_parser.add_argument("--host", type=str, default=None, help="Override server.host")
    serve_parser.add_argument("--port", type=int, default=None, help="Override server.port")

    subparsers.add_parser("probe", help="Report which terminal backend this host would use")

    return parser.parse_args(argv)


def _serve(settings, args) -> None:
    import uvicorn

    from swivel.gateway.server import create_app

    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port

    app = create_app(settings)
    logger.info(
        "Swivel PTY server listening on http://%s:%d",
        settings.server.host, settings.server.port,
    )
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


def _probe(settings) -> None:
    from swivel.gateway.server import build_selector

    selector = build_selector(settings.relay)
    strategy = selector.probe_native_capability()
    print(f"Terminal backend: {strategy.value}")
    print(f"Shell command:    {settings.relay.resolved_command()}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the swivel CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from swivel.config.settings import load_settings
    from swivel.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting relay server")
        _serve(settings, args)

    elif args.command == "probe":
        _probe(settings)


if __name__ == "__main__":
    main()
