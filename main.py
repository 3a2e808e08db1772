"""Command-line interface for the feed service."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from feedserver.config import Settings, load_settings
from feedserver.database import Database

logger = logging.getLogger("feedserver.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Feed service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the collection indexes")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP feed service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the HTTP API (default: 8080)",
    )
    serve_parser.add_argument(
        "--log-level",
        default="info",
        choices=["critical", "error", "warning", "info", "debug"],
        help="Log level passed to uvicorn",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database.from_uri(settings.mongo_uri, settings.database_name)
    database.initialize()
    logger.info("Database %s initialised at %s", settings.database_name, settings.mongo_uri)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int, log_level: str) -> None:
    from feedserver.service import create_app
    import uvicorn

    logger.info("Starting feed API on http://%s:%s", host, port)
    app = create_app(settings=settings, database=database, initialize_database=False)
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    args = _parse_args(argv)
    settings = load_settings()
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(
            settings=settings,
            database=database,
            host=args.host,
            port=args.port,
            log_level=args.log_level,
        )
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
