import argparse
import asyncio
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel

from busbuddy.app import mcp
from busbuddy.data.config import get_config


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str


@mcp.tool()
def health() -> HealthResponse:
    """Check if the BusBuddy MCP server is running and healthy.

    Returns the server status, version, and current timestamp.
    """
    from busbuddy import __version__

    return HealthResponse(
        status="ok",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
    )


def register_tools() -> None:
    """Import tool modules so their @mcp.tool() decorators run."""
    from busbuddy.tools import driver_tools, rider_tools, stop_tools  # noqa: F401


async def run_init_db(db_path: Path) -> None:
    """Create the database schema."""
    from busbuddy.data.database import init_db

    path = await init_db(db_path)
    print(f"Database ready at {path}")


async def run_load_routes(seed_path: Path, db_path: Path) -> None:
    """Publish routes and riders from a JSON file."""
    from busbuddy.data.database import init_db
    from busbuddy.services.route_service import load_seed_file

    await init_db(db_path)
    counts = await load_seed_file(seed_path, db_path)

    print("\nLoad complete:")
    for name, count in counts.items():
        print(f"  {name}: {count:,}")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="busbuddy",
        description="BusBuddy MCP Server",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database path (default: data/busbuddy.db or BUSBUDDY_DB_PATH env var)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command")

    # init-db command
    subparsers.add_parser("init-db", help="Create the SQLite database schema")

    # load-routes command
    load_parser = subparsers.add_parser(
        "load-routes",
        help="Publish routes and riders from a JSON file",
    )
    load_parser.add_argument(
        "seed_path",
        type=Path,
        help='JSON file with {"routes": [...], "riders": [...]}',
    )

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.db is not None:
        # tools read the db path from config
        os.environ["BUSBUDDY_DB_PATH"] = str(args.db)
        get_config.cache_clear()
    db_path = get_config().db_path

    if args.command == "init-db":
        asyncio.run(run_init_db(db_path))
    elif args.command == "load-routes":
        asyncio.run(run_load_routes(args.seed_path, db_path))
    else:
        # Default: run MCP server
        register_tools()
        mcp.run()


if __name__ == "__main__":
    main()
