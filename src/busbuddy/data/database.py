"""Database connection helper for the BusBuddy SQLite database."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from busbuddy.data.config import get_config

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
-- routes (static once published)
CREATE TABLE IF NOT EXISTS routes (
    route_id TEXT PRIMARY KEY,
    bus_id TEXT NOT NULL,
    route_name TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1
);

-- route_stops, in travel order
CREATE TABLE IF NOT EXISTS route_stops (
    route_id TEXT NOT NULL,
    stop_sequence INTEGER NOT NULL,
    stop_id TEXT NOT NULL,
    name TEXT NOT NULL,
    lat REAL NOT NULL,
    lng REAL NOT NULL,
    scheduled_time TEXT,
    PRIMARY KEY (route_id, stop_sequence),
    UNIQUE (route_id, stop_id)
);

-- riders (drivers and riders, already authenticated elsewhere)
CREATE TABLE IF NOT EXISTS riders (
    rider_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    role TEXT NOT NULL,
    bus_id TEXT NOT NULL,
    preferred_stop_id TEXT
);

-- trips (one per bus per calendar day, never deleted)
CREATE TABLE IF NOT EXISTS trips (
    trip_id TEXT PRIMARY KEY,
    bus_id TEXT NOT NULL,
    route_id TEXT NOT NULL,
    driver_id TEXT NOT NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    status TEXT NOT NULL,
    current_stop_id TEXT,
    stop_arrived_at TEXT,
    lat REAL,
    lng REAL
);

-- wait_requests, one per (trip, rider)
CREATE TABLE IF NOT EXISTS wait_requests (
    trip_id TEXT NOT NULL,
    rider_id TEXT NOT NULL,
    stop_id TEXT NOT NULL,
    requested_at TEXT NOT NULL,
    PRIMARY KEY (trip_id, rider_id)
);

-- absences, one per (trip, rider)
CREATE TABLE IF NOT EXISTS absences (
    trip_id TEXT NOT NULL,
    rider_id TEXT NOT NULL,
    stop_id TEXT NOT NULL,
    marked_at TEXT NOT NULL,
    PRIMARY KEY (trip_id, rider_id)
);

CREATE INDEX IF NOT EXISTS idx_riders_bus_stop ON riders(bus_id, preferred_stop_id);
CREATE INDEX IF NOT EXISTS idx_trips_bus_active ON trips(bus_id, ended_at);
CREATE INDEX IF NOT EXISTS idx_wait_requests_stop ON wait_requests(trip_id, stop_id);
CREATE INDEX IF NOT EXISTS idx_absences_stop ON absences(trip_id, stop_id);
"""


def get_db_path() -> Path:
    """Get the database path from configuration."""
    return get_config().db_path


async def init_db(db_path: Path | None = None) -> Path:
    """Create the database schema if it does not exist yet.

    Safe to run against an existing database.

    Returns:
        Path of the initialized database.
    """
    if db_path is None:
        db_path = get_db_path()
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA journal_mode=WAL")
        await db.executescript(SCHEMA_SQL)
        await db.commit()

    logger.info(f"Database ready: {db_path}")
    return db_path


@asynccontextmanager
async def get_db(db_path: Path | None = None) -> AsyncIterator[aiosqlite.Connection]:
    """Async context manager for DB connections with Row factory.

    Args:
        db_path: Optional path to the database. If not provided, uses
                 BUSBUDDY_DB_PATH or defaults to 'data/busbuddy.db'.

    Yields:
        aiosqlite.Connection configured with Row factory for dict-like access.

    Raises:
        FileNotFoundError: If the database file doesn't exist.
    """
    if db_path is None:
        db_path = get_db_path()

    if not Path(db_path).exists():
        raise FileNotFoundError(
            f"Database not found at {db_path}. Run 'busbuddy init-db' to create it."
        )

    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        yield db
