"""SQLite-backed storage for routes, riders, trips and rider records.

Wait requests and absences are keyed by (trip_id, rider_id) and append-only:
a second write for the same key is rejected with RecordExistsError rather
than overwriting. Uniqueness is enforced here, not in the evaluator.
"""

import logging
from datetime import datetime

import aiosqlite

from busbuddy.logic.timing import as_utc
from busbuddy.models.trip import (
    Absence,
    GeoPoint,
    Rider,
    RiderRole,
    Route,
    RouteStop,
    Trip,
    TripStatus,
    WaitRequest,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base class for storage errors."""


class RecordNotFoundError(StoreError):
    """Raised when a write targets a record that does not exist."""


class RecordExistsError(StoreError):
    """Raised when a keyed record has already been written."""


def _iso(instant: datetime) -> str:
    return as_utc(instant).isoformat()


def _row_to_trip(row: aiosqlite.Row) -> Trip:
    location = None
    if row["lat"] is not None and row["lng"] is not None:
        location = GeoPoint(lat=row["lat"], lng=row["lng"])
    return Trip(
        trip_id=row["trip_id"],
        bus_id=row["bus_id"],
        route_id=row["route_id"],
        driver_id=row["driver_id"],
        started_at=row["started_at"],
        ended_at=row["ended_at"],
        status=TripStatus(row["status"]),
        current_stop_id=row["current_stop_id"],
        stop_arrived_at=row["stop_arrived_at"],
        location=location,
    )


def _row_to_rider(row: aiosqlite.Row) -> Rider:
    return Rider(
        rider_id=row["rider_id"],
        name=row["name"],
        role=RiderRole(row["role"]),
        bus_id=row["bus_id"],
        preferred_stop_id=row["preferred_stop_id"],
    )


# Routes


async def save_route(db: aiosqlite.Connection, route: Route) -> None:
    """Publish a route and its stops, replacing any previous version."""
    await db.execute(
        "INSERT OR REPLACE INTO routes (route_id, bus_id, route_name, active) VALUES (?, ?, ?, ?)",
        (route.route_id, route.bus_id, route.route_name, int(route.active)),
    )
    await db.execute("DELETE FROM route_stops WHERE route_id = ?", (route.route_id,))
    await db.executemany(
        """
        INSERT INTO route_stops (route_id, stop_sequence, stop_id, name, lat, lng, scheduled_time)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [
            (route.route_id, seq, s.stop_id, s.name, s.lat, s.lng, s.scheduled_time)
            for seq, s in enumerate(route.stops, start=1)
        ],
    )
    await db.commit()


async def _load_route(db: aiosqlite.Connection, row: aiosqlite.Row) -> Route:
    sql = """
        SELECT stop_id, name, lat, lng, scheduled_time
        FROM route_stops
        WHERE route_id = ?
        ORDER BY stop_sequence
    """
    async with db.execute(sql, (row["route_id"],)) as cursor:
        stop_rows = await cursor.fetchall()

    return Route(
        route_id=row["route_id"],
        bus_id=row["bus_id"],
        route_name=row["route_name"],
        active=bool(row["active"]),
        stops=[
            RouteStop(
                stop_id=s["stop_id"],
                name=s["name"],
                lat=s["lat"],
                lng=s["lng"],
                scheduled_time=s["scheduled_time"],
            )
            for s in stop_rows
        ],
    )


async def get_route(db: aiosqlite.Connection, route_id: str) -> Route | None:
    async with db.execute("SELECT * FROM routes WHERE route_id = ?", (route_id,)) as cursor:
        row = await cursor.fetchone()
    if row is None:
        return None
    return await _load_route(db, row)


async def get_route_for_bus(db: aiosqlite.Connection, bus_id: str) -> Route | None:
    """Get the active route assigned to a bus."""
    sql = "SELECT * FROM routes WHERE bus_id = ? AND active = 1 ORDER BY route_id LIMIT 1"
    async with db.execute(sql, (bus_id,)) as cursor:
        row = await cursor.fetchone()
    if row is None:
        return None
    return await _load_route(db, row)


# Riders


async def save_rider(db: aiosqlite.Connection, rider: Rider) -> None:
    await db.execute(
        """
        INSERT OR REPLACE INTO riders (rider_id, name, role, bus_id, preferred_stop_id)
        VALUES (?, ?, ?, ?, ?)
        """,
        (rider.rider_id, rider.name, rider.role.value, rider.bus_id, rider.preferred_stop_id),
    )
    await db.commit()


async def get_rider(db: aiosqlite.Connection, rider_id: str) -> Rider | None:
    async with db.execute("SELECT * FROM riders WHERE rider_id = ?", (rider_id,)) as cursor:
        row = await cursor.fetchone()
    return _row_to_rider(row) if row is not None else None


async def list_riders_for_bus(db: aiosqlite.Connection, bus_id: str) -> list[Rider]:
    """All riders (not drivers) assigned to a bus."""
    sql = "SELECT * FROM riders WHERE bus_id = ? AND role = ? ORDER BY rider_id"
    async with db.execute(sql, (bus_id, RiderRole.RIDER.value)) as cursor:
        rows = await cursor.fetchall()
    return [_row_to_rider(row) for row in rows]


async def list_riders_at_stop(db: aiosqlite.Connection, bus_id: str, stop_id: str) -> list[Rider]:
    """Roster of riders on a bus whose preferred stop is stop_id."""
    sql = """
        SELECT * FROM riders
        WHERE bus_id = ? AND role = ? AND preferred_stop_id = ?
        ORDER BY rider_id
    """
    async with db.execute(sql, (bus_id, RiderRole.RIDER.value, stop_id)) as cursor:
        rows = await cursor.fetchall()
    return [_row_to_rider(row) for row in rows]


# Trips


async def create_trip(db: aiosqlite.Connection, trip: Trip) -> bool:
    """Insert a trip unless one with the same id already exists.

    Returns:
        True if a new record was written, False if the id was already taken.
    """
    cursor = await db.execute(
        """
        INSERT OR IGNORE INTO trips (
            trip_id, bus_id, route_id, driver_id, started_at, ended_at,
            status, current_stop_id, stop_arrived_at, lat, lng
        ) VALUES (?, ?, ?, ?, ?, NULL, ?, NULL, NULL, ?, ?)
        """,
        (
            trip.trip_id,
            trip.bus_id,
            trip.route_id,
            trip.driver_id,
            _iso(trip.started_at),
            trip.status.value,
            trip.location.lat if trip.location else None,
            trip.location.lng if trip.location else None,
        ),
    )
    await db.commit()
    return cursor.rowcount > 0


async def get_trip(db: aiosqlite.Connection, trip_id: str) -> Trip | None:
    async with db.execute("SELECT * FROM trips WHERE trip_id = ?", (trip_id,)) as cursor:
        row = await cursor.fetchone()
    return _row_to_trip(row) if row is not None else None


async def get_active_trip_for_bus(db: aiosqlite.Connection, bus_id: str) -> Trip | None:
    """Get the bus's trip that has not ended, newest first."""
    sql = """
        SELECT * FROM trips
        WHERE bus_id = ? AND ended_at IS NULL
        ORDER BY started_at DESC
        LIMIT 1
    """
    async with db.execute(sql, (bus_id,)) as cursor:
        row = await cursor.fetchone()
    return _row_to_trip(row) if row is not None else None


async def _update_trip(db: aiosqlite.Connection, trip_id: str, sql: str, params: tuple) -> None:
    cursor = await db.execute(sql, (*params, trip_id))
    await db.commit()
    if cursor.rowcount == 0:
        raise RecordNotFoundError(f"Trip not found: {trip_id}")


async def set_arrival(
    db: aiosqlite.Connection, trip_id: str, stop_id: str, arrived_at: datetime
) -> None:
    """Mark the trip AT_STOP; stop id and arrival time are written together."""
    await _update_trip(
        db,
        trip_id,
        "UPDATE trips SET status = ?, current_stop_id = ?, stop_arrived_at = ? WHERE trip_id = ?",
        (TripStatus.AT_STOP.value, stop_id, _iso(arrived_at)),
    )


async def clear_arrival(db: aiosqlite.Connection, trip_id: str) -> None:
    """Mark the trip IN_TRANSIT; stop id and arrival time are cleared together."""
    await _update_trip(
        db,
        trip_id,
        "UPDATE trips SET status = ?, current_stop_id = NULL, stop_arrived_at = NULL WHERE trip_id = ?",
        (TripStatus.IN_TRANSIT.value,),
    )


async def end_trip(db: aiosqlite.Connection, trip_id: str, ended_at: datetime) -> None:
    await _update_trip(
        db,
        trip_id,
        """
        UPDATE trips
        SET ended_at = ?, status = ?, current_stop_id = NULL, stop_arrived_at = NULL
        WHERE trip_id = ?
        """,
        (_iso(ended_at), TripStatus.IN_TRANSIT.value),
    )


async def update_location(db: aiosqlite.Connection, trip_id: str, location: GeoPoint) -> None:
    await _update_trip(
        db,
        trip_id,
        "UPDATE trips SET lat = ?, lng = ? WHERE trip_id = ?",
        (location.lat, location.lng),
    )


# Wait requests and absences


async def insert_wait_request(db: aiosqlite.Connection, request: WaitRequest) -> None:
    """Append a wait request.

    Raises:
        RecordExistsError: If this rider already has a wait request on the trip.
    """
    try:
        await db.execute(
            "INSERT INTO wait_requests (trip_id, rider_id, stop_id, requested_at) VALUES (?, ?, ?, ?)",
            (request.trip_id, request.rider_id, request.stop_id, _iso(request.requested_at)),
        )
        await db.commit()
    except aiosqlite.IntegrityError as e:
        await db.rollback()
        raise RecordExistsError(
            f"Wait request already recorded for {request.rider_id} on {request.trip_id}"
        ) from e


async def insert_absence(db: aiosqlite.Connection, absence: Absence) -> None:
    """Append an absence.

    Raises:
        RecordExistsError: If this rider is already marked absent on the trip.
    """
    try:
        await db.execute(
            "INSERT INTO absences (trip_id, rider_id, stop_id, marked_at) VALUES (?, ?, ?, ?)",
            (absence.trip_id, absence.rider_id, absence.stop_id, _iso(absence.marked_at)),
        )
        await db.commit()
    except aiosqlite.IntegrityError as e:
        await db.rollback()
        raise RecordExistsError(
            f"Absence already recorded for {absence.rider_id} on {absence.trip_id}"
        ) from e


async def list_wait_requests(
    db: aiosqlite.Connection, trip_id: str, stop_id: str | None = None
) -> list[WaitRequest]:
    """Wait requests on a trip, optionally limited to one stop."""
    sql = "SELECT * FROM wait_requests WHERE trip_id = ?"
    params: tuple = (trip_id,)
    if stop_id is not None:
        sql += " AND stop_id = ?"
        params = (trip_id, stop_id)

    async with db.execute(sql + " ORDER BY requested_at", params) as cursor:
        rows = await cursor.fetchall()
    return [WaitRequest.model_validate(dict(row)) for row in rows]


async def list_absences(
    db: aiosqlite.Connection, trip_id: str, stop_id: str | None = None
) -> list[Absence]:
    """Absences on a trip, optionally limited to one stop."""
    sql = "SELECT * FROM absences WHERE trip_id = ?"
    params: tuple = (trip_id,)
    if stop_id is not None:
        sql += " AND stop_id = ?"
        params = (trip_id, stop_id)

    async with db.execute(sql + " ORDER BY marked_at", params) as cursor:
        rows = await cursor.fetchall()
    return [Absence.model_validate(dict(row)) for row in rows]


async def get_absence(db: aiosqlite.Connection, trip_id: str, rider_id: str) -> Absence | None:
    sql = "SELECT * FROM absences WHERE trip_id = ? AND rider_id = ?"
    async with db.execute(sql, (trip_id, rider_id)) as cursor:
        row = await cursor.fetchone()
    return Absence.model_validate(dict(row)) if row is not None else None


async def get_wait_request(
    db: aiosqlite.Connection, trip_id: str, rider_id: str
) -> WaitRequest | None:
    sql = "SELECT * FROM wait_requests WHERE trip_id = ? AND rider_id = ?"
    async with db.execute(sql, (trip_id, rider_id)) as cursor:
        row = await cursor.fetchone()
    return WaitRequest.model_validate(dict(row)) if row is not None else None
