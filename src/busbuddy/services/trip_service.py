"""Trip service: driver transitions, stop-state reads and rider actions.

Every read goes to the store; stop states are derived on each call and never
persisted. Rider actions re-read the trip and the rider's absence right before
validating, and a duplicate rejected by the store wins over the pre-check.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from busbuddy.data import store
from busbuddy.data.database import get_db
from busbuddy.data.store import RecordExistsError, RecordNotFoundError
from busbuddy.logic.stop_state import evaluate_route, evaluate_stop_state
from busbuddy.logic.timing import as_utc, make_trip_id
from busbuddy.logic.validation import (
    REASON_ALREADY_ABSENT,
    REASON_ALREADY_REQUESTED,
    REASON_NO_STOP,
    can_mark_absent,
    can_send_wait_request,
    deny,
)
from busbuddy.models.responses import (
    LocationUpdateResponse,
    RiderActionResponse,
    RiderStatusResponse,
    StopState,
    StopStatesResponse,
    TripResponse,
)
from busbuddy.models.trip import (
    Absence,
    GeoPoint,
    Rider,
    RiderRole,
    Route,
    Trip,
    TripStatus,
    WaitRequest,
)
from busbuddy.services.route_service import classify_proximity, nearest_stop

logger = logging.getLogger(__name__)


@dataclass
class BusSnapshot:
    """Authoritative records for one bus, read together."""

    route: Route
    trip: Trip | None
    riders: list[Rider]
    absences: list[Absence]
    wait_requests: list[WaitRequest]


def _resolve_now(now: datetime | None) -> datetime:
    return as_utc(now).astimezone(UTC) if now is not None else datetime.now(UTC)


async def _require_route(db: aiosqlite.Connection, bus_id: str) -> Route:
    route = await store.get_route_for_bus(db, bus_id)
    if route is None:
        raise RecordNotFoundError(f"No active route for bus {bus_id}")
    return route


async def _require_active_trip(db: aiosqlite.Connection, trip_id: str) -> Trip:
    trip = await store.get_trip(db, trip_id)
    if trip is None:
        raise RecordNotFoundError(f"Trip not found: {trip_id}")
    if not trip.is_active:
        raise ValueError(f"Trip {trip_id} has already ended")
    return trip


async def _require_rider(db: aiosqlite.Connection, rider_id: str) -> Rider:
    rider = await store.get_rider(db, rider_id)
    if rider is None:
        raise RecordNotFoundError(f"Rider not found: {rider_id}")
    if rider.role != RiderRole.RIDER:
        raise ValueError(f"{rider_id} is not a rider")
    return rider


async def _load_snapshot(db: aiosqlite.Connection, bus_id: str) -> BusSnapshot:
    route = await _require_route(db, bus_id)
    trip = await store.get_active_trip_for_bus(db, bus_id)
    riders = await store.list_riders_for_bus(db, bus_id)
    absences: list[Absence] = []
    wait_requests: list[WaitRequest] = []
    if trip is not None:
        absences = await store.list_absences(db, trip.trip_id)
        wait_requests = await store.list_wait_requests(db, trip.trip_id)
    return BusSnapshot(route, trip, riders, absences, wait_requests)


# Driver transitions


async def start_trip(
    bus_id: str,
    driver_id: str,
    location: GeoPoint | None = None,
    now: datetime | None = None,
    db_path: Path | None = None,
) -> TripResponse:
    """Start today's trip for a bus, or return it if it is already running.

    A trip still running from an earlier day (e.g. across midnight) is
    returned as is. Otherwise the trip id is derived from the bus and the
    calendar date of `now`, so concurrent starts on the same day land on the
    same record.

    Raises:
        RecordNotFoundError: If the driver or the bus's route is unknown.
        ValueError: If the user is not a driver, or today's trip already ended.
    """
    now = _resolve_now(now)
    async with get_db(db_path) as db:
        driver = await store.get_rider(db, driver_id)
        if driver is None:
            raise RecordNotFoundError(f"Driver not found: {driver_id}")
        if driver.role != RiderRole.DRIVER:
            raise ValueError(f"{driver_id} is not a driver")

        route = await _require_route(db, bus_id)

        running = await store.get_active_trip_for_bus(db, bus_id)
        if running is not None:
            logger.info(f"Trip already running: {running.trip_id}")
            return TripResponse(trip=running, created=False)

        trip = Trip(
            trip_id=make_trip_id(bus_id, now.date()),
            bus_id=bus_id,
            route_id=route.route_id,
            driver_id=driver_id,
            started_at=now,
            location=location,
        )
        created = await store.create_trip(db, trip)
        stored = await store.get_trip(db, trip.trip_id)

    if stored is None:
        raise RecordNotFoundError(f"Trip not found after create: {trip.trip_id}")
    if not stored.is_active:
        raise ValueError(f"Trip {stored.trip_id} has already ended for today")

    if created:
        logger.info(f"Trip started: {stored.trip_id} by {driver_id}")
    else:
        logger.info(f"Trip already running: {stored.trip_id}")
    return TripResponse(trip=stored, created=created)


async def arrive_at_stop(
    trip_id: str,
    stop_id: str,
    now: datetime | None = None,
    db_path: Path | None = None,
) -> TripResponse:
    """Mark the bus as stopped at a route stop and start the wait clock.

    Arriving again at the stop the bus is already at keeps the original
    arrival time.

    Raises:
        ValueError: If the stop is not on the trip's route or the trip ended.
    """
    now = _resolve_now(now)
    async with get_db(db_path) as db:
        trip = await _require_active_trip(db, trip_id)
        route = await store.get_route(db, trip.route_id)
        if route is None or route.get_stop(stop_id) is None:
            raise ValueError(f"Stop {stop_id} is not on route {trip.route_id}")

        if trip.status == TripStatus.AT_STOP and trip.current_stop_id == stop_id:
            logger.debug(f"Trip {trip_id} already at {stop_id}")
        else:
            await store.set_arrival(db, trip_id, stop_id, now)
            logger.info(f"Trip {trip_id} arrived at {stop_id}")

        updated = await store.get_trip(db, trip_id)
    return TripResponse(trip=updated)


async def depart_from_stop(trip_id: str, db_path: Path | None = None) -> TripResponse:
    """Mark the bus as moving; the current stop and arrival time are cleared."""
    async with get_db(db_path) as db:
        trip = await _require_active_trip(db, trip_id)
        await store.clear_arrival(db, trip_id)
        logger.info(f"Trip {trip_id} departed {trip.current_stop_id}")
        updated = await store.get_trip(db, trip_id)
    return TripResponse(trip=updated)


async def end_trip(
    trip_id: str,
    now: datetime | None = None,
    db_path: Path | None = None,
) -> TripResponse:
    """End the trip. The record is kept as history."""
    now = _resolve_now(now)
    async with get_db(db_path) as db:
        await _require_active_trip(db, trip_id)
        await store.end_trip(db, trip_id, now)
        logger.info(f"Trip ended: {trip_id}")
        updated = await store.get_trip(db, trip_id)
    return TripResponse(trip=updated)


async def update_location(
    trip_id: str,
    location: GeoPoint,
    db_path: Path | None = None,
) -> LocationUpdateResponse:
    """Record a driver location ping and report the nearest route stop.

    Proximity is informational only; arrival is always an explicit driver
    transition.
    """
    async with get_db(db_path) as db:
        trip = await _require_active_trip(db, trip_id)
        await store.update_location(db, trip_id, location)
        route = await store.get_route(db, trip.route_id)

    response = LocationUpdateResponse(trip_id=trip_id, location=location)
    closest = nearest_stop(route, location) if route is not None else None
    if closest is not None:
        stop, distance = closest
        response.nearest_stop_id = stop.stop_id
        response.nearest_stop_name = stop.name
        response.distance_meters = round(distance, 1)
        response.proximity = classify_proximity(distance)
    return response


# Stop states


async def get_stop_states(
    bus_id: str,
    now: datetime | None = None,
    db_path: Path | None = None,
) -> StopStatesResponse:
    """Evaluate every stop on the bus's route against its active trip.

    With no active trip every stop is CLEAR unless all its riders are absent
    (which cannot happen without a trip, since absences belong to a trip).
    """
    now = _resolve_now(now)
    async with get_db(db_path) as db:
        snap = await _load_snapshot(db, bus_id)

    states = evaluate_route(
        snap.route, snap.trip, snap.riders, snap.absences, snap.wait_requests, now
    )
    return StopStatesResponse(
        bus_id=bus_id,
        trip_id=snap.trip.trip_id if snap.trip else None,
        trip_status=snap.trip.status if snap.trip else None,
        current_stop_id=snap.trip.current_stop_id if snap.trip else None,
        stops=states,
        evaluated_at=now.isoformat(),
    )


async def get_stop_state(
    bus_id: str,
    stop_id: str,
    now: datetime | None = None,
    db_path: Path | None = None,
) -> StopState:
    """Evaluate a single stop on the bus's route.

    Raises:
        ValueError: If the stop is not on the route.
    """
    now = _resolve_now(now)
    async with get_db(db_path) as db:
        snap = await _load_snapshot(db, bus_id)

    stop = snap.route.get_stop(stop_id)
    if stop is None:
        raise ValueError(f"Stop {stop_id} is not on route {snap.route.route_id}")
    roster = [r for r in snap.riders if r.preferred_stop_id == stop_id]
    return evaluate_stop_state(stop, snap.trip, roster, snap.absences, snap.wait_requests, now)


# Rider actions


async def send_wait_request(
    rider_id: str,
    now: datetime | None = None,
    db_path: Path | None = None,
) -> RiderActionResponse:
    """Ask the bus to wait at the rider's stop.

    Returns a denial (not an exception) when the gate or the store rejects it.

    Requests are stored once per rider per trip. After the bus departs and
    comes back to the same stop the old request no longer counts, but a new
    one is still denied as already sent.
    """
    now = _resolve_now(now)
    async with get_db(db_path) as db:
        rider = await _require_rider(db, rider_id)
        trip = await store.get_active_trip_for_bus(db, rider.bus_id)
        has_absence = (
            trip is not None and await store.get_absence(db, trip.trip_id, rider_id) is not None
        )

        decision = can_send_wait_request(has_absence, trip, rider.preferred_stop_id, now)
        response = RiderActionResponse(
            rider_id=rider_id,
            trip_id=trip.trip_id if trip else None,
            stop_id=rider.preferred_stop_id,
            decision=decision,
            recorded=False,
        )
        if not decision.allowed:
            logger.debug(f"Wait request denied for {rider_id}: {decision.reason}")
            return response

        request = WaitRequest(
            trip_id=trip.trip_id,
            rider_id=rider_id,
            stop_id=rider.preferred_stop_id,
            requested_at=now,
        )
        try:
            await store.insert_wait_request(db, request)
        except RecordExistsError:
            response.decision = deny(REASON_ALREADY_REQUESTED)
            logger.debug(f"Wait request denied for {rider_id}: already on record")
            return response

    logger.info(f"Wait request from {rider_id} at {request.stop_id} on {request.trip_id}")
    response.recorded = True
    return response


async def mark_absent(
    rider_id: str,
    now: datetime | None = None,
    db_path: Path | None = None,
) -> RiderActionResponse:
    """Mark the rider as not riding on the bus's active trip. One-shot."""
    now = _resolve_now(now)
    async with get_db(db_path) as db:
        rider = await _require_rider(db, rider_id)
        trip = await store.get_active_trip_for_bus(db, rider.bus_id)
        has_absence = (
            trip is not None and await store.get_absence(db, trip.trip_id, rider_id) is not None
        )

        decision = can_mark_absent(has_absence, trip is not None)
        if decision.allowed and rider.preferred_stop_id is None:
            decision = deny(REASON_NO_STOP)
        response = RiderActionResponse(
            rider_id=rider_id,
            trip_id=trip.trip_id if trip else None,
            stop_id=rider.preferred_stop_id,
            decision=decision,
            recorded=False,
        )
        if not decision.allowed:
            logger.debug(f"Absence denied for {rider_id}: {decision.reason}")
            return response

        absence = Absence(
            trip_id=trip.trip_id,
            rider_id=rider_id,
            stop_id=rider.preferred_stop_id,
            marked_at=now,
        )
        try:
            await store.insert_absence(db, absence)
        except RecordExistsError:
            response.decision = deny(REASON_ALREADY_ABSENT)
            logger.debug(f"Absence denied for {rider_id}: already on record")
            return response

    logger.info(f"Absence from {rider_id} at {absence.stop_id} on {absence.trip_id}")
    response.recorded = True
    return response


async def get_rider_status(
    rider_id: str,
    now: datetime | None = None,
    db_path: Path | None = None,
) -> RiderStatusResponse:
    """The rider's stop state and which actions are currently open to them."""
    now = _resolve_now(now)
    async with get_db(db_path) as db:
        rider = await _require_rider(db, rider_id)
        snap = await _load_snapshot(db, rider.bus_id)

    trip = snap.trip
    has_absence = any(a.rider_id == rider_id for a in snap.absences)
    has_wait_request = any(w.rider_id == rider_id for w in snap.wait_requests)

    stop_state = None
    stop = snap.route.get_stop(rider.preferred_stop_id) if rider.preferred_stop_id else None
    if stop is not None:
        roster = [r for r in snap.riders if r.preferred_stop_id == stop.stop_id]
        stop_state = evaluate_stop_state(
            stop, trip, roster, snap.absences, snap.wait_requests, now
        )

    wait_decision = can_send_wait_request(has_absence, trip, rider.preferred_stop_id, now)
    if wait_decision.allowed and has_wait_request:
        wait_decision = deny(REASON_ALREADY_REQUESTED)
    absent_decision = can_mark_absent(has_absence, trip is not None)
    if absent_decision.allowed and rider.preferred_stop_id is None:
        absent_decision = deny(REASON_NO_STOP)

    return RiderStatusResponse(
        rider_id=rider_id,
        bus_id=rider.bus_id,
        preferred_stop_id=rider.preferred_stop_id,
        trip_id=trip.trip_id if trip else None,
        stop=stop_state,
        has_absence=has_absence,
        has_wait_request=has_wait_request,
        can_send_wait_request=wait_decision,
        can_mark_absent=absent_decision,
        evaluated_at=now.isoformat(),
    )
