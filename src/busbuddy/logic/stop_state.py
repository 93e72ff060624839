"""Stop-state evaluator.

Turns the current trip record and a stop's rider records into a StopState.
Pure: no I/O, no clock reads, same inputs give the same output.

Priority order (first match wins):
1. ALL_ABSENT    - every rider assigned to the stop marked absent
2. CLEAR         - bus is moving, elsewhere, or has no arrival time
3. STANDARD_WAIT - up to 300s since arrival
4. EXTENDED_WAIT - up to 420s since arrival, only with a wait request
5. CLEAR         - window closed
"""

from collections.abc import Sequence
from datetime import datetime

from busbuddy.logic.timing import (
    EXTENDED_WAIT_SECONDS,
    STANDARD_WAIT_SECONDS,
    as_utc,
    elapsed_seconds,
    remaining_seconds,
)
from busbuddy.models.responses import StopState, StopStateTag
from busbuddy.models.trip import Absence, Rider, Route, RouteStop, Trip, TripStatus, WaitRequest


def _for_stop(records: Sequence, stop_id: str, trip: Trip | None) -> list:
    """Keep records for this stop (and this trip, when one is given)."""
    return [
        r
        for r in records
        if r.stop_id == stop_id and (trip is None or r.trip_id == trip.trip_id)
    ]


def is_at_stop(trip: Trip | None, stop_id: str) -> bool:
    """True if the trip is currently stopped at stop_id."""
    return (
        trip is not None
        and trip.status == TripStatus.AT_STOP
        and trip.current_stop_id == stop_id
    )


def outstanding_wait_requests(
    wait_requests: Sequence[WaitRequest], stop_id: str, trip: Trip | None
) -> list[WaitRequest]:
    """Wait requests that still apply to the bus's current visit to stop_id.

    A request expires when the bus leaves its stop. Records are never deleted,
    so requests for a stop the bus is not at, or made before the current
    arrival, are dropped here.
    """
    if not is_at_stop(trip, stop_id):
        return []
    arrived_at = trip.stop_arrived_at
    return [
        w
        for w in _for_stop(wait_requests, stop_id, trip)
        if arrived_at is None or as_utc(w.requested_at) >= as_utc(arrived_at)
    ]


def evaluate_stop_state(
    stop: RouteStop,
    trip: Trip | None,
    riders: Sequence[Rider],
    absences: Sequence[Absence],
    wait_requests: Sequence[WaitRequest],
    now: datetime,
) -> StopState:
    """Derive the wait state of one stop.

    Args:
        stop: The route stop being evaluated.
        trip: Current trip record, or None if no trip is running.
        riders: Roster of riders assigned to this stop.
        absences: Absence records (filtered to this stop here).
        wait_requests: Wait-request records (only those outstanding at this
            stop are counted).
        now: Clock reading used for elapsed time.

    Returns:
        StopState with the state tag and counts. Counts are always filled in,
        whichever branch decided the state.
    """
    stop_absences = _for_stop(absences, stop.stop_id, trip)
    stop_requests = outstanding_wait_requests(wait_requests, stop.stop_id, trip)

    total_riders = len(riders)
    absent_count = len({a.rider_id for a in stop_absences})
    wait_request_count = len({w.rider_id for w in stop_requests})
    all_absent = total_riders > 0 and absent_count == total_riders

    at_stop = is_at_stop(trip, stop.stop_id)
    elapsed = elapsed_seconds(trip.stop_arrived_at, now) if at_stop else None

    if all_absent:
        state = StopStateTag.ALL_ABSENT
    elif elapsed is None:
        # moving, elsewhere, or arrival time missing
        state = StopStateTag.CLEAR
    elif elapsed <= STANDARD_WAIT_SECONDS:
        state = StopStateTag.STANDARD_WAIT
    elif wait_request_count > 0 and elapsed <= EXTENDED_WAIT_SECONDS:
        state = StopStateTag.EXTENDED_WAIT
    else:
        state = StopStateTag.CLEAR

    return StopState(
        stop_id=stop.stop_id,
        name=stop.name,
        state=state,
        elapsed_seconds=elapsed,
        remaining_seconds=remaining_seconds(state, elapsed),
        wait_request_count=wait_request_count,
        total_riders=total_riders,
        absent_count=absent_count,
        all_absent=all_absent,
    )


def evaluate_route(
    route: Route,
    trip: Trip | None,
    riders: Sequence[Rider],
    absences: Sequence[Absence],
    wait_requests: Sequence[WaitRequest],
    now: datetime,
) -> list[StopState]:
    """Evaluate every stop on a route, in travel order.

    riders is the whole bus roster; each stop sees only the riders whose
    preferred stop it is.
    """
    states = []
    for stop in route.stops:
        roster = [r for r in riders if r.preferred_stop_id == stop.stop_id]
        states.append(evaluate_stop_state(stop, trip, roster, absences, wait_requests, now))
    return states
