"""Gates for rider-initiated actions.

Denial is an expected outcome and is returned as an ActionDecision, not raised.
Neither gate writes anything; callers write the record only when allowed.
"""

from datetime import datetime

from busbuddy.logic.timing import EXTENDED_WAIT_SECONDS, elapsed_seconds
from busbuddy.models.responses import ActionDecision
from busbuddy.models.trip import Trip, TripStatus

REASON_ABSENT = "Cannot request a wait after marking absent"
REASON_NOT_AT_STOP = "Bus is not at your stop"
REASON_WINDOW_CLOSED = "Wait request window has closed"
REASON_NO_TRIP = "No active trip"
REASON_ALREADY_ABSENT = "Already marked absent"
REASON_ALREADY_REQUESTED = "Wait request already sent"
REASON_NO_STOP = "No stop assigned"

ALLOWED = ActionDecision(allowed=True)


def deny(reason: str) -> ActionDecision:
    return ActionDecision(allowed=False, reason=reason)


def can_send_wait_request(
    has_absence: bool,
    trip: Trip | None,
    preferred_stop_id: str | None,
    now: datetime,
) -> ActionDecision:
    """Check whether a rider may ask the bus to wait.

    Denied, in order, when the rider is marked absent, when the bus is not
    stopped at the rider's stop, or when more than 420 seconds have passed
    since arrival (or the arrival time is unknown).

    Args:
        has_absence: Rider already has an absence record for this trip.
        trip: Current trip record, or None if no trip is running.
        preferred_stop_id: The rider's assigned stop.
        now: Clock reading.
    """
    if has_absence:
        return deny(REASON_ABSENT)

    # current_stop_id is None while IN_TRANSIT, so it never equals a real stop
    if (
        trip is None
        or preferred_stop_id is None
        or trip.current_stop_id != preferred_stop_id
        or trip.status != TripStatus.AT_STOP
    ):
        return deny(REASON_NOT_AT_STOP)

    elapsed = elapsed_seconds(trip.stop_arrived_at, now)
    if elapsed is None or elapsed > EXTENDED_WAIT_SECONDS:
        return deny(REASON_WINDOW_CLOSED)

    return ALLOWED


def can_mark_absent(has_absence: bool, trip_exists: bool) -> ActionDecision:
    """Check whether a rider may mark themselves absent for the trip.

    Absence is one-shot: a second mark is rejected, not merged.
    """
    if not trip_exists:
        return deny(REASON_NO_TRIP)
    if has_absence:
        return deny(REASON_ALREADY_ABSENT)
    return ALLOWED
