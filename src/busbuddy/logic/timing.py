"""Time helpers shared by the stop-state evaluator and the action validator."""

from datetime import UTC, date, datetime

from busbuddy.models.responses import StopStateTag

# Wait windows in seconds since arrival. Both the displayed state and the
# wait-request gate read these.
STANDARD_WAIT_SECONDS = 300
EXTENDED_WAIT_SECONDS = 420


def as_utc(instant: datetime) -> datetime:
    """Return an aware datetime; naive values are taken to be UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant


def elapsed_seconds(arrived_at: datetime | None, now: datetime) -> int | None:
    """Whole seconds between arrival and now.

    Args:
        arrived_at: Arrival instant, or None if the bus is not at a stop.
        now: Clock reading.

    Returns:
        Elapsed seconds (floored), or None if the arrival instant is unknown.
    """
    if arrived_at is None:
        return None
    delta = as_utc(now) - as_utc(arrived_at)
    return int(delta.total_seconds() // 1)


def remaining_seconds(state: StopStateTag, elapsed: int | None) -> int | None:
    """Seconds left in the current waiting window, for display countdowns.

    Returns None outside STANDARD_WAIT and EXTENDED_WAIT.
    """
    if elapsed is None:
        return None
    if state == StopStateTag.STANDARD_WAIT:
        return max(0, STANDARD_WAIT_SECONDS - elapsed)
    if state == StopStateTag.EXTENDED_WAIT:
        return max(0, EXTENDED_WAIT_SECONDS - elapsed)
    return None


def format_countdown(seconds: int | None) -> str:
    """Format seconds as M:SS, or '--:--' when not applicable."""
    if seconds is None:
        return "--:--"
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes}:{secs:02d}"


def make_trip_id(bus_id: str, day: date) -> str:
    """Build the trip identifier for one bus on one calendar day.

    Two drivers starting the same bus on the same day get the same id, so
    trip creation is idempotent.

    Example: make_trip_id("bus_1", date(2024, 9, 3)) -> "trip_bus_1_2024_09_03"
    """
    return f"trip_{bus_id}_{day.year:04d}_{day.month:02d}_{day.day:02d}"
