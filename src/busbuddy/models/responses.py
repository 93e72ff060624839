from enum import Enum

from pydantic import BaseModel, Field

from busbuddy.models.trip import GeoPoint, Trip, TripStatus


class StopStateTag(str, Enum):
    """Derived display status of a stop, in evaluation priority order."""

    ALL_ABSENT = "ALL_ABSENT"
    STANDARD_WAIT = "STANDARD_WAIT"
    EXTENDED_WAIT = "EXTENDED_WAIT"
    CLEAR = "CLEAR"


class Proximity(str, Enum):
    """How close a location ping is to the nearest route stop."""

    ARRIVED = "arrived"
    APPROACHING = "approaching"
    AWAY = "away"


class StopState(BaseModel):
    """Projection of one stop's wait state. Recomputed on demand, never stored."""

    stop_id: str
    name: str
    state: StopStateTag
    elapsed_seconds: int | None = Field(
        default=None, description="Seconds since arrival (only while the bus is at this stop)"
    )
    remaining_seconds: int | None = Field(
        default=None, description="Countdown to the end of the current waiting window"
    )
    wait_request_count: int = Field(description="Outstanding wait requests for this stop")
    total_riders: int = Field(description="Riders assigned to this stop")
    absent_count: int = Field(description="Riders marked absent at this stop")
    all_absent: bool


class ActionDecision(BaseModel):
    """Allow/deny result of a rider action gate."""

    allowed: bool
    reason: str | None = None


class StopStatesResponse(BaseModel):
    """Stop states for every stop on a bus's route."""

    bus_id: str
    trip_id: str | None = Field(default=None, description="Active trip, if one is running")
    trip_status: TripStatus | None = None
    current_stop_id: str | None = None
    stops: list[StopState]
    evaluated_at: str = Field(description="Clock reading used for evaluation (ISO 8601)")


class TripResponse(BaseModel):
    """Trip record returned by driver transitions."""

    trip: Trip
    created: bool = Field(default=False, description="True if start_trip created a new record")


class LocationUpdateResponse(BaseModel):
    """Result of a driver location ping."""

    trip_id: str
    location: GeoPoint
    nearest_stop_id: str | None = None
    nearest_stop_name: str | None = None
    distance_meters: float | None = None
    proximity: Proximity = Proximity.AWAY


class RiderActionResponse(BaseModel):
    """Result of a rider wait request or absence mark."""

    rider_id: str
    trip_id: str | None = None
    stop_id: str | None = None
    decision: ActionDecision
    recorded: bool = Field(description="True if the record was written")


class RouteStopMatch(BaseModel):
    """A fuzzy-matched route stop."""

    stop_id: str
    name: str
    score: float = Field(description="Match score (0-100)")


class RouteStopResolutionResponse(BaseModel):
    """Response from resolve_route_stop."""

    query: str
    route_id: str
    matches: list[RouteStopMatch]
    best_match: RouteStopMatch | None = None


class RiderStatusResponse(BaseModel):
    """A rider's view of the current trip: their stop and what they may do."""

    rider_id: str
    bus_id: str
    preferred_stop_id: str | None = None
    trip_id: str | None = None
    stop: StopState | None = Field(default=None, description="State of the rider's stop")
    has_absence: bool = False
    has_wait_request: bool = False
    can_send_wait_request: ActionDecision
    can_mark_absent: ActionDecision
    evaluated_at: str
