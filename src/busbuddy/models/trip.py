"""Pydantic models for routes, riders, trips and rider records.

Routes and riders are static reference data. Trips, wait requests and
absences are the authoritative records every observer derives stop state from.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class TripStatus(str, Enum):
    """Whether the bus is stationary at a stop or moving between stops."""

    IN_TRANSIT = "IN_TRANSIT"
    AT_STOP = "AT_STOP"


class RiderRole(str, Enum):
    """Role of a registered user."""

    DRIVER = "driver"
    RIDER = "rider"


class GeoPoint(BaseModel):
    """Geographic position in decimal degrees."""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class RouteStop(BaseModel):
    """A fixed waypoint on a route. Never mutated during a trip."""

    stop_id: str
    name: str
    lat: float
    lng: float
    scheduled_time: str | None = Field(default=None, description="Time of day, e.g. '07:45'")


class Route(BaseModel):
    """Published route for one bus, with its stops in travel order."""

    route_id: str
    bus_id: str
    route_name: str
    stops: list[RouteStop] = []
    active: bool = True

    def get_stop(self, stop_id: str) -> RouteStop | None:
        for stop in self.stops:
            if stop.stop_id == stop_id:
                return stop
        return None


class Rider(BaseModel):
    """An already-resolved user identity with its bus and stop assignment."""

    rider_id: str
    name: str
    role: RiderRole = RiderRole.RIDER
    bus_id: str
    preferred_stop_id: str | None = None  # riders only


class Trip(BaseModel):
    """One day's run of one bus.

    current_stop_id and stop_arrived_at are set together on arrival and
    cleared together on departure.
    """

    trip_id: str
    bus_id: str
    route_id: str
    driver_id: str
    started_at: datetime
    ended_at: datetime | None = None
    status: TripStatus = TripStatus.IN_TRANSIT
    current_stop_id: str | None = None
    stop_arrived_at: datetime | None = None
    location: GeoPoint | None = None

    @model_validator(mode="after")
    def _check_arrival_pair(self) -> "Trip":
        if (self.current_stop_id is None) != (self.stop_arrived_at is None):
            raise ValueError("current_stop_id and stop_arrived_at must be set together")
        return self

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


class WaitRequest(BaseModel):
    """A rider's request that the bus delay departure from their stop."""

    trip_id: str
    rider_id: str
    stop_id: str
    requested_at: datetime


class Absence(BaseModel):
    """A rider's self-mark of not riding on this trip."""

    trip_id: str
    rider_id: str
    stop_id: str
    marked_at: datetime
