"""MCP tools for the driver's device: trip lifecycle and location pings."""

from busbuddy.app import mcp
from busbuddy.models.responses import LocationUpdateResponse, TripResponse
from busbuddy.models.trip import GeoPoint
from busbuddy.services import trip_service


@mcp.tool()
async def start_trip(
    bus_id: str,
    driver_id: str,
    lat: float | None = None,
    lng: float | None = None,
) -> TripResponse:
    """Start today's trip for a bus.

    If the bus already has a running trip it is returned with created=False
    instead of creating a duplicate.

    Args:
        bus_id: Bus identifier (e.g., "bus_1").
        driver_id: Identifier of the driver starting the run.
        lat: Optional starting latitude.
        lng: Optional starting longitude (requires lat).

    Returns:
        TripResponse with the trip record.
    """
    location = GeoPoint(lat=lat, lng=lng) if lat is not None and lng is not None else None
    return await trip_service.start_trip(bus_id=bus_id, driver_id=driver_id, location=location)


@mcp.tool()
async def arrive_at_stop(trip_id: str, stop_id: str) -> TripResponse:
    """Mark the bus as stopped at a route stop; starts the 5/7 minute wait clock.

    Args:
        trip_id: Active trip identifier.
        stop_id: Stop on the trip's route.
    """
    return await trip_service.arrive_at_stop(trip_id=trip_id, stop_id=stop_id)


@mcp.tool()
async def depart_from_stop(trip_id: str) -> TripResponse:
    """Mark the bus as in transit. Outstanding wait requests for the stop expire."""
    return await trip_service.depart_from_stop(trip_id=trip_id)


@mcp.tool()
async def end_trip(trip_id: str) -> TripResponse:
    """End the trip. The trip record is kept as history."""
    return await trip_service.end_trip(trip_id=trip_id)


@mcp.tool()
async def update_location(trip_id: str, lat: float, lng: float) -> LocationUpdateResponse:
    """Record the bus's current position.

    Returns the nearest route stop and whether the bus has arrived (within
    50m by default) or is approaching (within 500m). Arrival still has to be
    confirmed with arrive_at_stop.

    Args:
        trip_id: Active trip identifier.
        lat: Latitude in degrees.
        lng: Longitude in degrees.
    """
    return await trip_service.update_location(trip_id=trip_id, location=GeoPoint(lat=lat, lng=lng))
