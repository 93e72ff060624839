"""MCP tools for rider devices."""

from busbuddy.app import mcp
from busbuddy.models.responses import RiderActionResponse, RiderStatusResponse
from busbuddy.services import trip_service


@mcp.tool()
async def send_wait_request(rider_id: str) -> RiderActionResponse:
    """Ask the bus to wait at the rider's stop.

    Allowed only while the bus is stopped at the rider's own stop, within 7
    minutes of arrival, and if the rider has not marked themselves absent.
    A denial is returned with a reason; it is not an error.

    Args:
        rider_id: The rider's identifier.
    """
    return await trip_service.send_wait_request(rider_id=rider_id)


@mcp.tool()
async def mark_absent(rider_id: str) -> RiderActionResponse:
    """Mark the rider as not riding today's trip.

    Can be done once per trip; a second call is denied.

    Args:
        rider_id: The rider's identifier.
    """
    return await trip_service.mark_absent(rider_id=rider_id)


@mcp.tool()
async def get_rider_status(rider_id: str) -> RiderStatusResponse:
    """Get the state of the rider's stop and which actions are open to them."""
    return await trip_service.get_rider_status(rider_id=rider_id)
