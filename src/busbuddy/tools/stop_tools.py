"""MCP tools for reading derived stop states."""

from busbuddy.app import mcp
from busbuddy.data.store import RecordNotFoundError
from busbuddy.models.responses import RouteStopResolutionResponse, StopState, StopStatesResponse
from busbuddy.services import route_service, trip_service


@mcp.tool()
async def get_stop_states(bus_id: str) -> StopStatesResponse:
    """Get the wait state of every stop on a bus's route.

    States, in priority order:
    - ALL_ABSENT: every rider at the stop marked absent (driver may skip)
    - STANDARD_WAIT: bus at the stop, up to 5 minutes since arrival
    - EXTENDED_WAIT: 5-7 minutes since arrival, with a wait request
    - CLEAR: bus moving or elsewhere, or the waiting window closed

    Args:
        bus_id: Bus identifier (e.g., "bus_1").
    """
    return await trip_service.get_stop_states(bus_id=bus_id)


@mcp.tool()
async def get_stop_state(bus_id: str, stop_id: str) -> StopState:
    """Get the wait state of one stop on a bus's route.

    Args:
        bus_id: Bus identifier.
        stop_id: Stop on the bus's route.
    """
    return await trip_service.get_stop_state(bus_id=bus_id, stop_id=stop_id)


@mcp.tool()
async def resolve_route_stop(
    bus_id: str,
    query: str,
    limit: int = 5,
    min_score: float = 60.0,
) -> RouteStopResolutionResponse:
    """Find stops on a bus's route by name, tolerating typos and abbreviations.

    Examples:
        resolve_route_stop("bus_1", "dadar stn")
        resolve_route_stop("bus_1", "stop_3")  # exact stop id

    Args:
        bus_id: Bus identifier.
        query: Stop name or stop id.
        limit: Maximum number of matches (1-20, default 5).
        min_score: Minimum match score 0-100 (default 60).
    """
    limit = max(1, min(20, limit))

    route = await route_service.get_route_for_bus(bus_id)
    if route is None:
        raise RecordNotFoundError(f"No active route for bus {bus_id}")
    return route_service.resolve_route_stop(route, query, limit=limit, min_score=min_score)
