"""Route service: publishing routes and riders, stop lookup and proximity."""

import json
import logging
import math
import re
import unicodedata
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel
from rapidfuzz import fuzz

from busbuddy.data import store
from busbuddy.data.config import get_config
from busbuddy.data.database import get_db
from busbuddy.models.responses import (
    Proximity,
    RouteStopMatch,
    RouteStopResolutionResponse,
)
from busbuddy.models.trip import GeoPoint, Rider, Route, RouteStop

logger = logging.getLogger(__name__)

# Earth's radius in meters for haversine calculation
EARTH_RADIUS_METERS = 6_371_000

# Common abbreviations in stop names (lowercase -> expanded)
ABBREVIATIONS: dict[str, str] = {
    "stn": "station",
    "rd": "road",
    "st": "street",
    "opp": "opposite",
    "nr": "near",
    "sch": "school",
}

_WORD_RE = re.compile(r"[a-z0-9]+")


class SeedDocument(BaseModel):
    """Routes and riders to publish in one go."""

    routes: list[Route] = []
    riders: list[Rider] = []


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the great-circle distance between two points in meters.

    Args:
        lat1, lon1: First point coordinates in degrees.
        lat2, lon2: Second point coordinates in degrees.

    Returns:
        Distance in meters.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


@lru_cache(maxsize=4096)
def normalize_text(text: str) -> str:
    """Normalize a stop name or query for fuzzy matching.

    Lowercases, strips accents and punctuation, expands abbreviations.

    Example: "Dadar Stn." -> "dadar station"
    """
    decomposed = unicodedata.normalize("NFD", text.lower().strip())
    plain = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    words = [ABBREVIATIONS.get(w, w) for w in _WORD_RE.findall(plain)]
    return " ".join(words)


def resolve_route_stop(
    route: Route,
    query: str,
    limit: int = 5,
    min_score: float = 60.0,
) -> RouteStopResolutionResponse:
    """Match a free-text stop name against the stops of a route.

    An exact stop_id match scores 100. Otherwise names are scored with a blend
    of token_set_ratio (word order) and partial_ratio (substrings).
    """
    query_normalized = normalize_text(query)
    matches: list[RouteStopMatch] = []

    for stop in route.stops:
        if stop.stop_id == query.strip():
            score = 100.0
        else:
            target = normalize_text(stop.name)
            token_score = fuzz.token_set_ratio(query_normalized, target)
            partial_score = fuzz.partial_ratio(query_normalized, target)
            score = round(token_score * 0.7 + partial_score * 0.3, 1)
        if score >= min_score:
            matches.append(RouteStopMatch(stop_id=stop.stop_id, name=stop.name, score=score))

    matches.sort(key=lambda m: m.score, reverse=True)
    matches = matches[:limit]
    return RouteStopResolutionResponse(
        query=query,
        route_id=route.route_id,
        matches=matches,
        best_match=matches[0] if matches else None,
    )


def nearest_stop(route: Route, point: GeoPoint) -> tuple[RouteStop, float] | None:
    """Find the route stop closest to a point.

    Returns:
        (stop, distance in meters), or None if the route has no stops.
    """
    best: tuple[RouteStop, float] | None = None
    for stop in route.stops:
        distance = haversine_distance(point.lat, point.lng, stop.lat, stop.lng)
        if best is None or distance < best[1]:
            best = (stop, distance)
    return best


def classify_proximity(
    distance_meters: float | None,
    arrival_radius: float | None = None,
    approach_radius: float | None = None,
) -> Proximity:
    """Bucket a distance into ARRIVED / APPROACHING / AWAY."""
    if distance_meters is None:
        return Proximity.AWAY
    config = get_config()
    if arrival_radius is None:
        arrival_radius = config.arrival_radius_meters
    if approach_radius is None:
        approach_radius = config.approach_radius_meters

    if distance_meters <= arrival_radius:
        return Proximity.ARRIVED
    if distance_meters <= approach_radius:
        return Proximity.APPROACHING
    return Proximity.AWAY


async def publish_seed(seed: SeedDocument, db_path: Path | None = None) -> dict[str, int]:
    """Write routes and riders to the database.

    Rider preferred stops must exist on the route of the rider's bus.

    Returns:
        Dictionary with counts of routes and riders written.

    Raises:
        ValueError: If a rider references a stop that is not on its bus's route.
    """
    stops_by_bus: dict[str, set[str]] = {}
    for route in seed.routes:
        stops_by_bus.setdefault(route.bus_id, set()).update(s.stop_id for s in route.stops)

    for rider in seed.riders:
        if rider.preferred_stop_id is None:
            continue
        known = stops_by_bus.get(rider.bus_id)
        if known is not None and rider.preferred_stop_id not in known:
            raise ValueError(
                f"Rider {rider.rider_id} assigned to unknown stop "
                f"{rider.preferred_stop_id} on {rider.bus_id}"
            )

    async with get_db(db_path) as db:
        for route in seed.routes:
            await store.save_route(db, route)
            logger.info(f"Published route {route.route_id} ({len(route.stops)} stops)")
        for rider in seed.riders:
            await store.save_rider(db, rider)

    logger.info(f"Loaded {len(seed.riders)} riders")
    return {"routes": len(seed.routes), "riders": len(seed.riders)}


async def load_seed_file(path: Path, db_path: Path | None = None) -> dict[str, int]:
    """Publish routes and riders from a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        pydantic.ValidationError: If the document is malformed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Seed file not found: {path}")

    with open(path, encoding="utf-8") as f:
        seed = SeedDocument.model_validate(json.load(f))
    return await publish_seed(seed, db_path)


async def get_route_for_bus(bus_id: str, db_path: Path | None = None) -> Route | None:
    async with get_db(db_path) as db:
        return await store.get_route_for_bus(db, bus_id)
