"""Tests for route publishing, stop resolution and proximity."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from busbuddy.data import store
from busbuddy.data.database import get_db, init_db
from busbuddy.models.responses import Proximity
from busbuddy.models.trip import GeoPoint, Route, RouteStop
from busbuddy.services.route_service import (
    SeedDocument,
    classify_proximity,
    haversine_distance,
    load_seed_file,
    nearest_stop,
    normalize_text,
    publish_seed,
    resolve_route_stop,
)

ROUTE = Route(
    route_id="route_1",
    bus_id="bus_1",
    route_name="Bus 1 - Dadar to Juhu",
    stops=[
        RouteStop(stop_id="stop_1", name="Dadar Station", lat=19.0178, lng=72.8478),
        RouteStop(stop_id="stop_2", name="Shivaji Park", lat=19.0269, lng=72.8383),
        RouteStop(stop_id="stop_3", name="Juhu Beach School", lat=19.0988, lng=72.8267),
    ],
)


class TestHaversineDistance:
    """Tests for haversine distance calculation."""

    def test_same_point(self) -> None:
        """Distance from a point to itself is zero."""
        assert haversine_distance(19.0178, 72.8478, 19.0178, 72.8478) == 0.0

    def test_known_distance(self) -> None:
        """Dadar Station to Shivaji Park is a little over 1 km."""
        distance = haversine_distance(19.0178, 72.8478, 19.0269, 72.8383)
        assert 1200 < distance < 1600

    def test_symmetric(self) -> None:
        """Distance is the same in both directions."""
        d1 = haversine_distance(19.0178, 72.8478, 19.0988, 72.8267)
        d2 = haversine_distance(19.0988, 72.8267, 19.0178, 72.8478)
        assert abs(d1 - d2) < 0.001


class TestNormalizeText:
    def test_lowercases_and_strips_punctuation(self) -> None:
        """Case and punctuation are dropped and abbreviations expanded."""
        assert normalize_text("Dadar Stn.") == "dadar station"

    def test_removes_accents(self) -> None:
        """Accented characters are folded to ASCII."""
        assert normalize_text("Café Réal") == "cafe real"


class TestResolveRouteStop:
    """Tests for fuzzy stop lookup on a route."""

    def test_exact_stop_id(self) -> None:
        """An exact stop id scores 100."""
        response = resolve_route_stop(ROUTE, "stop_2")
        assert response.best_match.stop_id == "stop_2"
        assert response.best_match.score == 100.0

    def test_abbreviation(self) -> None:
        """Abbreviated names match the full stop name."""
        response = resolve_route_stop(ROUTE, "dadar stn")
        assert response.best_match.stop_id == "stop_1"

    def test_typo(self) -> None:
        """Misspelled names still match."""
        response = resolve_route_stop(ROUTE, "Shivaji Prak")
        assert response.best_match.stop_id == "stop_2"

    def test_no_match(self) -> None:
        """Nothing above min_score gives an empty result."""
        response = resolve_route_stop(ROUTE, "zzzzqqq", min_score=80)
        assert response.matches == []
        assert response.best_match is None

    def test_limit(self) -> None:
        """Matches are capped at limit."""
        response = resolve_route_stop(ROUTE, "a", limit=1, min_score=0)
        assert len(response.matches) == 1


class TestProximity:
    """Tests for nearest-stop and proximity buckets."""

    def test_nearest_stop(self) -> None:
        """The closest route stop is returned with its distance."""
        stop, distance = nearest_stop(ROUTE, GeoPoint(lat=19.0985, lng=72.8270))
        assert stop.stop_id == "stop_3"
        assert distance < 100

    def test_empty_route(self) -> None:
        """A route without stops has no nearest stop."""
        empty = Route(route_id="r", bus_id="b", route_name="Empty")
        assert nearest_stop(empty, GeoPoint(lat=0, lng=0)) is None

    def test_buckets(self) -> None:
        """Distances map to arrived, approaching and away."""
        assert classify_proximity(10, 50, 500) == Proximity.ARRIVED
        assert classify_proximity(50, 50, 500) == Proximity.ARRIVED
        assert classify_proximity(300, 50, 500) == Proximity.APPROACHING
        assert classify_proximity(501, 50, 500) == Proximity.AWAY
        assert classify_proximity(None) == Proximity.AWAY


class TestPublishSeed:
    """Tests for loading routes and riders."""

    async def test_load_seed_file(self, tmp_path: Path) -> None:
        """Routes and riders from a JSON file are published."""
        db_path = await init_db(tmp_path / "busbuddy.db")
        seed_file = tmp_path / "seed.json"
        seed_file.write_text(
            json.dumps(
                {
                    "routes": [json.loads(ROUTE.model_dump_json())],
                    "riders": [
                        {"rider_id": "r1", "name": "Asha", "bus_id": "bus_1",
                         "preferred_stop_id": "stop_3"},
                    ],
                }
            )
        )

        counts = await load_seed_file(seed_file, db_path)
        assert counts == {"routes": 1, "riders": 1}

        async with get_db(db_path) as db:
            route = await store.get_route(db, "route_1")
            rider = await store.get_rider(db, "r1")
        assert route == ROUTE
        assert rider.preferred_stop_id == "stop_3"

    async def test_missing_file(self, tmp_path: Path) -> None:
        """A missing seed file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            await load_seed_file(tmp_path / "nope.json", tmp_path / "db.db")

    async def test_malformed_document(self, tmp_path: Path) -> None:
        """An invalid seed document fails validation."""
        seed_file = tmp_path / "seed.json"
        seed_file.write_text(json.dumps({"routes": [{"route_id": "x"}]}))
        with pytest.raises(ValidationError):
            await load_seed_file(seed_file, tmp_path / "db.db")

    async def test_rider_at_unknown_stop(self, tmp_path: Path) -> None:
        """A rider assigned to a stop off their route is rejected."""
        db_path = await init_db(tmp_path / "busbuddy.db")
        seed = SeedDocument(
            routes=[ROUTE],
            riders=[{"rider_id": "r1", "name": "A", "bus_id": "bus_1", "preferred_stop_id": "x"}],
        )
        with pytest.raises(ValueError):
            await publish_seed(seed, db_path)

    async def test_republish_replaces_stops(self, db_path: Path) -> None:
        """Publishing a route again replaces its stop list."""
        shorter = ROUTE.model_copy(update={"stops": ROUTE.stops[:2]})
        await publish_seed(SeedDocument(routes=[shorter]), db_path)
        async with get_db(db_path) as db:
            route = await store.get_route(db, "route_1")
        assert [s.stop_id for s in route.stops] == ["stop_1", "stop_2"]
