"""Shared fixtures: a seeded BusBuddy database and a fixed clock."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from busbuddy.data.database import init_db
from busbuddy.services.route_service import SeedDocument, publish_seed

T0 = datetime(2024, 9, 3, 7, 30, 0, tzinfo=UTC)

SEED = {
    "routes": [
        {
            "route_id": "route_1",
            "bus_id": "bus_1",
            "route_name": "Bus 1 - Dadar to Juhu",
            "stops": [
                {"stop_id": "stop_1", "name": "Dadar Station", "lat": 19.0178, "lng": 72.8478,
                 "scheduled_time": "07:30"},
                {"stop_id": "stop_2", "name": "Shivaji Park", "lat": 19.0269, "lng": 72.8383,
                 "scheduled_time": "07:40"},
                {"stop_id": "stop_3", "name": "Juhu Beach School", "lat": 19.0988, "lng": 72.8267,
                 "scheduled_time": "08:05"},
            ],
        }
    ],
    "riders": [
        {"rider_id": "driver_1", "name": "Ramesh", "role": "driver", "bus_id": "bus_1"},
        {"rider_id": "r1", "name": "Asha", "bus_id": "bus_1", "preferred_stop_id": "stop_1"},
        {"rider_id": "r2", "name": "Vikram", "bus_id": "bus_1", "preferred_stop_id": "stop_1"},
        {"rider_id": "r3", "name": "Meera", "bus_id": "bus_1", "preferred_stop_id": "stop_1"},
        {"rider_id": "r4", "name": "Kabir", "bus_id": "bus_1", "preferred_stop_id": "stop_2"},
    ],
}


@pytest.fixture
def seed_document() -> SeedDocument:
    return SeedDocument.model_validate(SEED)


@pytest.fixture
async def db_path(tmp_path: Path, seed_document: SeedDocument) -> Path:
    """Create an initialized database with one route and its riders."""
    path = await init_db(tmp_path / "busbuddy.db")
    await publish_seed(seed_document, path)
    return path
