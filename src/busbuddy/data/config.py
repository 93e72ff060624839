from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BusBuddyConfig(BaseSettings):
    """Runtime configuration for the BusBuddy server.

    Automatically loads from environment variables and .env file.
    The 5/7 minute wait windows live in busbuddy.logic.timing.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    db_path: Path = Field(default=Path("data/busbuddy.db"), alias="BUSBUDDY_DB_PATH")

    # re-evaluation tick while a stop is being watched
    tick_seconds: float = Field(default=1.0, gt=0, alias="BUSBUDDY_TICK_SECONDS")

    # proximity thresholds for location pings (meters)
    arrival_radius_meters: float = Field(default=50.0, alias="BUSBUDDY_ARRIVAL_RADIUS")
    approach_radius_meters: float = Field(default=500.0, alias="BUSBUDDY_APPROACH_RADIUS")


@lru_cache
def get_config() -> BusBuddyConfig:
    """Get BusBuddy configuration (cached singleton).

    Returns:
        BusBuddyConfig with values from .env file or environment variables.
    """
    return BusBuddyConfig()
