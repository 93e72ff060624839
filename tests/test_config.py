"""Tests for settings loading."""

from pathlib import Path

import pytest

from busbuddy.data.config import BusBuddyConfig, get_config


@pytest.fixture(autouse=True)
def clear_config_cache():
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Defaults apply when nothing is set."""
    monkeypatch.chdir(tmp_path)  # no .env
    for name in (
        "BUSBUDDY_DB_PATH",
        "BUSBUDDY_TICK_SECONDS",
        "BUSBUDDY_ARRIVAL_RADIUS",
        "BUSBUDDY_APPROACH_RADIUS",
    ):
        monkeypatch.delenv(name, raising=False)
    config = BusBuddyConfig()
    assert config.db_path == Path("data/busbuddy.db")
    assert config.tick_seconds == 1.0
    assert config.arrival_radius_meters == 50.0


def test_environment_override(monkeypatch: pytest.MonkeyPatch):
    """Environment variables override the defaults."""
    monkeypatch.setenv("BUSBUDDY_DB_PATH", "/tmp/other.db")
    monkeypatch.setenv("BUSBUDDY_TICK_SECONDS", "0.5")
    config = get_config()
    assert config.db_path == Path("/tmp/other.db")
    assert config.tick_seconds == 0.5


def test_alias_keyword():
    """Values can be passed by alias name."""
    config = BusBuddyConfig(BUSBUDDY_APPROACH_RADIUS=250)
    assert config.approach_radius_meters == 250.0


def test_get_config_is_cached():
    """get_config returns the same instance each call."""
    assert get_config() is get_config()
